"""Load manifest files into a generic key/value tree."""

from __future__ import annotations

import tomllib
from pathlib import Path
from typing import Any

import yaml

from locutus_build.core.errors import ManifestLoadError
from locutus_build.manifest.model import Manifest, parse


def _load_toml(path: Path, text: str) -> Any:
    try:
        return tomllib.loads(text)
    except tomllib.TOMLDecodeError as exc:
        raise ManifestLoadError(path, f"invalid TOML: {exc}") from exc


def _load_yaml(path: Path, text: str) -> Any:
    try:
        return yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ManifestLoadError(path, f"invalid YAML: {exc}") from exc


def load_config_tree(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise ManifestLoadError(path, "file does not exist")
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise ManifestLoadError(path, str(exc)) from exc
    suffix = path.suffix.lower()
    if suffix == ".toml":
        tree = _load_toml(path, text)
    elif suffix in {".yaml", ".yml"}:
        tree = _load_yaml(path, text)
    else:
        raise ManifestLoadError(path, f"unsupported manifest format '{suffix or '<none>'}'")
    if tree is None:
        tree = {}
    if not isinstance(tree, dict):
        raise ManifestLoadError(path, "manifest root must be a table/mapping")
    return tree


def load_manifest(path: Path) -> Manifest:
    resolved = path.expanduser().resolve()
    return parse(load_config_tree(resolved), manifest_path=resolved)
