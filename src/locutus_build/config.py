"""Toolchain profile: which external tools to invoke and how."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from locutus_build.core.errors import ProfileError

_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")
PROFILE_ENV_VAR = "LOCUTUS_BUILD_PROFILE"


class ToolchainProfile(BaseModel):
    cargo: list[str] = Field(default_factory=lambda: ["cargo"], min_length=1)
    cargo_profile: str = "release"
    rust_target: str = "wasm32-unknown-unknown"
    npm: list[str] = Field(default_factory=lambda: ["npm"], min_length=1)
    npx: list[str] = Field(default_factory=lambda: ["npx"], min_length=1)
    web_output_dir: str = "dist"
    web_source_dir: str = "src"
    tool_timeout_seconds: float | None = Field(default=None, gt=0)
    max_parallel_steps: int = Field(default=2, ge=1)
    work_root: str | None = None
    keep_work_dir: bool = False
    env: dict[str, str] = Field(default_factory=dict)

    model_config = ConfigDict(extra="forbid")

    def tool_env(self) -> dict[str, str]:
        merged = dict(os.environ)
        merged.update(self.env)
        return merged


def _expand_str(value: str) -> str:
    def replacer(match: re.Match[str]) -> str:
        token = match.group(1)
        if ":-" in token:
            key, default = token.split(":-", 1)
            actual = os.getenv(key, "")
            return actual if actual.strip() else default
        actual = os.getenv(token, "")
        if not actual.strip():
            raise ProfileError(f"missing environment variable: {token}")
        return actual

    return _VAR_PATTERN.sub(replacer, value)


def _expand_payload(value: Any) -> Any:
    if isinstance(value, str):
        return _expand_str(value)
    if isinstance(value, list):
        return [_expand_payload(item) for item in value]
    if isinstance(value, dict):
        return {str(key): _expand_payload(item) for key, item in value.items()}
    return value


def load_profile(path: Path) -> ToolchainProfile:
    if not path.exists():
        raise ProfileError(f"toolchain profile not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ProfileError(f"toolchain profile is not valid YAML: {path}: {exc}") from exc
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ProfileError(f"toolchain profile must be a mapping: {path}")
    expanded = _expand_payload(data)
    try:
        return ToolchainProfile(**expanded)
    except ValidationError as exc:
        raise ProfileError(f"invalid toolchain profile {path}: {exc}") from exc


def resolve_profile(path: Path | None = None) -> ToolchainProfile:
    """Explicit path, then ``LOCUTUS_BUILD_PROFILE``, then built-in defaults."""
    if path is not None:
        return load_profile(path)
    env_path = (os.getenv(PROFILE_ENV_VAR) or "").strip()
    if env_path:
        return load_profile(Path(env_path))
    return ToolchainProfile()
