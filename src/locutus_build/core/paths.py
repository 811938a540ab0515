"""Path resolution for manifests and the build output layout."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from locutus_build.core.errors import ManifestLoadError

MANIFEST_FILENAMES = ("locutus.toml", "locutus.yaml", "locutus.yml")
DEFAULT_OUTPUT_SUBDIR = Path("build") / "locutus"


def find_manifest(start: Optional[Path] = None) -> Path:
    anchor = (start or Path.cwd()).resolve()
    if anchor.is_file():
        return anchor
    for parent in [anchor] + list(anchor.parents):
        for name in MANIFEST_FILENAMES:
            candidate = parent / name
            if candidate.is_file():
                return candidate
    raise ManifestLoadError(
        anchor, f"no manifest found (looked for {', '.join(MANIFEST_FILENAMES)} in parents)"
    )


def default_output_dir(manifest_dir: Path) -> Path:
    return manifest_dir / DEFAULT_OUTPUT_SUBDIR


def resolve_output_dir(manifest_dir: Path, configured: Optional[str]) -> Path:
    """Pure resolution: no filesystem access."""
    if configured is None:
        return default_output_dir(manifest_dir)
    candidate = Path(configured).expanduser()
    if candidate.is_absolute():
        return candidate
    return manifest_dir / candidate


@dataclass(frozen=True)
class OutputLayout:
    """Canonical artifact sub-paths under the output directory."""

    output_dir: Path

    @property
    def contract_path(self) -> Path:
        return self.output_dir / "contract" / "contract.wasm"

    @property
    def web_state_path(self) -> Path:
        return self.output_dir / "web" / "web-state.bin"

    @property
    def state_path(self) -> Path:
        return self.output_dir / "state" / "state.bin"

    @property
    def receipt_path(self) -> Path:
        return self.output_dir / "build-receipt.json"
