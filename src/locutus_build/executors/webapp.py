"""Web application build: dependency install, optional bundling, archiving."""

from __future__ import annotations

import io
import logging
import tarfile
from pathlib import Path
from typing import Any, ClassVar

from locutus_build.core.errors import MissingToolchain, StepError, StepInputMissing, StepOutputMissing
from locutus_build.executors.base import BuildArtifact, StepExecutor
from locutus_build.executors.process import tool_available
from locutus_build.executors.state import encode_web_state
from locutus_build.manifest.model import WebLang, read_metadata_bytes
from locutus_build.plan import StepKind, WebAppInputs

logger = logging.getLogger(__name__)

WEB_STATE_FILENAME = "web-state.bin"


def pack_web_archive(files: list[tuple[str, Path]]) -> bytes:
    """Deterministic tar.xz: caller-sorted entries, zeroed mtimes and owners."""
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:xz", format=tarfile.GNU_FORMAT) as archive:
        for name, path in files:
            data = path.read_bytes()
            info = tarfile.TarInfo(name)
            info.size = len(data)
            info.mtime = 0
            info.mode = 0o644
            info.uid = info.gid = 0
            info.uname = info.gname = ""
            archive.addfile(info, io.BytesIO(data))
    return buffer.getvalue()


def _string_list(step: str, key: str, value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, list) and all(isinstance(item, str) for item in value):
        return list(value)
    raise StepError(step, f"webapp.state-sources.{key} must be a string or list of strings")


class WebAppExecutor(StepExecutor):
    kind = StepKind.BUILD_WEBAPP
    language: ClassVar[WebLang]
    # Whether the non-bundled path still runs a compiler over the sources.
    transpiles: ClassVar[bool] = False

    @property
    def inputs(self) -> WebAppInputs:
        assert isinstance(self.step.inputs, WebAppInputs)
        return self.step.inputs

    @property
    def output_file(self) -> Path:
        return self.work_dir / WEB_STATE_FILENAME

    @property
    def produces_build_output(self) -> bool:
        return self.inputs.options.webpack or self.transpiles

    def prepare(self) -> None:
        super().prepare()
        source_dir = self.inputs.source_dir
        package_json = source_dir / "package.json"
        if not package_json.is_file():
            raise StepInputMissing(self.name, package_json)
        if self.inputs.metadata is not None and not self.inputs.metadata.is_file():
            raise StepInputMissing(self.name, self.inputs.metadata)
        if not tool_available(self.profile.npm[0]):
            raise MissingToolchain(self.name, "npm")

    def run(self) -> None:
        source_dir = self.inputs.source_dir
        self.run_tool([*self.profile.npm, "install", *self.dependency_specs()], tool="npm", cwd=source_dir)
        if self.inputs.options.webpack:
            self.run_tool([*self.profile.npx, "webpack"], tool="webpack", cwd=source_dir)
        else:
            self.compile_sources()
        self.check_cancelled()
        files = self.collect_files()
        archive = pack_web_archive(files)
        metadata = read_metadata_bytes(self.inputs.metadata)
        self.output_file.write_bytes(encode_web_state(metadata, archive))
        logger.info(
            "step %s: archived %d file(s), %d archive bytes, %d metadata bytes",
            self.name,
            len(files),
            len(archive),
            len(metadata),
        )

    def compile_sources(self) -> None:
        """Non-bundled build path; raw sources are final unless overridden."""

    def collect_output(self) -> BuildArtifact:
        return self.artifact(self.output_file)

    def dependency_specs(self) -> list[str]:
        specs: list[str] = []
        for name, value in sorted((self.inputs.dependencies or {}).items()):
            if isinstance(value, str):
                specs.append(f"{name}@{value}")
            else:
                logger.warning(
                    "step %s: dependency '%s' is not a version string; skipping it",
                    self.name,
                    name,
                )
        return specs

    def content_root(self) -> Path:
        subdir = self.profile.web_output_dir if self.produces_build_output else self.profile.web_source_dir
        return self.inputs.source_dir / subdir

    def collect_files(self) -> list[tuple[str, Path]]:
        source_dir = self.inputs.source_dir
        sources = self.inputs.state_sources or {}
        dirs = _string_list(self.name, "source_dirs", sources.get("source_dirs"))
        patterns = _string_list(self.name, "files", sources.get("files"))
        for item in dirs + patterns:
            candidate = Path(item)
            if candidate.is_absolute() or ".." in candidate.parts:
                raise StepError(
                    self.name, f"webapp.state-sources entry '{item}' must stay inside {source_dir}"
                )
        roots = [source_dir / item for item in dirs]
        if not dirs and not patterns:
            roots = [self.content_root()]
        entries: dict[str, Path] = {}
        for root in roots:
            if not root.is_dir():
                raise StepOutputMissing(self.name, root)
            for path in sorted(root.rglob("*")):
                if path.is_file():
                    entries[path.relative_to(root).as_posix()] = path
        for pattern in patterns:
            for path in sorted(source_dir.glob(pattern)):
                if path.is_file():
                    entries[path.relative_to(source_dir).as_posix()] = path
        if not entries:
            raise StepOutputMissing(self.name, roots[0] if roots else source_dir)
        base = source_dir.resolve()
        for name, path in entries.items():
            if not path.resolve().is_relative_to(base):
                raise StepError(self.name, f"archive entry '{name}' resolves outside {source_dir}")
        return sorted(entries.items())


class TypeScriptWebAppExecutor(WebAppExecutor):
    language = WebLang.TYPESCRIPT
    transpiles = True

    def compile_sources(self) -> None:
        self.run_tool([*self.profile.npx, "tsc"], tool="tsc", cwd=self.inputs.source_dir)


class JavaScriptWebAppExecutor(WebAppExecutor):
    language = WebLang.JAVASCRIPT


WEB_BUILDERS: dict[WebLang, type[WebAppExecutor]] = {
    WebLang.TYPESCRIPT: TypeScriptWebAppExecutor,
    WebLang.JAVASCRIPT: JavaScriptWebAppExecutor,
}
