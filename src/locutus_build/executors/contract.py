"""Native contract compilation."""

from __future__ import annotations

import tomllib
from pathlib import Path

from locutus_build.core.errors import MissingToolchain, StepError, StepInputMissing
from locutus_build.executors.base import BuildArtifact, StepExecutor
from locutus_build.executors.process import tool_available
from locutus_build.manifest.model import SourceLanguage
from locutus_build.plan import CompileInputs, StepKind


class RustContractExecutor(StepExecutor):
    """Compiles a cargo crate to a wasm contract."""

    kind = StepKind.COMPILE_CONTRACT
    language = SourceLanguage.RUST

    @property
    def inputs(self) -> CompileInputs:
        assert isinstance(self.step.inputs, CompileInputs)
        return self.step.inputs

    @property
    def target_dir(self) -> Path:
        return self.work_dir / "target"

    def prepare(self) -> None:
        super().prepare()
        cargo_toml = self.inputs.source_dir / "Cargo.toml"
        if not cargo_toml.is_file():
            raise StepInputMissing(self.name, cargo_toml)
        if not tool_available(self.profile.cargo[0]):
            raise MissingToolchain(self.name, "cargo")
        self._crate_name = _crate_name(self.name, cargo_toml)

    def run(self) -> None:
        command = [*self.profile.cargo, "build", "--target", self.profile.rust_target]
        if self.profile.cargo_profile == "release":
            command.append("--release")
        else:
            command.extend(["--profile", self.profile.cargo_profile])
        command.extend(["--target-dir", str(self.target_dir)])
        self.run_tool(
            command,
            tool="cargo",
            cwd=self.inputs.source_dir,
            failure_tool=self.language.value,
        )

    def collect_output(self) -> BuildArtifact:
        profile_dir = {"release": "release", "dev": "debug"}.get(
            self.profile.cargo_profile, self.profile.cargo_profile
        )
        wasm = self.target_dir / self.profile.rust_target / profile_dir / f"{self._crate_name}.wasm"
        return self.artifact(wasm)


def _crate_name(step: str, cargo_toml: Path) -> str:
    try:
        data = tomllib.loads(cargo_toml.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, tomllib.TOMLDecodeError) as exc:
        raise StepError(step, f"unreadable {cargo_toml}: {exc}") from exc
    lib = data.get("lib") if isinstance(data.get("lib"), dict) else {}
    package = data.get("package") if isinstance(data.get("package"), dict) else {}
    name = lib.get("name") or package.get("name")
    if not isinstance(name, str) or not name:
        raise StepError(step, f"{cargo_toml} does not declare a package name")
    return name.replace("-", "_")


COMPILERS: dict[SourceLanguage, type[StepExecutor]] = {
    SourceLanguage.RUST: RustContractExecutor,
}
