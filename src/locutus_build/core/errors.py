"""Build tool error types used across modules."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, Mapping


class BuildToolError(RuntimeError):
    """Base error for build tool failures."""


class ManifestLoadError(BuildToolError):
    """Raised when the manifest file cannot be read or parsed into a tree."""

    def __init__(self, path: Path, detail: str) -> None:
        super().__init__(f"MANIFEST_UNREADABLE {path}: {detail}")
        self.path = path
        self.detail = detail


class ProfileError(BuildToolError):
    """Raised when a toolchain profile is missing or invalid."""


class ManifestError(BuildToolError):
    """A single structural problem found in a manifest."""

    code = "MANIFEST_ERROR"

    def __init__(self, section: str, detail: str) -> None:
        super().__init__(f"{self.code} [{section}] {detail}")
        self.section = section
        self.detail = detail


class MissingSection(ManifestError):
    code = "MISSING_SECTION"

    def __init__(self, section: str) -> None:
        super().__init__(section, f"section '{section}' is required")


class UnexpectedSection(ManifestError):
    code = "UNEXPECTED_SECTION"

    def __init__(self, section: str, reason: str) -> None:
        super().__init__(section, reason)


class MissingField(ManifestError):
    code = "MISSING_FIELD"

    def __init__(self, field: str) -> None:
        section = field.rsplit(".", 1)[0]
        super().__init__(section, f"field '{field}' is required")
        self.field = field


class InvalidField(ManifestError):
    code = "INVALID_FIELD"

    def __init__(self, field: str, detail: str) -> None:
        section = field.rsplit(".", 1)[0] if "." in field else field
        super().__init__(section, f"{field}: {detail}")
        self.field = field


class UnsupportedLanguage(ManifestError):
    code = "UNSUPPORTED_LANGUAGE"

    def __init__(self, value: str, field: str, supported: Iterable[str]) -> None:
        section = field.rsplit(".", 1)[0]
        options = ", ".join(sorted(supported))
        super().__init__(section, f"{field}='{value}' is not supported (expected one of: {options})")
        self.value = value
        self.field = field


class MismatchedOptionsSection(ManifestError):
    code = "MISMATCHED_OPTIONS_SECTION"

    def __init__(self, section: str, lang: str) -> None:
        super().__init__(section, f"options section does not match webapp.lang='{lang}'")
        self.lang = lang


class ManifestInvalid(BuildToolError):
    """Aggregate of every manifest problem found in one validation pass."""

    def __init__(self, manifest_path: Path | None, errors: list[ManifestError]) -> None:
        if not errors:
            raise ValueError("ManifestInvalid requires at least one error")
        where = str(manifest_path) if manifest_path else "<manifest>"
        super().__init__(f"{where}: {len(errors)} manifest error(s)")
        self.manifest_path = manifest_path
        self.errors = list(errors)


class StepError(BuildToolError):
    """Raised by an executor; identifies the failing step."""

    code = "STEP_FAILED"

    def __init__(self, step: str, detail: str) -> None:
        super().__init__(f"{self.code} [{step}] {detail}")
        self.step = step
        self.detail = detail


class MissingToolchain(StepError):
    code = "MISSING_TOOLCHAIN"

    def __init__(self, step: str, tool: str) -> None:
        super().__init__(step, f"required tool '{tool}' was not found on PATH")
        self.tool = tool


class ToolchainFailure(StepError):
    code = "TOOLCHAIN_FAILURE"

    def __init__(
        self,
        step: str,
        tool: str,
        exit_code: int,
        log_path: Path | None = None,
        output_tail: str = "",
    ) -> None:
        detail = f"{tool} exited with code {exit_code}"
        if log_path is not None:
            detail += f" (log: {log_path})"
        super().__init__(step, detail)
        self.tool = tool
        self.exit_code = exit_code
        self.log_path = log_path
        self.output_tail = output_tail


class ToolchainTimeout(StepError):
    code = "TOOLCHAIN_TIMEOUT"

    def __init__(self, step: str, tool: str, timeout_seconds: float) -> None:
        super().__init__(step, f"{tool} exceeded {timeout_seconds:.1f}s and was terminated")
        self.tool = tool
        self.timeout_seconds = timeout_seconds


class StepInputMissing(StepError):
    code = "STEP_INPUT_MISSING"

    def __init__(self, step: str, path: Path) -> None:
        super().__init__(step, f"required input not found: {path}")
        self.path = path


class StepOutputMissing(StepError):
    code = "STEP_OUTPUT_MISSING"

    def __init__(self, step: str, path: Path) -> None:
        super().__init__(step, f"expected output not produced: {path}")
        self.path = path


class StepCancelled(StepError):
    code = "STEP_CANCELLED"

    def __init__(self, step: str) -> None:
        super().__init__(step, "cancelled by caller")


class BuildFailed(BuildToolError):
    """Raised when one or more build steps failed; packaging did not run."""

    def __init__(self, failed_steps: Mapping[str, StepError]) -> None:
        names = ", ".join(sorted(failed_steps))
        super().__init__(f"BUILD_FAILED steps={names}")
        self.failed_steps = dict(failed_steps)

    @property
    def cancelled(self) -> bool:
        return any(isinstance(err, StepCancelled) for err in self.failed_steps.values())


class PackagingError(BuildToolError):
    """Raised when the output directory cannot be trusted."""


class WriteFailure(PackagingError):
    def __init__(self, path: Path, cause: OSError) -> None:
        super().__init__(f"WRITE_FAILURE {path}: {cause}")
        self.path = path
        self.cause = cause


def describe_failure(exc: BuildToolError) -> str:
    """Render a user-facing report naming the offending section or step."""

    if isinstance(exc, ManifestInvalid):
        lines = [f"manifest invalid: {exc.manifest_path or '<manifest>'}"]
        lines.extend(f"  - [{err.section}] {err.code}: {err.detail}" for err in exc.errors)
        return "\n".join(lines)
    if isinstance(exc, BuildFailed):
        lines = ["build failed:"]
        for step in sorted(exc.failed_steps):
            err = exc.failed_steps[step]
            lines.append(f"  - step {step}: {err.code}: {err.detail}")
            tail = getattr(err, "output_tail", "")
            if tail:
                lines.extend(f"      | {line}" for line in tail.splitlines())
        return "\n".join(lines)
    if isinstance(exc, PackagingError):
        return f"packaging failed: {exc}"
    return f"error: {exc}"
