"""Executor capability set shared by every build step kind."""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import ClassVar, Sequence

from locutus_build.config import ToolchainProfile
from locutus_build.core.errors import StepCancelled, StepOutputMissing, ToolchainFailure
from locutus_build.core.hashing import digest_file
from locutus_build.core.heartbeat import step_heartbeat
from locutus_build.executors.process import ToolRun, run_tool
from locutus_build.plan import BuildStep, StepKind

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BuildArtifact:
    kind: StepKind
    produced_path: Path
    sha256: str


@dataclass(frozen=True)
class ExecutionContext:
    profile: ToolchainProfile
    work_dir: Path
    cancel_event: threading.Event = field(default_factory=threading.Event)

    @property
    def logs_dir(self) -> Path:
        return self.work_dir / "logs"


class StepExecutor(ABC):
    """prepare -> run -> collect_output, one instance per step."""

    kind: ClassVar[StepKind]

    def __init__(self, step: BuildStep, context: ExecutionContext) -> None:
        if step.kind is not self.kind:
            raise ValueError(f"{type(self).__name__} cannot execute {step.kind.value}")
        self.step = step
        self.context = context
        self.profile = context.profile

    @property
    def name(self) -> str:
        return self.step.kind.value

    @property
    def work_dir(self) -> Path:
        return self.context.work_dir

    def prepare(self) -> None:
        self.work_dir.mkdir(parents=True, exist_ok=True)

    @abstractmethod
    def run(self) -> None:
        ...

    @abstractmethod
    def collect_output(self) -> BuildArtifact:
        ...

    def execute(self) -> BuildArtifact:
        self.check_cancelled()
        with step_heartbeat(logger, f"step {self.name}"):
            self.prepare()
            self.check_cancelled()
            self.run()
            self.check_cancelled()
            artifact = self.collect_output()
        logger.info("step %s: produced %s (sha256=%s)", self.name, artifact.produced_path, artifact.sha256[:12])
        return artifact

    def check_cancelled(self) -> None:
        if self.context.cancel_event.is_set():
            raise StepCancelled(self.name)

    def run_tool(self, command: Sequence[str], *, tool: str, cwd: Path, failure_tool: str | None = None) -> ToolRun:
        """Invoke an external tool; a non-zero exit becomes ``ToolchainFailure``."""
        logger.info("step %s: running %s in %s", self.name, tool, cwd)
        result = run_tool(
            command,
            step=self.name,
            tool=tool,
            cwd=cwd,
            log_path=self.context.logs_dir / f"{self.name}.log",
            env=self.profile.tool_env(),
            timeout_seconds=self.profile.tool_timeout_seconds,
            cancel_event=self.context.cancel_event,
        )
        if result.exit_code != 0:
            raise ToolchainFailure(
                self.name,
                failure_tool or tool,
                result.exit_code,
                log_path=result.log_path,
                output_tail=result.output_tail(),
            )
        logger.info("step %s: %s finished in %.1fs", self.name, tool, result.elapsed_seconds)
        return result

    def artifact(self, path: Path) -> BuildArtifact:
        if not path.is_file():
            raise StepOutputMissing(self.name, path)
        digest = digest_file(path)
        return BuildArtifact(kind=self.kind, produced_path=path, sha256=digest.sha256_hex)
