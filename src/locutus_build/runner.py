"""Build orchestration: manifest -> plan -> executors -> packaged output."""

from __future__ import annotations

import datetime as dt
import logging
import shutil
import tempfile
import threading
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Optional, Sequence

from locutus_build import __version__
from locutus_build.config import ToolchainProfile
from locutus_build.core.errors import BuildFailed, BuildToolError, StepError
from locutus_build.core.hashing import digest_file
from locutus_build.executors import BuildArtifact, ExecutionContext, executor_for
from locutus_build.manifest.loader import load_manifest
from locutus_build.manifest.model import Manifest
from locutus_build.packager import assemble, write_receipt
from locutus_build.plan import BuildStep, StepKind, group_stages, resolve

logger = logging.getLogger(__name__)


def _created_utc() -> str:
    return dt.datetime.now(dt.timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


@dataclass(frozen=True)
class BuildReport:
    manifest_path: Path
    output_dir: Path
    steps: tuple[BuildStep, ...]
    artifacts: dict[StepKind, BuildArtifact]
    placed: dict[StepKind, Path]
    receipt_path: Path
    concurrent_groups: tuple[tuple[StepKind, ...], ...] = field(default_factory=tuple)


class BuildOrchestrator:
    def __init__(
        self,
        profile: Optional[ToolchainProfile] = None,
        *,
        cancel_event: Optional[threading.Event] = None,
        output_dir: Optional[Path] = None,
    ) -> None:
        self.profile = profile or ToolchainProfile()
        self.cancel_event = cancel_event or threading.Event()
        self.output_dir_override = output_dir

    def cancel(self) -> None:
        self.cancel_event.set()

    def load(self, manifest_path: Path) -> Manifest:
        manifest = load_manifest(manifest_path)
        if self.output_dir_override is not None:
            override = self.output_dir_override.expanduser().resolve()
            manifest = replace(manifest, contract=replace(manifest.contract, output_dir=override))
        return manifest

    def plan(self, manifest_path: Path) -> tuple[Manifest, list[BuildStep]]:
        manifest = self.load(manifest_path)
        return manifest, resolve(manifest)

    def build(self, manifest_path: Path) -> BuildReport:
        manifest, steps = self.plan(manifest_path)
        output_dir = manifest.contract.output_dir
        stages = group_stages(steps)
        logger.info(
            "Build: manifest=%s output_dir=%s stages=%s",
            manifest.manifest_path,
            output_dir,
            " -> ".join("+".join(step.kind.value for step in stage) for stage in stages),
        )
        work_root = Path(
            tempfile.mkdtemp(prefix="locutus-build-", dir=self.profile.work_root or None)
        )
        succeeded = False
        try:
            artifacts = self._execute(stages, work_root)
            placed = assemble(list(artifacts.values()), output_dir)
            succeeded = True
        finally:
            if succeeded or not self.profile.keep_work_dir:
                shutil.rmtree(work_root, ignore_errors=True)
            else:
                logger.info("Build: work directory kept at %s", work_root)
        concurrent = tuple(
            tuple(step.kind for step in stage) for stage in stages if len(stage) > 1
        )
        receipt_path = write_receipt(
            self._receipt(manifest, steps, stages, artifacts, placed), output_dir
        )
        logger.info("Build: complete (%d artifact(s)) receipt=%s", len(placed), receipt_path)
        return BuildReport(
            manifest_path=manifest.manifest_path,
            output_dir=output_dir,
            steps=tuple(steps),
            artifacts=artifacts,
            placed=placed,
            receipt_path=receipt_path,
            concurrent_groups=concurrent,
        )

    def _execute(
        self, stages: Sequence[Sequence[BuildStep]], work_root: Path
    ) -> dict[StepKind, BuildArtifact]:
        artifacts: dict[StepKind, BuildArtifact] = {}
        failures: dict[str, StepError] = {}
        for stage in stages:
            if failures:
                blocked = ", ".join(step.kind.value for step in stage)
                logger.error("Build: not running %s; upstream step(s) failed", blocked)
                break
            for kind, outcome in self._run_stage(stage, work_root, artifacts).items():
                if isinstance(outcome, StepError):
                    failures[kind.value] = outcome
                else:
                    artifacts[kind] = outcome
        if failures:
            raise BuildFailed(failures)
        return artifacts

    def _run_stage(
        self,
        stage: Sequence[BuildStep],
        work_root: Path,
        upstream: dict[StepKind, BuildArtifact],
    ) -> dict[StepKind, BuildArtifact | StepError]:
        outcomes: dict[StepKind, BuildArtifact | StepError] = {}
        workers = min(self.profile.max_parallel_steps, len(stage))
        if workers <= 1:
            for step in stage:
                outcomes[step.kind] = self._run_step_isolated(step, work_root, upstream)
            return outcomes
        logger.info(
            "Build: running %s concurrently (workers=%d)",
            ", ".join(step.kind.value for step in stage),
            workers,
        )
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="locutus-step") as pool:
            futures: dict[Future, BuildStep] = {
                pool.submit(self._run_step_isolated, step, work_root, upstream): step
                for step in stage
            }
            try:
                for future in as_completed(futures):
                    outcomes[futures[future].kind] = future.result()
            except KeyboardInterrupt:
                self.cancel_event.set()
                raise
        return outcomes

    def _run_step_isolated(
        self,
        step: BuildStep,
        work_root: Path,
        upstream: dict[StepKind, BuildArtifact],
    ) -> BuildArtifact | StepError:
        try:
            return self._run_step(step, work_root, upstream)
        except StepError as exc:
            logger.error("Build: step %s failed: %s", step.kind.value, exc)
            return exc
        except Exception as exc:
            logger.exception("Build: step %s raised unexpectedly", step.kind.value)
            wrapped = StepError(step.kind.value, f"{type(exc).__name__}: {exc}")
            wrapped.__cause__ = exc
            return wrapped

    def _run_step(
        self,
        step: BuildStep,
        work_root: Path,
        upstream: dict[StepKind, BuildArtifact],
    ) -> BuildArtifact:
        context = ExecutionContext(
            profile=self.profile,
            work_dir=work_root / step.kind.value,
            cancel_event=self.cancel_event,
        )
        inputs = [upstream[kind] for kind in step.depends_on if kind in upstream]
        executor = executor_for(step, context, inputs)
        try:
            return executor.execute()
        except StepError:
            raise
        except (BuildToolError, OSError) as exc:
            raise StepError(step.kind.value, str(exc)) from exc

    def _receipt(
        self,
        manifest: Manifest,
        steps: Sequence[BuildStep],
        stages: Sequence[Sequence[BuildStep]],
        artifacts: dict[StepKind, BuildArtifact],
        placed: dict[StepKind, Path],
    ) -> dict[str, Any]:
        output_dir = manifest.contract.output_dir
        compiled = placed.get(StepKind.COMPILE_CONTRACT)
        return {
            "tool_version": __version__,
            "created_utc": _created_utc(),
            "manifest_path": str(manifest.manifest_path),
            "output_dir": str(output_dir),
            "contract_type": manifest.contract.type.value,
            "contract_code_hash": digest_file(compiled).blake2s_hex if compiled else None,
            "steps": [step.describe() for step in steps],
            "stages": [[step.kind.value for step in stage] for stage in stages],
            "artifacts": {
                kind.value: {
                    "path": placed[kind].relative_to(output_dir).as_posix(),
                    "sha256": artifact.sha256,
                }
                for kind, artifact in sorted(artifacts.items(), key=lambda item: item[0].value)
            },
        }


def run_build(
    manifest_path: Path,
    profile: Optional[ToolchainProfile] = None,
    *,
    output_dir: Optional[Path] = None,
    cancel_event: Optional[threading.Event] = None,
) -> BuildReport:
    orchestrator = BuildOrchestrator(profile, cancel_event=cancel_event, output_dir=output_dir)
    return orchestrator.build(manifest_path)
