"""Resolve a validated manifest into ordered build steps."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Mapping, Optional, Sequence, Union

from locutus_build.core.paths import OutputLayout
from locutus_build.manifest.model import (
    ContractType,
    LangOptions,
    Manifest,
    SourceLanguage,
    WebLang,
)


class StepKind(str, Enum):
    COMPILE_CONTRACT = "compile_contract"
    BUILD_WEBAPP = "build_webapp"
    PACKAGE_STATE = "package_state"


@dataclass(frozen=True)
class CompileInputs:
    lang: SourceLanguage
    source_dir: Path


@dataclass(frozen=True)
class WebAppInputs:
    lang: WebLang
    options: LangOptions
    source_dir: Path
    metadata: Optional[Path]
    state_sources: Optional[Mapping[str, Any]]
    dependencies: Optional[Mapping[str, Any]]


@dataclass(frozen=True)
class StateInputs:
    contract_type: ContractType
    entries: Mapping[str, Any] = field(default_factory=dict)


StepInputs = Union[CompileInputs, WebAppInputs, StateInputs]


@dataclass(frozen=True)
class BuildStep:
    kind: StepKind
    inputs: StepInputs
    output_path: Path
    depends_on: tuple[StepKind, ...] = ()

    def describe(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "kind": self.kind.value,
            "output_path": str(self.output_path),
            "depends_on": [kind.value for kind in self.depends_on],
        }
        inputs = self.inputs
        if isinstance(inputs, CompileInputs):
            payload["lang"] = inputs.lang.value
        elif isinstance(inputs, WebAppInputs):
            payload["lang"] = inputs.lang.value
            payload["webpack"] = inputs.options.webpack
            payload["metadata"] = str(inputs.metadata) if inputs.metadata else None
        elif isinstance(inputs, StateInputs):
            payload["state_entries"] = sorted(inputs.entries)
        return payload


def resolve(manifest: Manifest) -> list[BuildStep]:
    layout = OutputLayout(manifest.contract.output_dir)
    steps: list[BuildStep] = []
    contract = manifest.contract
    if contract.lang is not None:
        steps.append(
            BuildStep(
                kind=StepKind.COMPILE_CONTRACT,
                inputs=CompileInputs(lang=contract.lang, source_dir=contract.source_dir),
                output_path=layout.contract_path,
            )
        )
    if contract.type is ContractType.WEBAPP and manifest.webapp is not None:
        webapp = manifest.webapp
        steps.append(
            BuildStep(
                kind=StepKind.BUILD_WEBAPP,
                inputs=WebAppInputs(
                    lang=webapp.lang,
                    options=webapp.options,
                    source_dir=webapp.source_dir,
                    metadata=webapp.metadata,
                    state_sources=webapp.state_sources,
                    dependencies=webapp.dependencies,
                ),
                output_path=layout.web_state_path,
            )
        )
    upstream = tuple(step.kind for step in steps)
    entries = manifest.state.entries if manifest.state is not None else {}
    steps.append(
        BuildStep(
            kind=StepKind.PACKAGE_STATE,
            inputs=StateInputs(contract_type=contract.type, entries=entries),
            output_path=layout.state_path,
            depends_on=upstream,
        )
    )
    return steps


def group_stages(steps: Sequence[BuildStep]) -> list[list[BuildStep]]:
    """Group steps into stages; steps within a stage have no mutual dependency."""
    stages: list[list[BuildStep]] = []
    done: set[StepKind] = set()
    pending = list(steps)
    while pending:
        ready = [step for step in pending if set(step.depends_on) <= done]
        if not ready:
            blocked = ", ".join(step.kind.value for step in pending)
            raise ValueError(f"unsatisfiable step dependencies: {blocked}")
        stages.append(ready)
        done.update(step.kind for step in ready)
        pending = [step for step in pending if step not in ready]
    return stages
