"""Build step executors, one variant per step kind and language."""

from __future__ import annotations

from typing import Sequence

from locutus_build.executors.base import BuildArtifact, ExecutionContext, StepExecutor
from locutus_build.executors.contract import COMPILERS, RustContractExecutor
from locutus_build.executors.state import PackageStateExecutor, read_state_package
from locutus_build.executors.webapp import (
    WEB_BUILDERS,
    JavaScriptWebAppExecutor,
    TypeScriptWebAppExecutor,
)
from locutus_build.plan import BuildStep, CompileInputs, StepKind, WebAppInputs


def executor_for(
    step: BuildStep,
    context: ExecutionContext,
    upstream: Sequence[BuildArtifact] = (),
) -> StepExecutor:
    if step.kind is StepKind.COMPILE_CONTRACT:
        assert isinstance(step.inputs, CompileInputs)
        return COMPILERS[step.inputs.lang](step, context)
    if step.kind is StepKind.BUILD_WEBAPP:
        assert isinstance(step.inputs, WebAppInputs)
        return WEB_BUILDERS[step.inputs.lang](step, context)
    if step.kind is StepKind.PACKAGE_STATE:
        return PackageStateExecutor(step, context, upstream)
    raise ValueError(f"no executor for step kind {step.kind}")


__all__ = [
    "BuildArtifact",
    "ExecutionContext",
    "JavaScriptWebAppExecutor",
    "PackageStateExecutor",
    "RustContractExecutor",
    "StepExecutor",
    "TypeScriptWebAppExecutor",
    "executor_for",
    "read_state_package",
]
