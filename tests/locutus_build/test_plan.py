from __future__ import annotations

from pathlib import Path

import pytest

from locutus_build.core.paths import OutputLayout
from locutus_build.manifest.model import ContractType, WebLang, parse
from locutus_build.plan import (
    BuildStep,
    CompileInputs,
    StateInputs,
    StepKind,
    WebAppInputs,
    group_stages,
    resolve,
)


def _manifest(tree: dict, tmp_path: Path):
    return parse(tree, tmp_path / "locutus.toml")


def test_standard_rust_contract_plan(tmp_path: Path) -> None:
    manifest = _manifest({"contract": {"lang": "rust"}}, tmp_path)
    steps = resolve(manifest)
    assert [step.kind for step in steps] == [StepKind.COMPILE_CONTRACT, StepKind.PACKAGE_STATE]
    layout = OutputLayout(manifest.contract.output_dir)
    assert steps[0].output_path == layout.contract_path
    assert isinstance(steps[0].inputs, CompileInputs)
    assert steps[1].depends_on == (StepKind.COMPILE_CONTRACT,)
    assert isinstance(steps[1].inputs, StateInputs)
    assert steps[1].inputs.contract_type is ContractType.STANDARD


def test_webapp_plan_has_three_steps(tmp_path: Path) -> None:
    tree = {
        "contract": {"type": "webapp", "lang": "rust"},
        "webapp": {"lang": "typescript", "typescript": {"webpack": True}},
    }
    steps = resolve(_manifest(tree, tmp_path))
    assert [step.kind for step in steps] == [
        StepKind.COMPILE_CONTRACT,
        StepKind.BUILD_WEBAPP,
        StepKind.PACKAGE_STATE,
    ]
    web = steps[1]
    assert isinstance(web.inputs, WebAppInputs)
    assert web.inputs.lang is WebLang.TYPESCRIPT
    assert web.inputs.options.webpack is True
    assert web.depends_on == ()
    assert steps[-1].depends_on == (StepKind.COMPILE_CONTRACT, StepKind.BUILD_WEBAPP)


def test_contract_without_lang_only_packages_state(tmp_path: Path) -> None:
    steps = resolve(_manifest({"contract": {}, "state": {"greeting": "hi"}}, tmp_path))
    assert [step.kind for step in steps] == [StepKind.PACKAGE_STATE]
    assert steps[0].depends_on == ()
    assert dict(steps[0].inputs.entries) == {"greeting": "hi"}


def test_package_state_is_always_last(tmp_path: Path) -> None:
    tree = {"contract": {"type": "webapp"}, "webapp": {"lang": "javascript"}}
    steps = resolve(_manifest(tree, tmp_path))
    assert steps[-1].kind is StepKind.PACKAGE_STATE
    assert [step.kind for step in steps].count(StepKind.PACKAGE_STATE) == 1


def test_output_paths_follow_output_dir(tmp_path: Path) -> None:
    manifest = _manifest({"contract": {"lang": "rust", "output_dir": "dist-pkg"}}, tmp_path)
    steps = resolve(manifest)
    for step in steps:
        assert (tmp_path / "dist-pkg") in step.output_path.parents


def test_compile_and_webapp_share_a_stage(tmp_path: Path) -> None:
    tree = {
        "contract": {"type": "webapp", "lang": "rust"},
        "webapp": {"lang": "javascript"},
    }
    stages = group_stages(resolve(_manifest(tree, tmp_path)))
    assert [[step.kind for step in stage] for stage in stages] == [
        [StepKind.COMPILE_CONTRACT, StepKind.BUILD_WEBAPP],
        [StepKind.PACKAGE_STATE],
    ]


def test_group_stages_rejects_unsatisfiable_dependencies(tmp_path: Path) -> None:
    orphan = BuildStep(
        kind=StepKind.PACKAGE_STATE,
        inputs=StateInputs(contract_type=ContractType.STANDARD),
        output_path=tmp_path / "state.bin",
        depends_on=(StepKind.COMPILE_CONTRACT,),
    )
    with pytest.raises(ValueError, match="unsatisfiable"):
        group_stages([orphan])


def test_describe_is_json_ready(tmp_path: Path) -> None:
    tree = {
        "contract": {"type": "webapp", "lang": "rust"},
        "webapp": {"lang": "javascript"},
        "state": {"b": 1, "a": 2},
    }
    described = [step.describe() for step in resolve(_manifest(tree, tmp_path))]
    assert described[0]["lang"] == "rust"
    assert described[1]["webpack"] is False
    assert described[1]["metadata"] is None
    assert described[2]["state_entries"] == ["a", "b"]
    assert described[2]["depends_on"] == ["compile_contract", "build_webapp"]


def test_bare_contract_plans_state_at_default_path(tmp_path: Path) -> None:
    manifest = _manifest({"contract": {}}, tmp_path)
    steps = resolve(manifest)
    assert [step.kind for step in steps] == [StepKind.PACKAGE_STATE]
    assert steps[0].output_path == tmp_path / "build" / "locutus" / "state" / "state.bin"
