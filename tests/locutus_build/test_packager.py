from __future__ import annotations

import json
import os
from pathlib import Path

import pytest

from locutus_build import packager
from locutus_build.core.errors import WriteFailure
from locutus_build.core.paths import OutputLayout
from locutus_build.executors import BuildArtifact
from locutus_build.packager import assemble, write_receipt
from locutus_build.plan import StepKind


def _artifact(tmp_path: Path, kind: StepKind, payload: bytes) -> BuildArtifact:
    produced = tmp_path / "work" / kind.value / "out.bin"
    produced.parent.mkdir(parents=True, exist_ok=True)
    produced.write_bytes(payload)
    return BuildArtifact(kind=kind, produced_path=produced, sha256="0" * 64)


def _tree(root: Path) -> dict[str, bytes]:
    return {
        path.relative_to(root).as_posix(): path.read_bytes()
        for path in sorted(root.rglob("*"))
        if path.is_file()
    }


def test_assemble_places_artifacts_at_canonical_paths(tmp_path: Path) -> None:
    output_dir = tmp_path / "out"
    artifacts = [
        _artifact(tmp_path, StepKind.COMPILE_CONTRACT, b"wasm"),
        _artifact(tmp_path, StepKind.BUILD_WEBAPP, b"web"),
        _artifact(tmp_path, StepKind.PACKAGE_STATE, b"state"),
    ]
    placed = assemble(artifacts, output_dir)
    layout = OutputLayout(output_dir)
    assert placed == {
        StepKind.COMPILE_CONTRACT: layout.contract_path,
        StepKind.BUILD_WEBAPP: layout.web_state_path,
        StepKind.PACKAGE_STATE: layout.state_path,
    }
    assert _tree(output_dir) == {
        "contract/contract.wasm": b"wasm",
        "state/state.bin": b"state",
        "web/web-state.bin": b"web",
    }


def test_assemble_is_idempotent(tmp_path: Path) -> None:
    output_dir = tmp_path / "out"
    artifacts = [
        _artifact(tmp_path, StepKind.COMPILE_CONTRACT, b"wasm"),
        _artifact(tmp_path, StepKind.PACKAGE_STATE, b"state"),
    ]
    assemble(artifacts, output_dir)
    first = _tree(output_dir)
    assemble(artifacts, output_dir)
    assert _tree(output_dir) == first


def test_assemble_creates_missing_output_dir(tmp_path: Path) -> None:
    output_dir = tmp_path / "a" / "b" / "c"
    assemble([_artifact(tmp_path, StepKind.PACKAGE_STATE, b"state")], output_dir)
    assert OutputLayout(output_dir).state_path.read_bytes() == b"state"


def test_failed_copy_leaves_previous_output_intact(tmp_path: Path) -> None:
    output_dir = tmp_path / "out"
    assemble(
        [
            _artifact(tmp_path, StepKind.COMPILE_CONTRACT, b"old-wasm"),
            _artifact(tmp_path, StepKind.PACKAGE_STATE, b"old-state"),
        ],
        output_dir,
    )
    before = _tree(output_dir)

    fresh = _artifact(tmp_path, StepKind.COMPILE_CONTRACT, b"new-wasm")
    vanished = BuildArtifact(
        kind=StepKind.PACKAGE_STATE,
        produced_path=tmp_path / "work" / "gone.bin",
        sha256="0" * 64,
    )
    with pytest.raises(WriteFailure) as excinfo:
        assemble([fresh, vanished], output_dir)
    assert excinfo.value.path == OutputLayout(output_dir).state_path
    assert _tree(output_dir) == before
    assert not [path for path in output_dir.rglob("*.tmp")]


def test_assemble_removes_artifacts_no_longer_produced(tmp_path: Path) -> None:
    output_dir = tmp_path / "out"
    assemble(
        [
            _artifact(tmp_path, StepKind.COMPILE_CONTRACT, b"wasm"),
            _artifact(tmp_path, StepKind.BUILD_WEBAPP, b"web"),
            _artifact(tmp_path, StepKind.PACKAGE_STATE, b"state"),
        ],
        output_dir,
    )
    assemble([_artifact(tmp_path, StepKind.PACKAGE_STATE, b"state-only")], output_dir)
    assert _tree(output_dir) == {"state/state.bin": b"state-only"}
    assert not (output_dir / "contract").exists()
    assert not (output_dir / "web").exists()


def test_failed_move_restores_previous_output(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    output_dir = tmp_path / "out"
    layout = OutputLayout(output_dir)
    assemble(
        [
            _artifact(tmp_path, StepKind.COMPILE_CONTRACT, b"old-wasm"),
            _artifact(tmp_path, StepKind.BUILD_WEBAPP, b"old-web"),
            _artifact(tmp_path, StepKind.PACKAGE_STATE, b"old-state"),
        ],
        output_dir,
    )
    before = _tree(output_dir)

    real_replace = os.replace
    moved_in: list[Path] = []

    def _replace(src, dst) -> None:
        if str(src).endswith(".tmp"):
            if Path(dst) == layout.state_path:
                raise OSError(28, "No space left on device")
            moved_in.append(Path(dst))
        real_replace(src, dst)

    monkeypatch.setattr(packager.os, "replace", _replace)
    with pytest.raises(WriteFailure) as excinfo:
        assemble(
            [
                _artifact(tmp_path, StepKind.COMPILE_CONTRACT, b"new-wasm"),
                _artifact(tmp_path, StepKind.PACKAGE_STATE, b"new-state"),
            ],
            output_dir,
        )
    assert moved_in == [layout.contract_path]
    assert excinfo.value.path == layout.state_path
    assert _tree(output_dir) == before
    assert not [path for path in output_dir.rglob("*.tmp")]
    assert not [path for path in output_dir.rglob("*.bak")]


def test_write_receipt_is_sorted_json(tmp_path: Path) -> None:
    path = write_receipt({"b": 1, "a": {"z": True}}, tmp_path / "out")
    assert path == OutputLayout(tmp_path / "out").receipt_path
    text = path.read_text(encoding="utf-8")
    assert json.loads(text) == {"a": {"z": True}, "b": 1}
    assert text.index('"a"') < text.index('"b"')
