"""Assemble executor outputs into the output directory."""

from __future__ import annotations

import json
import logging
import os
import shutil
from pathlib import Path
from typing import Any, Sequence

from locutus_build.core.errors import PackagingError, WriteFailure
from locutus_build.core.paths import OutputLayout
from locutus_build.executors.base import BuildArtifact
from locutus_build.plan import StepKind

logger = logging.getLogger(__name__)


def canonical_path(layout: OutputLayout, kind: StepKind) -> Path:
    if kind is StepKind.COMPILE_CONTRACT:
        return layout.contract_path
    if kind is StepKind.BUILD_WEBAPP:
        return layout.web_state_path
    if kind is StepKind.PACKAGE_STATE:
        return layout.state_path
    raise PackagingError(f"no canonical path for artifact kind {kind}")


def _temp_sibling(target: Path) -> Path:
    return target.with_name(f".{target.name}.{os.getpid()}.tmp")


def _discard(paths: Sequence[Path]) -> None:
    for path in paths:
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            logger.warning("Packager: could not remove temporary %s: %s", path, exc)


def _backup_sibling(target: Path) -> Path:
    return target.with_name(f".{target.name}.{os.getpid()}.bak")


def _restore(placed: Sequence[Path], backups: Sequence[tuple[Path, Path]]) -> None:
    for path in placed:
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            logger.error("Packager: could not remove partial %s: %s", path, exc)
    for backup, original in reversed(backups):
        try:
            os.replace(backup, original)
        except OSError as exc:
            logger.error("Packager: could not restore %s from %s: %s", original, backup, exc)


def _prune_empty_dirs(paths: Sequence[Path], output_dir: Path) -> None:
    for path in paths:
        parent = path.parent
        if parent != output_dir and parent.is_dir() and not any(parent.iterdir()):
            parent.rmdir()


def assemble(artifacts: Sequence[BuildArtifact], output_dir: Path) -> dict[StepKind, Path]:
    """Place every artifact at its canonical path as one unit.

    Copies are staged beside their targets first. The previous files (and any
    canonical artifact this build did not produce) are then moved aside, and
    the staged copies moved in. Any failure restores the moved-aside files, so
    ``output_dir`` holds either the previous build or this one, never a mix.
    """

    layout = OutputLayout(output_dir)
    staged: list[tuple[Path, Path]] = []
    current = output_dir
    try:
        output_dir.mkdir(parents=True, exist_ok=True)
        for artifact in artifacts:
            target = canonical_path(layout, artifact.kind)
            current = target
            target.parent.mkdir(parents=True, exist_ok=True)
            temp = _temp_sibling(target)
            shutil.copyfile(artifact.produced_path, temp)
            staged.append((temp, target))
    except OSError as exc:
        _discard([temp for temp, _ in staged])
        raise WriteFailure(current, exc) from exc

    produced = {artifact.kind for artifact in artifacts}
    stale = [
        canonical_path(layout, kind)
        for kind in StepKind
        if kind not in produced and canonical_path(layout, kind).exists()
    ]
    backups: list[tuple[Path, Path]] = []
    placed_paths: list[Path] = []
    try:
        for target in [target for _, target in staged] + stale:
            current = target
            if target.exists():
                backup = _backup_sibling(target)
                os.replace(target, backup)
                backups.append((backup, target))
        for temp, target in staged:
            current = target
            os.replace(temp, target)
            placed_paths.append(target)
    except OSError as exc:
        _restore(placed_paths, backups)
        _discard([temp for temp, _ in staged])
        raise WriteFailure(current, exc) from exc

    _discard([backup for backup, _ in backups])
    _prune_empty_dirs(stale, output_dir)
    for path in stale:
        logger.info("Packager: removed stale %s", path)
    placed: dict[StepKind, Path] = {}
    for artifact, (_, target) in zip(artifacts, staged):
        placed[artifact.kind] = target
        logger.info("Packager: %s -> %s", artifact.kind.value, target)
    return placed


def write_receipt(payload: dict[str, Any], output_dir: Path) -> Path:
    path = OutputLayout(output_dir).receipt_path
    temp = _temp_sibling(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        temp.write_text(
            json.dumps(payload, sort_keys=True, ensure_ascii=True, indent=2) + "\n",
            encoding="utf-8",
        )
        os.replace(temp, path)
    except OSError as exc:
        _discard([temp])
        raise WriteFailure(path, exc) from exc
    return path
