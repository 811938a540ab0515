"""Blocking external tool invocation with cancellation and timeouts."""

from __future__ import annotations

import logging
import os
import shlex
import shutil
import subprocess
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Optional, Sequence

import psutil

from locutus_build.core.errors import MissingToolchain, StepCancelled, ToolchainTimeout

logger = logging.getLogger(__name__)

_POLL_INTERVAL_SECONDS = 0.2
_TERMINATE_GRACE_SECONDS = 5.0


@dataclass(frozen=True)
class ToolRun:
    command: tuple[str, ...]
    exit_code: int
    log_path: Path
    elapsed_seconds: float

    def output_tail(self, max_lines: int = 20) -> str:
        try:
            lines = self.log_path.read_text(encoding="utf-8", errors="replace").splitlines()
        except OSError:
            return ""
        return "\n".join(lines[-max_lines:])


def tool_available(executable: str) -> bool:
    return shutil.which(executable) is not None


def terminate_process_tree(pid: int, timeout_seconds: float = _TERMINATE_GRACE_SECONDS) -> None:
    try:
        root = psutil.Process(pid)
    except psutil.NoSuchProcess:
        return
    try:
        members = root.children(recursive=True)
    except psutil.NoSuchProcess:
        members = []
    members.append(root)
    for proc in members:
        try:
            proc.terminate()
        except psutil.NoSuchProcess:
            continue
    _, alive = psutil.wait_procs(members, timeout=timeout_seconds)
    for proc in alive:
        try:
            proc.kill()
        except psutil.NoSuchProcess:
            continue
    psutil.wait_procs(alive, timeout=max(1.0, timeout_seconds))


def run_tool(
    command: Sequence[str],
    *,
    step: str,
    tool: str,
    cwd: Path,
    log_path: Path,
    env: Optional[Mapping[str, str]] = None,
    timeout_seconds: Optional[float] = None,
    cancel_event: Optional[threading.Event] = None,
) -> ToolRun:
    """Run ``command`` to completion; output goes to ``log_path``."""

    argv = [str(part) for part in command]
    if not argv or not tool_available(argv[0]):
        raise MissingToolchain(step, tool)
    log_path.parent.mkdir(parents=True, exist_ok=True)
    start = time.monotonic()
    with log_path.open("a", encoding="utf-8") as handle:
        handle.write(f"$ {shlex.join(argv)}\n")
        handle.flush()
        popen_kwargs: dict[str, Any] = {
            "stdout": handle,
            "stderr": subprocess.STDOUT,
            "stdin": subprocess.DEVNULL,
            "cwd": str(cwd),
            "env": dict(env) if env is not None else None,
            "shell": False,
        }
        if os.name == "nt":
            popen_kwargs["creationflags"] = subprocess.CREATE_NEW_PROCESS_GROUP
        else:
            popen_kwargs["start_new_session"] = True
        try:
            process = subprocess.Popen(argv, **popen_kwargs)  # noqa: S603
        except FileNotFoundError as exc:
            raise MissingToolchain(step, tool) from exc
        logger.debug("step %s: started %s (pid=%s)", step, tool, process.pid)
        deadline = start + timeout_seconds if timeout_seconds else None
        while True:
            try:
                exit_code = process.wait(timeout=_POLL_INTERVAL_SECONDS)
                break
            except subprocess.TimeoutExpired:
                pass
            except KeyboardInterrupt:
                terminate_process_tree(process.pid)
                process.wait()
                raise
            if cancel_event is not None and cancel_event.is_set():
                logger.warning("step %s: cancelling %s (pid=%s)", step, tool, process.pid)
                terminate_process_tree(process.pid)
                process.wait()
                raise StepCancelled(step)
            if deadline is not None and time.monotonic() >= deadline:
                logger.error("step %s: %s timed out after %.1fs", step, tool, timeout_seconds)
                terminate_process_tree(process.pid)
                process.wait()
                raise ToolchainTimeout(step, tool, float(timeout_seconds or 0.0))
    return ToolRun(
        command=tuple(argv),
        exit_code=exit_code,
        log_path=log_path,
        elapsed_seconds=time.monotonic() - start,
    )
