"""Periodic progress logging while a build step waits on an external tool."""

from __future__ import annotations

import logging
import os
import threading
import time
from contextlib import contextmanager
from typing import Iterator, Optional

HEARTBEAT_ENV_VAR = "LOCUTUS_BUILD_HEARTBEAT_SECS"
_DEFAULT_INTERVAL_SECONDS = 60.0


def heartbeat_interval() -> float:
    """Seconds between progress lines; zero or less disables them."""
    raw = os.environ.get(HEARTBEAT_ENV_VAR)
    if raw is None or not raw.strip():
        return _DEFAULT_INTERVAL_SECONDS
    try:
        return float(raw)
    except ValueError:
        logging.getLogger(__name__).warning(
            "%s=%r is not a number; using %.0fs", HEARTBEAT_ENV_VAR, raw, _DEFAULT_INTERVAL_SECONDS
        )
        return _DEFAULT_INTERVAL_SECONDS


@contextmanager
def step_heartbeat(
    logger: logging.Logger, label: str, interval: Optional[float] = None
) -> Iterator[None]:
    seconds = heartbeat_interval() if interval is None else interval
    if seconds <= 0:
        yield
        return

    done = threading.Event()
    started = time.monotonic()

    def _beat() -> None:
        beats = 0
        while not done.wait(seconds):
            beats += 1
            logger.info(
                "%s still running (elapsed=%.1fs, heartbeat=%d)",
                label,
                time.monotonic() - started,
                beats,
            )

    beater = threading.Thread(target=_beat, name=f"heartbeat-{label}", daemon=True)
    beater.start()
    try:
        yield
    finally:
        done.set()
        beater.join(timeout=1.0)
