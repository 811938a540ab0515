"""Artifact digests.

Artifacts are hashed in a single read that feeds both SHA-256 (receipts) and
BLAKE2s-256 (the contract code key). The file is stat-ed before and after the
read; a change in between means a tool was still writing it.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from pathlib import Path

from locutus_build.core.errors import BuildToolError

_CHUNK_BYTES = 1024 * 1024


class HashingError(BuildToolError):
    """Raised when an artifact is missing or changes while it is hashed."""


@dataclass(frozen=True)
class FileDigest:
    path: Path
    size_bytes: int
    sha256_hex: str
    blake2s_hex: str


def digest_file(path: Path) -> FileDigest:
    try:
        before = path.stat()
    except FileNotFoundError as exc:
        raise HashingError(f"cannot hash missing file: {path}") from exc
    sha = hashlib.sha256()
    blake = hashlib.blake2s(digest_size=32)
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(_CHUNK_BYTES), b""):
            sha.update(chunk)
            blake.update(chunk)
    after = path.stat()
    if (before.st_size, before.st_mtime_ns) != (after.st_size, after.st_mtime_ns):
        raise HashingError(f"file changed while hashing: {path}")
    return FileDigest(
        path=path,
        size_bytes=after.st_size,
        sha256_hex=sha.hexdigest(),
        blake2s_hex=blake.hexdigest(),
    )
