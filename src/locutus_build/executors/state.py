"""State packaging and the length-prefixed state blob format.

A packaged state is a sequence of records, each a little-endian u64 length
followed by that many bytes:

    metadata | web archive (tar.xz) | state document (canonical JSON)

The web container state produced by a webapp build is the first two records on
their own. Contracts without a web application carry two empty records.
"""

from __future__ import annotations

import io
import json
import logging
import lzma
import struct
import tarfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Sequence

from locutus_build.core.errors import StepError
from locutus_build.core.hashing import digest_file
from locutus_build.executors.base import BuildArtifact, ExecutionContext, StepExecutor
from locutus_build.plan import BuildStep, StateInputs, StepKind

logger = logging.getLogger(__name__)

_LENGTH = struct.Struct("<Q")
STATE_FILENAME = "state.bin"


class StateFormatError(ValueError):
    """Raised when a state blob cannot be decoded."""


def encode_records(records: Iterable[bytes]) -> bytes:
    buffer = io.BytesIO()
    for record in records:
        buffer.write(_LENGTH.pack(len(record)))
        buffer.write(record)
    return buffer.getvalue()


def decode_records(data: bytes, count: int) -> list[bytes]:
    records: list[bytes] = []
    offset = 0
    for index in range(count):
        if offset + _LENGTH.size > len(data):
            raise StateFormatError(f"truncated length prefix for record {index}")
        (length,) = _LENGTH.unpack_from(data, offset)
        offset += _LENGTH.size
        if offset + length > len(data):
            raise StateFormatError(f"record {index} declares {length} bytes, {len(data) - offset} available")
        records.append(data[offset : offset + length])
        offset += length
    if offset != len(data):
        raise StateFormatError(f"{len(data) - offset} trailing bytes after {count} records")
    return records


def encode_web_state(metadata: bytes, web_archive: bytes) -> bytes:
    return encode_records([metadata, web_archive])


def canonical_document(document: dict[str, Any]) -> bytes:
    return json.dumps(
        document,
        sort_keys=True,
        ensure_ascii=True,
        separators=(",", ":"),
        default=str,
    ).encode("utf-8")


@dataclass(frozen=True)
class StatePackage:
    metadata: bytes
    web_archive: bytes
    document: dict[str, Any]

    def web_files(self) -> list[str]:
        if not self.web_archive:
            return []
        try:
            with tarfile.open(fileobj=io.BytesIO(self.web_archive), mode="r:xz") as archive:
                return sorted(member.name for member in archive.getmembers() if member.isfile())
        except (tarfile.TarError, lzma.LZMAError, EOFError) as exc:
            raise StateFormatError(f"web archive record is not a valid tar.xz: {exc}") from exc

    def summary(self) -> dict[str, Any]:
        return {
            "metadata_bytes": len(self.metadata),
            "web_archive_bytes": len(self.web_archive),
            "web_files": self.web_files(),
            "document": self.document,
        }


def read_state_package(data: bytes) -> StatePackage:
    metadata, web_archive, raw_document = decode_records(data, 3)
    try:
        document = json.loads(raw_document.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise StateFormatError(f"state document is not valid JSON: {exc}") from exc
    if not isinstance(document, dict):
        raise StateFormatError("state document must be a JSON object")
    return StatePackage(metadata=metadata, web_archive=web_archive, document=document)


class PackageStateExecutor(StepExecutor):
    """Merges upstream artifacts and literal [state] entries into one blob."""

    kind = StepKind.PACKAGE_STATE

    def __init__(
        self,
        step: BuildStep,
        context: ExecutionContext,
        upstream: Sequence[BuildArtifact] = (),
    ) -> None:
        super().__init__(step, context)
        self.upstream = {artifact.kind: artifact for artifact in upstream}

    @property
    def inputs(self) -> StateInputs:
        assert isinstance(self.step.inputs, StateInputs)
        return self.step.inputs

    @property
    def output_file(self) -> Path:
        return self.work_dir / STATE_FILENAME

    def prepare(self) -> None:
        super().prepare()
        missing = [kind.value for kind in self.step.depends_on if kind not in self.upstream]
        if missing:
            raise StepError(self.name, f"upstream outputs missing: {', '.join(missing)}")

    def run(self) -> None:
        metadata = b""
        web_archive = b""
        code_hash = None
        compiled = self.upstream.get(StepKind.COMPILE_CONTRACT)
        if compiled is not None:
            code_hash = digest_file(compiled.produced_path).blake2s_hex
        web = self.upstream.get(StepKind.BUILD_WEBAPP)
        if web is not None:
            try:
                metadata, web_archive = decode_records(web.produced_path.read_bytes(), 2)
            except StateFormatError as exc:
                raise StepError(self.name, f"invalid web state {web.produced_path}: {exc}") from exc
        document = {
            "contract_code_hash": code_hash,
            "contract_type": self.inputs.contract_type.value,
            "entries": dict(self.inputs.entries),
        }
        blob = encode_records([metadata, web_archive, canonical_document(document)])
        self.output_file.write_bytes(blob)
        logger.info(
            "step %s: packaged %d bytes (upstream=%s, entries=%d)",
            self.name,
            len(blob),
            ",".join(sorted(kind.value for kind in self.upstream)) or "-",
            len(self.inputs.entries),
        )

    def collect_output(self) -> BuildArtifact:
        return self.artifact(self.output_file)
