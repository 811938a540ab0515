"""Typed manifest model: validation and default filling in one pass."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Mapping, Optional, Type, TypeVar, Union

from locutus_build.core.errors import (
    InvalidField,
    ManifestError,
    ManifestInvalid,
    MismatchedOptionsSection,
    MissingField,
    MissingSection,
    UnexpectedSection,
    UnsupportedLanguage,
)
from locutus_build.core.paths import resolve_output_dir
from locutus_build.manifest.schema import validate_structure


class ContractType(str, Enum):
    STANDARD = "standard"
    WEBAPP = "webapp"


class SourceLanguage(str, Enum):
    RUST = "rust"


class WebLang(str, Enum):
    TYPESCRIPT = "typescript"
    JAVASCRIPT = "javascript"


@dataclass(frozen=True)
class TypescriptOptions:
    webpack: bool = False


@dataclass(frozen=True)
class JavascriptOptions:
    webpack: bool = False


LangOptions = Union[TypescriptOptions, JavascriptOptions]


def read_metadata_bytes(path: Optional[Path]) -> bytes:
    """File contents, or empty bytes when no metadata is configured."""
    if path is None:
        return b""
    return path.read_bytes()


_OPTIONS_BY_LANG: dict[WebLang, Type[LangOptions]] = {
    WebLang.TYPESCRIPT: TypescriptOptions,
    WebLang.JAVASCRIPT: JavascriptOptions,
}


@dataclass(frozen=True)
class ContractSpec:
    type: ContractType
    lang: Optional[SourceLanguage]
    output_dir: Path
    source_dir: Path


@dataclass(frozen=True)
class WebAppSpec:
    lang: WebLang
    options: LangOptions
    source_dir: Path
    metadata: Optional[Path] = None
    state_sources: Optional[Mapping[str, Any]] = None
    dependencies: Optional[Mapping[str, Any]] = None

    def read_metadata(self) -> bytes:
        return read_metadata_bytes(self.metadata)


@dataclass(frozen=True)
class StateSpec:
    entries: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Manifest:
    contract: ContractSpec
    manifest_path: Path
    webapp: Optional[WebAppSpec] = None
    state: Optional[StateSpec] = None

    @property
    def manifest_dir(self) -> Path:
        return self.manifest_path.parent


_E = TypeVar("_E", bound=Enum)


class _ManifestReader:
    def __init__(self, tree: Any, manifest_path: Path) -> None:
        self.tree: dict[str, Any] = tree if isinstance(tree, dict) else {}
        self.raw_tree = tree
        self.manifest_path = manifest_path
        self.base_dir = manifest_path.parent
        self.errors: list[ManifestError] = []

    def read(self) -> Manifest:
        self.errors.extend(validate_structure(self.raw_tree))
        contract = self._read_contract()
        webapp = self._read_webapp(contract.type if contract else None)
        state = self._read_state()
        if self.errors:
            raise ManifestInvalid(self.manifest_path, self.errors)
        assert contract is not None
        return Manifest(
            contract=contract,
            manifest_path=self.manifest_path,
            webapp=webapp,
            state=state,
        )

    def _table(self, parent: Mapping[str, Any], key: str) -> dict[str, Any]:
        value = parent.get(key)
        return value if isinstance(value, dict) else {}

    def _enum(self, value: Any, enum_cls: Type[_E], field_name: str) -> Optional[_E]:
        if not isinstance(value, str):
            return None
        try:
            return enum_cls(value.strip().lower())
        except ValueError:
            self.errors.append(
                UnsupportedLanguage(value, field_name, [member.value for member in enum_cls])
            )
            return None

    def _read_contract(self) -> Optional[ContractSpec]:
        if "contract" not in self.tree:
            self.errors.append(MissingSection("contract"))
        table = self._table(self.tree, "contract")

        contract_type: Optional[ContractType] = ContractType.STANDARD
        raw_type = table.get("type")
        if isinstance(raw_type, str):
            try:
                contract_type = ContractType(raw_type.strip().lower())
            except ValueError:
                allowed = ", ".join(member.value for member in ContractType)
                self.errors.append(
                    InvalidField("contract.type", f"'{raw_type}' is not one of: {allowed}")
                )
                contract_type = None
        elif raw_type is not None:
            contract_type = None

        lang = self._enum(table.get("lang"), SourceLanguage, "contract.lang")
        raw_output = table.get("output_dir")
        output_dir = resolve_output_dir(
            self.base_dir, raw_output if isinstance(raw_output, str) and raw_output else None
        )
        if contract_type is None:
            return None
        return ContractSpec(
            type=contract_type,
            lang=lang,
            output_dir=output_dir,
            source_dir=self.base_dir,
        )

    def _read_webapp(self, contract_type: Optional[ContractType]) -> Optional[WebAppSpec]:
        present = "webapp" in self.tree
        if not present:
            if contract_type is ContractType.WEBAPP:
                self.errors.append(MissingSection("webapp"))
            return None
        if contract_type is ContractType.STANDARD:
            self.errors.append(
                UnexpectedSection("webapp", "[webapp] requires contract.type = \"webapp\"")
            )
        table = self._table(self.tree, "webapp")

        lang: Optional[WebLang] = None
        if "lang" not in table:
            self.errors.append(MissingField("webapp.lang"))
        else:
            lang = self._enum(table.get("lang"), WebLang, "webapp.lang")

        if lang is not None:
            for candidate in WebLang:
                if candidate is not lang and candidate.value in table:
                    self.errors.append(
                        MismatchedOptionsSection(f"webapp.{candidate.value}", lang.value)
                    )

        metadata: Optional[Path] = None
        raw_metadata = table.get("metadata")
        if isinstance(raw_metadata, str) and raw_metadata:
            candidate_path = Path(raw_metadata).expanduser()
            metadata = candidate_path if candidate_path.is_absolute() else self.base_dir / candidate_path

        state_sources = table.get("state-sources")
        dependencies = table.get("dependencies")
        if lang is None:
            return None
        options_table = self._table(table, lang.value)
        webpack = options_table.get("webpack", False)
        options = _OPTIONS_BY_LANG[lang](webpack=webpack if isinstance(webpack, bool) else False)
        return WebAppSpec(
            lang=lang,
            options=options,
            source_dir=self.base_dir,
            metadata=metadata,
            state_sources=dict(state_sources) if isinstance(state_sources, dict) else None,
            dependencies=dict(dependencies) if isinstance(dependencies, dict) else None,
        )

    def _read_state(self) -> Optional[StateSpec]:
        raw = self.tree.get("state")
        if not isinstance(raw, dict):
            return None
        return StateSpec(entries=dict(raw))


def parse(tree: Any, manifest_path: Path) -> Manifest:
    """Build a validated manifest or raise ``ManifestInvalid`` with every problem found."""
    return _ManifestReader(tree, manifest_path).read()
