"""Manifest loading and the typed manifest model."""

from locutus_build.manifest.loader import load_config_tree, load_manifest
from locutus_build.manifest.model import (
    ContractSpec,
    ContractType,
    JavascriptOptions,
    LangOptions,
    Manifest,
    SourceLanguage,
    StateSpec,
    TypescriptOptions,
    WebAppSpec,
    WebLang,
    parse,
)

__all__ = [
    "ContractSpec",
    "ContractType",
    "JavascriptOptions",
    "LangOptions",
    "Manifest",
    "SourceLanguage",
    "StateSpec",
    "TypescriptOptions",
    "WebAppSpec",
    "WebLang",
    "load_config_tree",
    "load_manifest",
    "parse",
]
