"""Structural JSON Schema for manifest trees."""

from __future__ import annotations

from typing import Any

from jsonschema import Draft202012Validator

from locutus_build.core.errors import InvalidField

# Types and known keys only. Required fields, enums and cross-section rules are
# checked by the model so each gets its own error kind.
_OPTIONS_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {"webpack": {"type": "boolean"}},
    "additionalProperties": False,
}

MANIFEST_SCHEMA: dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "properties": {
        "contract": {
            "type": "object",
            "properties": {
                "type": {"type": "string"},
                "lang": {"type": "string"},
                "output_dir": {"type": "string", "minLength": 1},
            },
            "additionalProperties": False,
        },
        "webapp": {
            "type": "object",
            "properties": {
                "lang": {"type": "string"},
                "metadata": {"type": "string", "minLength": 1},
                "typescript": _OPTIONS_SCHEMA,
                "javascript": _OPTIONS_SCHEMA,
                "state-sources": {"type": "object"},
                "dependencies": {"type": "object"},
            },
            "additionalProperties": False,
        },
        "state": {"type": "object"},
    },
}

_VALIDATOR = Draft202012Validator(MANIFEST_SCHEMA)


def validate_structure(tree: Any) -> list[InvalidField]:
    errors = sorted(
        _VALIDATOR.iter_errors(tree),
        key=lambda error: ([str(part) for part in error.path], error.message),
    )
    found: list[InvalidField] = []
    for error in errors:
        field = ".".join(str(part) for part in error.path) if error.path else "manifest"
        found.append(InvalidField(field, error.message))
    return found
