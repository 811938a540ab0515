from __future__ import annotations

from pathlib import Path

import pytest

from locutus_build.core.errors import (
    BuildFailed,
    InvalidField,
    ManifestInvalid,
    MissingField,
    MissingSection,
    MissingToolchain,
    StepCancelled,
    ToolchainFailure,
    WriteFailure,
    describe_failure,
)


def test_manifest_invalid_requires_errors() -> None:
    with pytest.raises(ValueError):
        ManifestInvalid(Path("locutus.toml"), [])


def test_missing_field_names_its_section() -> None:
    err = MissingField("webapp.lang")
    assert err.section == "webapp"
    assert err.field == "webapp.lang"
    assert str(err).startswith("MISSING_FIELD [webapp]")


def test_describe_manifest_invalid_lists_every_error() -> None:
    exc = ManifestInvalid(
        Path("/proj/locutus.toml"),
        [MissingSection("webapp"), InvalidField("contract.type", "'x' is not one of: standard, webapp")],
    )
    text = describe_failure(exc)
    lines = text.splitlines()
    assert lines[0] == "manifest invalid: /proj/locutus.toml"
    assert lines[1].startswith("  - [webapp] MISSING_SECTION")
    assert lines[2].startswith("  - [contract] INVALID_FIELD")


def test_describe_build_failed_includes_tool_output() -> None:
    exc = BuildFailed(
        {
            "compile_contract": ToolchainFailure(
                "compile_contract", "rust", 101, output_tail="error: expected `;`\nfailed"
            ),
            "build_webapp": MissingToolchain("build_webapp", "npm"),
        }
    )
    lines = describe_failure(exc).splitlines()
    assert lines[0] == "build failed:"
    assert lines[1].startswith("  - step build_webapp: MISSING_TOOLCHAIN")
    assert lines[2].startswith("  - step compile_contract: TOOLCHAIN_FAILURE")
    assert lines[3:] == ["      | error: expected `;`", "      | failed"]
    assert not exc.cancelled


def test_build_failed_reports_cancellation() -> None:
    exc = BuildFailed({"build_webapp": StepCancelled("build_webapp")})
    assert exc.cancelled


def test_describe_packaging_failure() -> None:
    exc = WriteFailure(Path("/out/state/state.bin"), PermissionError("denied"))
    assert describe_failure(exc).startswith("packaging failed: WRITE_FAILURE /out/state/state.bin")
