"""CLI front-end for the build orchestrator."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any

from locutus_build.config import resolve_profile
from locutus_build.core.errors import (
    BuildFailed,
    BuildToolError,
    ManifestInvalid,
    PackagingError,
    describe_failure,
)
from locutus_build.core.logging import configure_logging, parse_level
from locutus_build.core.paths import find_manifest
from locutus_build.executors.state import StateFormatError, read_state_package
from locutus_build.plan import group_stages
from locutus_build.runner import BuildOrchestrator

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_MANIFEST_INVALID = 2
EXIT_BUILD_FAILED = 3
EXIT_PACKAGING_FAILED = 4
EXIT_CANCELLED = 130


def _manifest_path(args: argparse.Namespace) -> Path:
    if args.manifest is not None:
        return args.manifest.expanduser().resolve()
    return find_manifest(Path.cwd())


def _emit(payload: dict[str, Any]) -> None:
    print(json.dumps(payload, sort_keys=True, ensure_ascii=True, indent=2))


def _cmd_check(orchestrator: BuildOrchestrator, args: argparse.Namespace) -> int:
    manifest = orchestrator.load(_manifest_path(args))
    print(f"manifest ok: {manifest.manifest_path} (type={manifest.contract.type.value})")
    return EXIT_OK


def _cmd_plan(orchestrator: BuildOrchestrator, args: argparse.Namespace) -> int:
    manifest, steps = orchestrator.plan(_manifest_path(args))
    stages = group_stages(steps)
    if args.json:
        _emit(
            {
                "manifest_path": str(manifest.manifest_path),
                "output_dir": str(manifest.contract.output_dir),
                "stages": [[step.describe() for step in stage] for stage in stages],
            }
        )
        return EXIT_OK
    print(f"output_dir={manifest.contract.output_dir}")
    for index, stage in enumerate(stages, start=1):
        mode = "concurrent" if len(stage) > 1 else "sequential"
        print(f"stage {index} ({mode}):")
        for step in stage:
            print(f"  {step.kind.value} -> {step.output_path}")
    return EXIT_OK


def _cmd_build(orchestrator: BuildOrchestrator, args: argparse.Namespace) -> int:
    report = orchestrator.build(_manifest_path(args))
    _emit(
        {
            "output_dir": str(report.output_dir),
            "receipt_path": str(report.receipt_path),
            "artifacts": {kind.value: str(path) for kind, path in report.placed.items()},
            "concurrent": [[kind.value for kind in group] for group in report.concurrent_groups],
        }
    )
    return EXIT_OK


def _cmd_inspect(_: BuildOrchestrator, args: argparse.Namespace) -> int:
    package = read_state_package(args.state_file.expanduser().read_bytes())
    _emit(package.summary())
    return EXIT_OK


_COMMANDS = {
    "check": _cmd_check,
    "plan": _cmd_plan,
    "build": _cmd_build,
    "inspect": _cmd_inspect,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="locutus-build",
        description="Build a contract (and optional web application) from its manifest.",
    )
    parser.add_argument("--log-level", default="INFO", help="Logging level (default: INFO).")
    parser.add_argument("--log-file", type=Path, default=None, help="Also write logs to this file.")
    parser.add_argument(
        "--profile",
        type=Path,
        default=None,
        help="Toolchain profile YAML (defaults to $LOCUTUS_BUILD_PROFILE, then built-ins).",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    manifest_help = "Manifest file (default: nearest locutus.toml in the current directory or its parents)."
    check = sub.add_parser("check", help="Validate the manifest and report every problem")
    check.add_argument("--manifest", type=Path, default=None, help=manifest_help)

    plan = sub.add_parser("plan", help="Show the resolved build steps")
    plan.add_argument("--manifest", type=Path, default=None, help=manifest_help)
    plan.add_argument("--output-dir", type=Path, default=None, help="Override contract.output_dir.")
    plan.add_argument("--json", action="store_true", help="Emit the plan as JSON")

    build = sub.add_parser("build", help="Run the build and package the output")
    build.add_argument("--manifest", type=Path, default=None, help=manifest_help)
    build.add_argument("--output-dir", type=Path, default=None, help="Override contract.output_dir.")

    inspect = sub.add_parser("inspect", help="Decode a packaged state blob")
    inspect.add_argument("state_file", type=Path, help="Path to state.bin")
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        level = parse_level(args.log_level)
    except ValueError as exc:
        parser.error(str(exc))
    configure_logging(level, args.log_file)

    orchestrator: BuildOrchestrator | None = None
    try:
        profile = resolve_profile(args.profile)
        logger.debug("command=%s profile=%s", args.command, args.profile or "<default>")
        orchestrator = BuildOrchestrator(profile, output_dir=getattr(args, "output_dir", None))
        return _COMMANDS[args.command](orchestrator, args)
    except ManifestInvalid as exc:
        print(describe_failure(exc), file=sys.stderr)
        return EXIT_MANIFEST_INVALID
    except BuildFailed as exc:
        print(describe_failure(exc), file=sys.stderr)
        return EXIT_CANCELLED if exc.cancelled else EXIT_BUILD_FAILED
    except PackagingError as exc:
        print(describe_failure(exc), file=sys.stderr)
        return EXIT_PACKAGING_FAILED
    except KeyboardInterrupt:
        if orchestrator is not None:
            orchestrator.cancel()
        print("build cancelled", file=sys.stderr)
        return EXIT_CANCELLED
    except (BuildToolError, StateFormatError, OSError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return EXIT_ERROR


if __name__ == "__main__":
    sys.exit(main())
