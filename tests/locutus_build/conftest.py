from __future__ import annotations

import sys
import textwrap
from pathlib import Path

import pytest

from locutus_build.config import ToolchainProfile

# Stand-ins for cargo and npm/npx. Each appends its argv to $FAKE_TOOL_LOG, and
# its start/end wall-clock times to $FAKE_TOOL_TIMES, so
# tests can assert which tools ran and whether they overlapped.
_FAKE_CARGO = textwrap.dedent(
    """
    import os
    import sys
    import time
    from pathlib import Path

    started = time.time()
    args = sys.argv[1:]
    log = os.environ.get("FAKE_TOOL_LOG")
    if log:
        with open(log, "a", encoding="utf-8") as handle:
            handle.write("cargo " + " ".join(args) + "\\n")
    time.sleep(float(os.environ.get("FAKE_TOOL_SLEEP", "0")))
    exit_code = int(os.environ.get("FAKE_CARGO_EXIT", "0"))
    if exit_code:
        print("error[E0425]: simulated compile failure")
        sys.exit(exit_code)
    target = args[args.index("--target") + 1]
    target_dir = Path(args[args.index("--target-dir") + 1])
    profile = "release" if "--release" in args else args[args.index("--profile") + 1]
    out = target_dir / target / profile / "demo_contract.wasm"
    out.parent.mkdir(parents=True, exist_ok=True)
    source = Path("contract.src")
    out.write_bytes(source.read_bytes() if source.exists() else b"\\x00asm\\x01\\x00\\x00\\x00")
    print("Finished release target(s)")
    times = os.environ.get("FAKE_TOOL_TIMES")
    if times:
        with open(times, "a", encoding="utf-8") as handle:
            handle.write(f"cargo {started} {time.time()}\\n")
    """
)

_FAKE_NPM = textwrap.dedent(
    """
    import os
    import sys
    import time
    from pathlib import Path

    started = time.time()
    args = sys.argv[1:]
    log = os.environ.get("FAKE_TOOL_LOG")
    if log:
        with open(log, "a", encoding="utf-8") as handle:
            handle.write("web " + " ".join(args) + "\\n")
    time.sleep(float(os.environ.get("FAKE_TOOL_SLEEP", "0")))
    command = args[0] if args else ""
    if command == "install":
        exit_code = int(os.environ.get("FAKE_NPM_EXIT", "0"))
        if exit_code:
            print("npm ERR! simulated install failure")
            sys.exit(exit_code)
        Path("node_modules").mkdir(exist_ok=True)
    elif command in ("webpack", "tsc"):
        dist = Path("dist")
        dist.mkdir(exist_ok=True)
        (dist / "index.html").write_text("<html>" + command + "</html>", encoding="utf-8")
        (dist / "app.js").write_text("console.log('bundled');", encoding="utf-8")
    else:
        sys.exit(64)
    times = os.environ.get("FAKE_TOOL_TIMES")
    if times:
        with open(times, "a", encoding="utf-8") as handle:
            handle.write(f"web-{command} {started} {time.time()}\\n")
    """
)


@pytest.fixture
def fake_tools(tmp_path: Path) -> dict[str, Path]:
    tools_dir = tmp_path / "fake-tools"
    tools_dir.mkdir()
    cargo = tools_dir / "fake_cargo.py"
    cargo.write_text(_FAKE_CARGO, encoding="utf-8")
    npm = tools_dir / "fake_npm.py"
    npm.write_text(_FAKE_NPM, encoding="utf-8")
    return {"cargo": cargo, "npm": npm}


@pytest.fixture
def tool_log(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    path = tmp_path / "tool-invocations.log"
    monkeypatch.setenv("FAKE_TOOL_LOG", str(path))
    return path


@pytest.fixture
def profile(fake_tools: dict[str, Path]) -> ToolchainProfile:
    return ToolchainProfile(
        cargo=[sys.executable, str(fake_tools["cargo"])],
        npm=[sys.executable, str(fake_tools["npm"])],
        npx=[sys.executable, str(fake_tools["npm"])],
        tool_timeout_seconds=60,
    )


def write_project(
    root: Path,
    manifest: str,
    *,
    rust: bool = True,
    web: bool = True,
    metadata: bytes | None = None,
) -> Path:
    """Lay out a contract project and return its manifest path."""

    root.mkdir(parents=True, exist_ok=True)
    manifest_path = root / "locutus.toml"
    manifest_path.write_text(textwrap.dedent(manifest), encoding="utf-8")
    if rust:
        (root / "Cargo.toml").write_text(
            '[package]\nname = "demo-contract"\nversion = "0.1.0"\n', encoding="utf-8"
        )
        (root / "contract.src").write_bytes(b"\x00asm-demo-contract")
    if web:
        (root / "package.json").write_text('{"name": "demo-web", "version": "0.1.0"}', encoding="utf-8")
        (root / "src").mkdir(exist_ok=True)
        (root / "src" / "index.js").write_text("export const hello = 1;\n", encoding="utf-8")
        (root / "src" / "index.html").write_text("<html>raw</html>\n", encoding="utf-8")
    if metadata is not None:
        (root / "metadata.bin").write_bytes(metadata)
    return manifest_path


@pytest.fixture
def make_project(tmp_path: Path):
    def _make(manifest: str, **kwargs) -> Path:
        return write_project(tmp_path / "project", manifest, **kwargs)

    return _make
