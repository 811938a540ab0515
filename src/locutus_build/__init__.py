"""
Manifest-driven build orchestrator for contracts and their web applications.

`locutus_build.runner.run_build` is the programmatic entry point; the
`locutus-build` console script wraps it (see `locutus_build.cli`).
"""

__version__ = "0.1.0"

__all__: list[str] = ["__version__"]
