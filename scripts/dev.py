#!/usr/bin/env python3
"""Task runner for the permaskills packages.

Usage:
    python scripts/dev.py check       # Format check, lint and type check
    python scripts/dev.py format      # Format and apply lint fixes
    python scripts/dev.py test        # Run the test suite
    python scripts/dev.py test:cov    # Run the test suite with coverage
    python scripts/dev.py clean       # Remove tool caches and build output
"""

from __future__ import annotations

import shutil
import subprocess
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent

IMPORT_PACKAGES = (
    "permaskills_core",
    "permaskills_ao",
    "permaskills_arweave",
    "permaskills_mcp_server",
)

ARTIFACTS = (
    "__pycache__",
    ".pytest_cache",
    ".mypy_cache",
    ".ruff_cache",
    "*.egg-info",
    "build",
    "dist",
    "htmlcov",
    ".coverage",
)


def _run(*args: str) -> int:
    print(f"\n$ {' '.join(args)}\n")
    return subprocess.run([sys.executable, "-m", *args], cwd=ROOT, check=False).returncode


def check() -> int:
    """Format check, lint and type check without touching files."""
    mypy_args = [arg for pkg in IMPORT_PACKAGES for arg in ("-p", pkg)]
    return max(
        _run("ruff", "format", "--check", "packages/"),
        _run("ruff", "check", "packages/"),
        _run("mypy", *mypy_args),
    )


def fmt() -> int:
    """Format code and apply lint fixes."""
    return _run("ruff", "format", "packages/") or _run("ruff", "check", "--fix", "packages/")


def test() -> int:
    """Run the test suite."""
    return _run("pytest", "packages/")


def test_cov() -> int:
    """Run the test suite with a coverage report."""
    cov_args = [f"--cov={pkg}" for pkg in IMPORT_PACKAGES]
    return _run("pytest", "packages/", *cov_args, "--cov-report=term-missing")


def clean() -> int:
    """Remove tool caches and build output."""
    removed = 0
    for pattern in ARTIFACTS:
        for path in ROOT.rglob(pattern):
            if ".venv" in path.relative_to(ROOT).parts:
                continue
            if path.is_dir():
                shutil.rmtree(path)
            else:
                path.unlink()
            removed += 1
    print(f"Removed {removed} item(s).")
    return 0


TASKS = {
    "check": check,
    "format": fmt,
    "test": test,
    "test:cov": test_cov,
    "clean": clean,
}


def main() -> None:
    task = TASKS.get(sys.argv[1]) if len(sys.argv) > 1 else None
    if task is None:
        print(__doc__)
        sys.exit(0 if len(sys.argv) < 2 or sys.argv[1] in ("-h", "--help") else 1)
    sys.exit(task())


if __name__ == "__main__":
    main()
