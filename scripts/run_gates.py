#!/usr/bin/env python3
"""Run the bucketfs quality gates.

Stops at the first failing gate and returns its exit code.

Usage:
    python scripts/run_gates.py            # Run all gates
    python scripts/run_gates.py format     # ruff format --check
    python scripts/run_gates.py lint       # ruff check
    python scripts/run_gates.py typecheck  # mypy src/bucketfs
    python scripts/run_gates.py test       # pytest -q
"""

from __future__ import annotations

import subprocess
import sys
from pathlib import Path

REPO_ROOT = Path(__file__).parent.parent


def run_command(name: str, cmd: list[str]) -> None:
    """Run a gate command, raising CalledProcessError on non-zero exit."""
    print(f"\n{'=' * 60}")
    print(f"Running: {name}")
    print(f"Command: {' '.join(cmd)}")
    print("=" * 60)

    subprocess.run(cmd, cwd=REPO_ROOT, check=True)

    print(f"PASSED: {name}")


def gate_format() -> None:
    run_command("Format (ruff)", ["ruff", "format", "--check", "."])


def gate_lint() -> None:
    run_command("Lint (ruff)", ["ruff", "check", "."])


def gate_typecheck() -> None:
    run_command(
        "Typecheck (mypy)",
        [sys.executable, "-m", "mypy", "src/bucketfs", "--ignore-missing-imports"],
    )


def gate_test() -> None:
    run_command("Test (pytest)", [sys.executable, "-m", "pytest", "-q"])


GATES = {
    "format": gate_format,
    "lint": gate_lint,
    "typecheck": gate_typecheck,
    "test": gate_test,
}


def main() -> int:
    names = [a.lower() for a in sys.argv[1:]] or ["all"]
    if names == ["all"]:
        names = list(GATES)

    unknown = [n for n in names if n not in GATES]
    if unknown:
        print(f"Unknown gate: {', '.join(unknown)}")
        print(f"Available gates: {', '.join(GATES)}, all")
        return 1

    try:
        for name in names:
            GATES[name]()
    except subprocess.CalledProcessError as e:
        print(f"\nGATE FAILED (exit code {e.returncode})")
        return e.returncode

    print("\nALL GATES PASSED")
    return 0


if __name__ == "__main__":
    sys.exit(main())
