"""Environment and dependency preflight checks.

Set MINDCANVAS_SKIP_PREFLIGHT=1 to bypass (useful for development).
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass
from typing import Optional

MIN_PYTHON = (3, 11)


@dataclass(frozen=True)
class PreflightResult:
    ok: bool
    message: str


def _check_python_version() -> Optional[str]:
    if sys.version_info[:2] < MIN_PYTHON:
        found = ".".join(str(p) for p in sys.version_info[:3])
        wanted = ".".join(str(p) for p in MIN_PYTHON)
        return f"MindCanvas needs Python {wanted} or newer (found {found})."
    return None


def _check_python_deps() -> Optional[str]:
    """Return an error message if required deps are missing."""
    try:
        import cairo  # type: ignore[import-not-found]  # noqa: F401
    except ImportError as exc:
        return (
            "Missing Python dependency 'pycairo'. "
            "Install it with pip (pycairo) and ensure cairo is available. "
            f"Underlying error: {exc}"
        )

    try:
        from gi.repository import GLib  # type: ignore[import-not-found]  # noqa: F401
    except ImportError as exc:
        return (
            "Missing GLib bindings. Install PyGObject (python3-gobject on most "
            f"distributions). Underlying error: {exc}"
        )

    return None


def run_preflight(*, check_deps: bool = True) -> PreflightResult:
    """Run checks and return a structured result."""
    if os.environ.get("MINDCANVAS_SKIP_PREFLIGHT") == "1":
        return PreflightResult(True, "Preflight skipped via MINDCANVAS_SKIP_PREFLIGHT=1")

    version_error = _check_python_version()
    if version_error:
        return PreflightResult(False, version_error)

    if check_deps:
        dep_error = _check_python_deps()
        if dep_error:
            return PreflightResult(False, dep_error)

    return PreflightResult(True, "Preflight OK")


def run_preflight_or_die(*, check_deps: bool = True) -> None:
    result = run_preflight(check_deps=check_deps)
    if result.ok:
        return

    sys.stderr.write("\nMindCanvas preflight check failed:\n")
    sys.stderr.write(result.message)
    sys.stderr.write("\n\n")
    sys.stderr.write(
        "Suggested setup:\n"
        "  pip install PyGObject pycairo\n\n"
    )
    raise SystemExit(1)
