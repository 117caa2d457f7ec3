#!/usr/bin/env python3
"""Setup script for MindCanvas."""

import os
import sys
from setuptools import setup, find_packages


def _run_install_preflight() -> None:
    """Fail fast on an unsupported interpreter.

    Note: installing from a wheel will not execute setup.py, so the CLI
    runs the same checks again at startup.
    """
    if os.environ.get("MINDCANVAS_SKIP_PREFLIGHT") == "1":
        return
    try:
        from mindcanvas.preflight import run_preflight_or_die
        # Do NOT require Python deps before pip has had a chance to install them.
        run_preflight_or_die(check_deps=False)
    except SystemExit:
        raise
    except Exception as exc:  # pylint: disable=broad-except
        sys.stderr.write("\nMindCanvas preflight error while installing:\n")
        sys.stderr.write(str(exc) + "\n")
        raise SystemExit(1)


_run_install_preflight()

setup(
    name="mindcanvas",
    version="1.0.0",
    description="Document engine for an infinite mind-map canvas",
    author="MindCanvas Project",
    license="MIT",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.11",
    install_requires=[
        "PyGObject>=3.46.0",
        "pycairo>=1.25.0",
    ],
    extras_require={
        "test": ["pytest>=7.0"],
    },
    entry_points={
        "console_scripts": [
            "mindcanvas=mindcanvas.cli:main",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Operating System :: POSIX :: Linux",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Office/Business",
    ],
)
