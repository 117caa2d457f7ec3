"""Command line helpers for MindCanvas project files.

Usage:
  mindcanvas verify project.json
  mindcanvas layout project.json --measure --out view.json

Preflight checks can be bypassed via MINDCANVAS_SKIP_PREFLIGHT=1.
"""

from __future__ import annotations

import argparse
import json
import logging
from dataclasses import asdict
from pathlib import Path

from mindcanvas.errors import MindCanvasError
from mindcanvas.storage import load_project

logger = logging.getLogger(__name__)


def view_to_dict(view) -> dict:
    """JSON-ready form of a layout result (the node payloads are left out)."""
    nodes = []
    for p in view.positioned_nodes:
        nodes.append({
            "id": p.id,
            "x": p.x,
            "y": p.y,
            "width": p.width,
            "height": p.height,
            "areaHeight": p.area_height,
            "root": p.is_root,
            "contentType": p.node.content_type,
        })
    return {"nodes": nodes, "edges": [asdict(e) for e in view.edges]}


def _cmd_verify(args: argparse.Namespace) -> int:
    doc = load_project(Path(args.file))
    print(f"Nodes: {len(doc.nodes)}  Roots: {len(doc.root_nodes)}  Edges: {len(doc.edges)}")
    violations = doc.check_invariants()
    if violations:
        for violation in violations:
            print(f"  ! {violation}")
        print(f"{len(violations)} invariant violation(s)")
        return 1
    print("OK")
    return 0


def _cmd_layout(args: argparse.Namespace) -> int:
    from mindcanvas.canvas import Canvas
    from mindcanvas.config import load_config

    canvas = Canvas(load_project(Path(args.file)), load_config())
    if args.measure:
        from mindcanvas.measure import measure_document
        measure_document(canvas)

    output = json.dumps(view_to_dict(canvas.view), indent=2)
    if args.out:
        out = Path(args.out).expanduser()
        out.write_text(output + "\n", encoding="utf-8")
        print(f"Wrote layout: {out.resolve()}")
    else:
        print(output)
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="mindcanvas")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="cmd", required=True)

    p_ver = sub.add_parser("verify", help="Check a project file for structural problems")
    p_ver.add_argument("file", help="Project .json file")
    p_ver.set_defaults(func=_cmd_verify)

    p_lay = sub.add_parser("layout", help="Print the computed layout of a project")
    p_lay.add_argument("file", help="Project .json file")
    p_lay.add_argument(
        "--measure",
        action="store_true",
        help="Measure text with cairo instead of using size estimates",
    )
    p_lay.add_argument("--out", help="Write the layout JSON here instead of stdout")
    p_lay.set_defaults(func=_cmd_layout)

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    from mindcanvas.preflight import run_preflight_or_die
    run_preflight_or_die(check_deps=args.cmd == "layout")

    try:
        return int(args.func(args))
    except (OSError, MindCanvasError) as exc:
        logger.error("%s", exc)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
