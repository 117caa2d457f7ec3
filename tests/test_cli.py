import json
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from mindcanvas.cli import main  # noqa: E402
from mindcanvas.document import (  # noqa: E402
    STRUCTURE_NODE,
    Document,
    Node,
    OrderedIdSet,
    TextContent,
)
from mindcanvas.storage import save_project  # noqa: E402


def write_project(path: Path) -> Path:
    nodes = {
        "R": Node("R", content=TextContent("root"), children_ids=["A"], width=100, height=40),
        "A": Node("A", structure=STRUCTURE_NODE, parent_id="R", content=TextContent("a")),
    }
    return save_project(Document(nodes=nodes, root_nodes=OrderedIdSet(["R"])), path)


def test_verify_ok(tmp_path, monkeypatch, capsys):
    monkeypatch.setenv("MINDCANVAS_SKIP_PREFLIGHT", "1")
    path = write_project(tmp_path / "demo.json")
    assert main(["verify", str(path)]) == 0
    out = capsys.readouterr().out
    assert "Nodes: 2" in out
    assert "OK" in out


def test_verify_reports_cycles(tmp_path, monkeypatch, capsys):
    monkeypatch.setenv("MINDCANVAS_SKIP_PREFLIGHT", "1")
    model = {
        "rootNodes": [],
        "nodes": {
            "A": {"id": "A", "parentId": "B", "childrenIds": ["B"], "content": "a"},
            "B": {"id": "B", "parentId": "A", "childrenIds": ["A"], "content": "b"},
        },
        "edges": [],
    }
    path = tmp_path / "cycle.json"
    path.write_text(json.dumps({"version": 1, "meta": {}, "model": model}), encoding="utf-8")
    assert main(["verify", str(path)]) == 1
    assert "cycle" in capsys.readouterr().out


def test_verify_unreadable_file(tmp_path, monkeypatch):
    monkeypatch.setenv("MINDCANVAS_SKIP_PREFLIGHT", "1")
    bad = tmp_path / "bad.json"
    bad.write_text("{", encoding="utf-8")
    assert main(["verify", str(bad)]) == 2
    assert main(["verify", str(tmp_path / "missing.json")]) == 2


def test_layout_writes_positions(tmp_path, monkeypatch):
    monkeypatch.setenv("MINDCANVAS_SKIP_PREFLIGHT", "1")
    monkeypatch.setenv("HOME", str(tmp_path))
    path = write_project(tmp_path / "demo.json")
    out = tmp_path / "view.json"

    assert main(["layout", str(path), "--measure", "--out", str(out)]) == 0
    view = json.loads(out.read_text(encoding="utf-8"))
    by_id = {n["id"]: n for n in view["nodes"]}
    assert by_id["R"]["root"] is True
    assert by_id["A"]["x"] == 180
    assert [e["id"] for e in view["edges"]] == ["e-R-A"]
