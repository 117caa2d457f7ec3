import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from mindcanvas.config import LayoutConfig  # noqa: E402
from mindcanvas.document import (  # noqa: E402
    STRUCTURE_NODE,
    Document,
    Edge,
    ImageContent,
    LinkContent,
    Node,
    OrderedIdSet,
    TextContent,
)
from mindcanvas.layout import (  # noqa: E402
    ceil_to_grid,
    compute_view,
    estimate_size,
    layout_tree,
    snap_to_grid,
)


def child(node_id, parent_id, width=60, height=40, children=()):
    return Node(node_id, structure=STRUCTURE_NODE, parent_id=parent_id,
                content=TextContent(node_id), children_ids=list(children),
                width=width, height=height)


def test_two_children_are_centred_on_the_parent():
    nodes = {
        "A": Node("A", children_ids=["B", "C"], width=100, height=40),
        "B": child("B", "A"),
        "C": child("C", "A"),
    }
    result = layout_tree(nodes["A"], nodes).by_id()

    assert result["A"].area_height == 100
    assert (result["A"].x, result["A"].y) == (0, 0)
    assert result["B"].y == -30
    assert result["C"].y == 30
    assert result["B"].x == result["C"].x == 100 + 80
    # Symmetric about the parent's vertical centre
    centre = result["A"].y + result["A"].height / 2
    b_mid = result["B"].y + result["B"].height / 2
    c_mid = result["C"].y + result["C"].height / 2
    assert centre - b_mid == c_mid - centre


def test_root_anchor_is_its_own_position():
    nodes = {"R": Node("R", x=120, y=-40, width=100, height=40)}
    placed = layout_tree(nodes["R"], nodes).positioned_nodes
    assert len(placed) == 1
    assert (placed[0].x, placed[0].y) == (120, -40)
    assert placed[0].is_root


def test_sibling_bands_never_overlap():
    # Uneven tree: a tall node and a deep branch among small leaves
    nodes = {
        "R": Node("R", children_ids=["a", "b", "c"], width=100, height=40),
        "a": child("a", "R", children=["a1", "a2", "a3"]),
        "a1": child("a1", "a"),
        "a2": child("a2", "a", height=120),
        "a3": child("a3", "a", children=["a31", "a32"]),
        "a31": child("a31", "a3"),
        "a32": child("a32", "a3"),
        "b": child("b", "R", height=200),
        "c": child("c", "R", children=["c1"]),
        "c1": child("c1", "c"),
    }
    placed = layout_tree(nodes["R"], nodes).by_id()

    for node in nodes.values():
        assert placed[node.id].area_height >= placed[node.id].height
        bands = []
        for child_id in node.children_ids:
            p = placed[child_id]
            top = p.y - (p.area_height - p.height) / 2
            bands.append((top, top + p.area_height))
        for (_, upper_end), (lower_start, _) in zip(bands, bands[1:]):
            assert upper_end <= lower_start


def test_structural_edges_are_derived():
    nodes = {
        "A": Node("A", children_ids=["B"], width=100, height=40),
        "B": child("B", "A"),
    }
    edges = layout_tree(nodes["A"], nodes).edges
    assert [(e.id, e.source, e.target, e.structural) for e in edges] == [
        ("e-A-B", "A", "B", True)
    ]


def test_missing_children_and_roots_are_skipped():
    nodes = {
        "A": Node("A", children_ids=["ghost", "B"], width=100, height=40),
        "B": child("B", "A"),
    }
    doc = Document(nodes=nodes, root_nodes=OrderedIdSet(["A", "nowhere"]),
                   edges=(Edge("m", "A", "gone"),))
    view = compute_view(doc)
    assert [p.id for p in view.positioned_nodes] == ["A", "B"]
    assert all(e.id != "m" for e in view.edges)
    assert view.by_id()["B"].y == 0


def test_layout_does_not_touch_the_document():
    nodes = {
        "A": Node("A", children_ids=["B"], width=100, height=40),
        "B": child("B", "A"),
    }
    layout_tree(nodes["A"], nodes)
    assert (nodes["B"].x, nodes["B"].y) == (0.0, 0.0)
    assert nodes["B"].width == 60


def test_compute_view_lists_manual_edges():
    doc = Document(
        nodes={"A": Node("A"), "B": Node("B", x=300)},
        root_nodes=OrderedIdSet(["A", "B"]),
        edges=(Edge("e-A-r-B-l", "A", "B", "r", "l", "label"),),
    )
    view = compute_view(doc)
    manual = [e for e in view.edges if not e.structural]
    assert len(manual) == 1
    assert manual[0].label == "label"
    assert manual[0].source_handle == "r"


def test_estimate_sizes():
    config = LayoutConfig()
    assert estimate_size(Node("t", content=TextContent("abc")), config) == (100, 40)
    assert estimate_size(Node("t", content=TextContent("x" * 40)), config) == (584, 40)
    assert estimate_size(Node("t", content=TextContent("x" * 10)), config) == (164, 40)
    assert estimate_size(Node("i", content=ImageContent(ratio=2.0)), config) == (200, 100)
    fixed = Node("i", content=ImageContent(ratio=2.0), width=300, height=50, fixed_size=True)
    assert estimate_size(fixed, config) == (300, 50)
    assert estimate_size(Node("l", content=LinkContent("https://example.com")), config) == (300, 100)


def test_sizes_are_snapped_to_grid():
    nodes = {"A": Node("A", content=TextContent("x" * 10))}
    placed = layout_tree(nodes["A"], nodes).positioned_nodes[0]
    assert placed.width == 180
    assert placed.height == 40


def test_grid_helpers():
    assert ceil_to_grid(101, 20) == 120
    assert ceil_to_grid(120, 20) == 120
    assert snap_to_grid(29, 20) == 20
    assert snap_to_grid(31, 20) == 40
    assert ceil_to_grid(7, 0) == 7
