import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from mindcanvas.canvas import Canvas  # noqa: E402
from mindcanvas.config import EngineConfig  # noqa: E402
from mindcanvas.document import (  # noqa: E402
    STRUCTURE_ROOT,
    ImageContent,
    LinkContent,
    TextContent,
    VisualGeometry,
)


def make_canvas() -> Canvas:
    return Canvas(config=EngineConfig(strict=True))


def test_new_canvas_is_empty():
    canvas = make_canvas()
    assert canvas.document.nodes == {}
    assert canvas.view.positioned_nodes == []
    assert canvas.undo() is False


def test_add_root_and_children_update_the_view():
    canvas = make_canvas()
    views = []
    canvas.on_view_changed = views.append

    root = canvas.add_root(0, 0)
    children = canvas.add_child_batch([root, root])
    assert len(children) == 2
    assert canvas.document.nodes[root].children_ids == children
    assert len(views) == 2

    placed = canvas.view.by_id()
    assert placed[root].width == 100 and placed[root].height == 40
    assert placed[children[0]].x == 180
    assert placed[children[0]].y < placed[children[1]].y
    assert canvas.history.undo_description == "Add child"


def test_undo_redo_through_the_session():
    canvas = make_canvas()
    root = canvas.add_root(0, 0)
    before = canvas.document
    canvas.add_child_batch([root])
    after = canvas.document

    assert canvas.undo()
    assert canvas.document == before
    assert len(canvas.view.positioned_nodes) == 1
    assert canvas.redo()
    assert canvas.document == after
    assert len(canvas.view.positioned_nodes) == 2


def test_siblings_and_reorder():
    canvas = make_canvas()
    root = canvas.add_root(0, 0)
    first, = canvas.add_child_batch([root])
    second, = canvas.add_sibling_batch([first])
    assert canvas.document.nodes[root].children_ids == [first, second]
    assert canvas.move_node(second, -1) is True
    assert canvas.document.nodes[root].children_ids == [second, first]
    assert canvas.move_node(second, -1) is False
    assert canvas.add_sibling_batch([root]) == []


def test_reparent_cycle_attempt_changes_nothing():
    canvas = make_canvas()
    root = canvas.add_root(0, 0)
    child, = canvas.add_child_batch([root])
    grandchild, = canvas.add_child_batch([child])
    before = canvas.document
    depth = canvas.history.undo_depth

    assert canvas.move_node_to(child, grandchild, "child") is False
    assert canvas.document is before
    assert canvas.history.undo_depth == depth


def test_detach_and_delete_with_focus():
    canvas = make_canvas()
    root = canvas.add_root(0, 0)
    a, b = canvas.add_child_batch([root, root])
    canvas.add_child_batch([a, a])

    assert canvas.detach_node(a, 500, 500) is True
    node = canvas.document.nodes[a]
    assert node.structure == STRUCTURE_ROOT
    assert (node.x, node.y) == (500, 500)

    assert canvas.delete_nodes([b]) == root
    assert canvas.delete_nodes([a]) == root
    assert list(canvas.document.nodes) == [root]
    assert canvas.delete_nodes([]) is None
    assert canvas.history.undo_description == "Delete 1 node(s)"


def test_positions_and_history_flag():
    canvas = make_canvas()
    root = canvas.add_root(0, 0)
    depth = canvas.history.undo_depth
    assert canvas.update_node_position(root, 40, 60, record_history=False)
    assert canvas.history.undo_depth == depth
    assert canvas.view.by_id()[root].x == 40
    assert canvas.update_node_position("ghost", 0, 0) is False


def test_user_resize_fixes_size_and_debounces_layout():
    canvas = make_canvas()
    root = canvas.add_root(0, 0)
    assert canvas.update_node_size(root, 260, 90) is True
    node = canvas.document.nodes[root]
    assert node.fixed_size is True
    assert canvas.debouncer.pending
    assert canvas.view.by_id()[root].width == 100

    assert canvas.flush_layout() is True
    assert canvas.view.by_id()[root].width == 260
    assert canvas.view.by_id()[root].height == 100


def test_content_size_reports_skip_history_and_fixed_nodes():
    canvas = make_canvas()
    root = canvas.add_root(0, 0)
    depth = canvas.history.undo_depth

    assert canvas.report_content_size(root, 150, 60) is True
    assert canvas.history.undo_depth == depth
    assert canvas.report_content_size(root, 150, 60) is False
    canvas.flush_layout()
    assert canvas.view.by_id()[root].width == 160

    canvas.update_node_size(root, 300, 300)
    assert canvas.report_content_size(root, 10, 10) is False
    assert canvas.report_content_size("ghost", 10, 10) is False


def test_content_and_data_updates():
    canvas = make_canvas()
    root = canvas.add_root(0, 0)
    assert canvas.update_node_content(root, "hello") is True
    assert canvas.document.nodes[root].content == TextContent("hello")

    assert canvas.update_node_data(root, css_class="green") is True
    assert canvas.document.nodes[root].css_class == "green"
    assert canvas.update_node_data(root, no_such_field=1) is False

    image = canvas.add_content_node("image", {"path": "/tmp/a.png", "ratio": 2.0}, (300, 0))
    node = canvas.document.nodes[image]
    assert isinstance(node.content, ImageContent)
    assert (node.width, node.height) == (200, 100)

    assert canvas.update_node_data(image, ratio=4.0) is True
    assert canvas.debouncer.pending
    canvas.flush_layout()
    assert canvas.update_node_content(image, "text") is False


def test_link_nodes_and_metadata():
    canvas = make_canvas()
    root = canvas.add_root(0, 0)
    link = canvas.add_content_node("link", {"url": "https://example.com"}, (0, 0), parent_id=root)
    node = canvas.document.nodes[link]
    assert node.parent_id == root
    assert node.content == LinkContent("https://example.com", meta_title="Loading...")
    assert (node.width, node.height) == (300, 100)

    assert canvas.update_link_metadata(link, title="Example", description="desc")
    assert canvas.document.nodes[link].content.meta_title == "Example"
    assert canvas.add_content_node("video", {}, (0, 0)) is None
    assert canvas.add_content_node("link", {"url": "x"}, (0, 0), parent_id="ghost") is None


def test_manual_edge_lifecycle():
    canvas = make_canvas()
    a = canvas.add_root(0, 0)
    b = canvas.add_root(400, 0)
    c = canvas.add_root(800, 0)

    edge_id = canvas.create_edge(a, b, "right", "left")
    assert edge_id == f"e-{a}-right-{b}-left"
    assert canvas.create_edge(a, b, "right", "left") is None
    assert canvas.create_edge(a, "ghost") is None

    assert canvas.update_edge_label(edge_id, "depends on")
    assert canvas.update_edge_connection(edge_id, a, c, "bottom", None)
    edge = canvas.document.edges[0]
    assert (edge.id, edge.target, edge.source_handle, edge.label) == (
        edge_id, c, "bottom", "depends on")
    assert canvas.update_edge_connection(edge_id, a, "ghost") is False
    assert any(e.id == edge_id and not e.structural for e in canvas.view.edges)

    canvas.delete_nodes([c])
    assert canvas.document.edges == ()
    assert canvas.remove_edge(edge_id) is False
    canvas.undo()
    assert canvas.remove_edge(edge_id) is True
    assert canvas.document.edges == ()


def test_reconnect_onto_an_existing_connection_is_refused():
    canvas = make_canvas()
    a = canvas.add_root(0, 0)
    b = canvas.add_root(400, 0)
    c = canvas.add_root(800, 0)
    first = canvas.create_edge(a, b, "right", "left")
    second = canvas.create_edge(a, c, "right", "left")
    depth = canvas.history.undo_depth

    assert canvas.update_edge_connection(second, a, b, "right", "left") is False
    assert [e.id for e in canvas.document.edges] == [first, second]
    assert canvas.document.edges[1].target == c
    assert canvas.history.undo_depth == depth


def test_copy_paste_uses_the_last_view():
    canvas = make_canvas()
    root = canvas.add_root(100, 100)
    child, = canvas.add_child_batch([root])

    assert canvas.copy_selection([child]) == 1
    new_roots = canvas.paste()
    assert len(new_roots) == 1
    pasted = canvas.document.nodes[new_roots[0]]
    placed = canvas.view.by_id()
    # Copied from the on-screen spot of the child, nudged by the default offset
    assert (pasted.x, pasted.y) == (placed[child].x + 40, placed[child].y + 40)
    assert pasted.structure == STRUCTURE_ROOT
    assert canvas.history.undo_description == "Paste 1 node(s)"


def test_paste_with_explicit_visual_and_position():
    canvas = make_canvas()
    root = canvas.add_root(0, 0)
    canvas.add_child_batch([root, root])
    canvas.copy_selection([root], {root: VisualGeometry(x=7, y=8)})
    new_roots = canvas.paste((500, 500))
    pasted = canvas.document.nodes[new_roots[0]]
    assert (pasted.x, pasted.y) == (500, 500)
    assert len(pasted.children_ids) == 2
    assert canvas.paste(payload=None) != []


def test_empty_clipboard_paste_is_a_noop():
    canvas = make_canvas()
    assert canvas.copy_selection(["ghost"]) == 0
    assert canvas.paste() == []


def test_projection_load_resets_history(tmp_path):
    canvas = make_canvas()
    root = canvas.add_root(0, 0)
    canvas.add_child_batch([root])
    data = canvas.to_projection(tmp_path)

    other = make_canvas()
    other.add_root(50, 50)
    other.load_projection(data, tmp_path)
    assert other.document == canvas.document
    assert other.undo() is False
    assert len(other.view.positioned_nodes) == 2
