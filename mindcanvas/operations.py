"""Structural edits expressed as draft mutations.

Every function here takes the `Draft` of an open transaction and edits it in
place. Invalid requests (missing ids, cycles, roots without a parent slot)
leave the draft untouched, log a warning and report failure through the
return value.
"""

import logging
import uuid
from typing import Iterable, List, Mapping, Optional

from mindcanvas.document import (
    STRUCTURE_NODE,
    STRUCTURE_ROOT,
    Edge,
    Node,
    TextContent,
)
from mindcanvas.transaction import Draft

logger = logging.getLogger(__name__)

RELATION_CHILD = "child"
RELATION_ABOVE = "above"
RELATION_BELOW = "below"
RELATIONS = (RELATION_CHILD, RELATION_ABOVE, RELATION_BELOW)


def new_node_id() -> str:
    return str(uuid.uuid4())


def make_text_node(text: str, parent: Optional[Node] = None,
                   x: float = 0.0, y: float = 0.0) -> Node:
    """Fresh text node, attached to `parent` when given, else a free root."""
    return Node(
        id=new_node_id(),
        structure=STRUCTURE_NODE if parent else STRUCTURE_ROOT,
        content=TextContent(text=text),
        parent_id=parent.id if parent else None,
        x=x,
        y=y,
        css_class=parent.css_class if parent else None,
    )


# ==================== Insert ====================

def add_root(draft: Draft, node: Node) -> str:
    """Place an already-built free node on the canvas."""
    node.structure = STRUCTURE_ROOT
    node.parent_id = None
    draft.nodes[node.id] = node
    draft.root_nodes.add(node.id)
    return node.id


def attach_new(draft: Draft, node: Node, parent_id: str) -> bool:
    """Append an already-built node as the last child of `parent_id`."""
    parent = draft.nodes.get(parent_id)
    if parent is None:
        logger.warning("Cannot attach %s: parent %s not found", node.id, parent_id)
        return False
    node.structure = STRUCTURE_NODE
    node.parent_id = parent_id
    draft.nodes[node.id] = node
    parent.children_ids.append(node.id)
    return True


def insert_children(draft: Draft, parent_ids: Iterable[str],
                    text: str = "Child node") -> List[str]:
    """Append one new child under each parent. Returns the new ids."""
    new_ids = []
    for parent_id in parent_ids:
        parent = draft.nodes.get(parent_id)
        if parent is None:
            logger.warning("Add child: parent %s not found", parent_id)
            continue
        child = make_text_node(text, parent)
        draft.nodes[child.id] = child
        parent.children_ids.append(child.id)
        new_ids.append(child.id)
    return new_ids


def insert_siblings(draft: Draft, node_ids: Iterable[str]) -> List[str]:
    """Insert a new sibling right after each node. Roots are skipped."""
    new_ids = []
    for node_id in node_ids:
        current = draft.nodes.peek(node_id)
        if current is None or current.parent_id is None:
            # Roots have no sibling slot
            continue
        parent = draft.nodes.get(current.parent_id)
        if parent is None:
            logger.warning("Add sibling: parent %s of %s not found", current.parent_id, node_id)
            continue

        sibling = make_text_node(f"Child {len(parent.children_ids) + 1}", parent)
        draft.nodes[sibling.id] = sibling
        if node_id in parent.children_ids:
            parent.children_ids.insert(parent.children_ids.index(node_id) + 1, sibling.id)
        else:
            parent.children_ids.append(sibling.id)
        new_ids.append(sibling.id)
    return new_ids


# ==================== Move ====================

def move_to(draft: Draft, source_id: str, target_id: str, relation: str) -> bool:
    """Reparent `source_id` relative to `target_id`.

    `relation` is "child" (append under target) or "above"/"below" (become
    target's sibling, right before/after it).
    """
    if relation not in RELATIONS:
        logger.warning("Move: unknown relation %r", relation)
        return False
    if source_id == target_id:
        return False

    source = draft.nodes.peek(source_id)
    target = draft.nodes.peek(target_id)
    if source is None or target is None:
        logger.warning("Move: node not found (source=%s target=%s)", source_id, target_id)
        return False

    if draft.is_descendant(source_id, target_id):
        logger.warning("Cannot move a node into its own descendant.")
        return False

    new_parent_id = target_id if relation == RELATION_CHILD else target.parent_id
    if new_parent_id is None or new_parent_id not in draft.nodes:
        # Dropping beside a root would need a root-level slot
        logger.warning("Move: no parent to insert %s into", source_id)
        return False

    _unlink(draft, source_id)
    node = draft.nodes[source_id]
    node.parent_id = new_parent_id
    node.structure = STRUCTURE_NODE

    new_parent = draft.nodes[new_parent_id]
    if relation == RELATION_CHILD:
        new_parent.children_ids.append(source_id)
    elif target_id in new_parent.children_ids:
        index = new_parent.children_ids.index(target_id)
        if relation == RELATION_BELOW:
            index += 1
        new_parent.children_ids.insert(index, source_id)
    else:
        new_parent.children_ids.append(source_id)
    return True


def reorder(draft: Draft, node_id: str, offset: int) -> bool:
    """Shift a node among its siblings by `offset` places."""
    current = draft.nodes.peek(node_id)
    if current is None or current.parent_id is None:
        return False
    parent = draft.nodes.peek(current.parent_id)
    if parent is None or node_id not in parent.children_ids:
        return False

    index = parent.children_ids.index(node_id)
    new_index = index + offset
    if new_index < 0 or new_index >= len(parent.children_ids) or new_index == index:
        return False

    children = draft.nodes[parent.id].children_ids
    children[index], children[new_index] = children[new_index], children[index]
    return True


def detach(draft: Draft, node_id: str, x: float, y: float) -> bool:
    """Turn an attached node into a free root at (x, y)."""
    node = draft.nodes.peek(node_id)
    if node is None:
        logger.warning("Detach: node %s not found", node_id)
        return False
    if node_id in draft.root_nodes:
        return False

    _unlink(draft, node_id)
    node = draft.nodes[node_id]
    node.structure = STRUCTURE_ROOT
    node.parent_id = None
    node.x = x
    node.y = y
    draft.root_nodes.add(node_id)
    return True


def _unlink(draft: Draft, node_id: str):
    """Remove a node from its parent's children or from the root set."""
    node = draft.nodes.peek(node_id)
    if node is not None and node.parent_id is not None:
        parent = draft.nodes.peek(node.parent_id)
        if parent is not None and node_id in parent.children_ids:
            draft.nodes[node.parent_id].children_ids.remove(node_id)
    draft.root_nodes.discard(node_id)


# ==================== Delete ====================

def delete_subtree(draft: Draft, node_id: str) -> List[str]:
    """Delete a node, all of its descendants and every edge touching them.

    Returns the deleted ids (empty if the node does not exist).
    """
    if node_id not in draft.nodes:
        return []

    doomed = [node_id] + draft.descendants(node_id)
    # Children go before their parents
    for doomed_id in reversed(doomed):
        _unlink(draft, doomed_id)
        del draft.nodes[doomed_id]

    removed = set(doomed)
    draft.edges[:] = [e for e in draft.edges
                      if e.source not in removed and e.target not in removed]
    return doomed


def cascade_delete(draft: Draft, node_ids: Iterable[str]) -> List[str]:
    deleted: List[str] = []
    for node_id in node_ids:
        deleted += delete_subtree(draft, node_id)
    return deleted


def next_focus_id(nodes: Mapping[str, Node], root_nodes: Iterable[str],
                  node_id: str) -> Optional[str]:
    """Pick what to select after `node_id` is deleted.

    Previous sibling, else next sibling, else the parent. Roots use the root
    set as their sibling list.
    """
    node = nodes.get(node_id)
    if node is None:
        return None

    parent_id = None
    siblings: List[str] = []
    if node.parent_id is not None:
        parent = nodes.get(node.parent_id)
        if parent is not None:
            siblings = list(parent.children_ids)
            parent_id = node.parent_id
    else:
        siblings = list(root_nodes)

    if node_id not in siblings:
        return parent_id
    index = siblings.index(node_id)
    if index > 0:
        return siblings[index - 1]
    if index < len(siblings) - 1:
        return siblings[index + 1]
    return parent_id


# ==================== Manual edges ====================

def edge_id_for(source: str, target: str, source_handle: Optional[str],
                target_handle: Optional[str]) -> str:
    return f"e-{source}-{source_handle}-{target}-{target_handle}"


def add_edge(draft: Draft, source: str, target: str,
             source_handle: Optional[str] = None,
             target_handle: Optional[str] = None, label: str = "") -> Optional[str]:
    """Add a manual edge. Duplicate connections are ignored."""
    if source not in draft.nodes or target not in draft.nodes:
        logger.warning("Connect: endpoint missing (%s -> %s)", source, target)
        return None
    edge_id = edge_id_for(source, target, source_handle, target_handle)
    if any(e.id == edge_id for e in draft.edges):
        return None
    draft.edges.append(Edge(
        id=edge_id,
        source=source,
        target=target,
        source_handle=source_handle,
        target_handle=target_handle,
        label=label,
    ))
    return edge_id
