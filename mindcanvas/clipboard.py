"""Copy/paste of subtrees.

Copying flattens the selected subtrees into plain dicts, taking geometry
from what is actually on screen. Pasting gives every node a fresh id and
re-roots nodes whose parent did not travel with them.
"""

import json
import logging
import time
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from mindcanvas.document import (
    STRUCTURE_NODE,
    STRUCTURE_ROOT,
    Document,
    Node,
    VisualGeometry,
)
from mindcanvas.operations import new_node_id
from mindcanvas.storage import node_from_dict, node_to_dict
from mindcanvas.transaction import Draft

logger = logging.getLogger(__name__)


@dataclass
class ClipboardPayload:
    """Serialised nodes, still carrying their original ids."""
    nodes: List[dict] = field(default_factory=list)
    timestamp: int = 0

    def __bool__(self) -> bool:
        return bool(self.nodes)

    def to_json(self) -> str:
        return json.dumps({"timestamp": self.timestamp, "nodes": self.nodes})

    @classmethod
    def from_json(cls, data: Optional[str]) -> "ClipboardPayload":
        if not data:
            return cls()
        try:
            raw = json.loads(data)
        except json.JSONDecodeError:
            return cls()
        if not isinstance(raw, dict) or not isinstance(raw.get("nodes"), list):
            return cls()
        return cls(nodes=raw["nodes"], timestamp=int(raw.get("timestamp") or 0))


# ==================== Copy ====================

def selection_roots(doc: Document, selected_ids: Iterable[str]) -> List[str]:
    """Drop ids whose parent is also selected; they travel with the parent."""
    selected = [i for i in dict.fromkeys(selected_ids) if i in doc.nodes]
    chosen = set(selected)
    return [i for i in selected if doc.nodes[i].parent_id not in chosen]


def copy_selection(doc: Document, selected_ids: Iterable[str],
                   visual: Optional[Mapping[str, VisualGeometry]] = None) -> ClipboardPayload:
    """Serialise every selected subtree.

    Positions and sizes come from `visual` when it has an entry for a node;
    the document's cached geometry can lag behind the screen.
    """
    visual = visual or {}
    collected: List[str] = []
    seen = set()
    for root_id in selection_roots(doc, selected_ids):
        for node_id in [root_id] + doc.descendants(root_id):
            if node_id not in seen:
                seen.add(node_id)
                collected.append(node_id)

    nodes = []
    for node_id in collected:
        data = node_to_dict(doc.nodes[node_id])
        geometry = visual.get(node_id)
        if geometry is not None:
            data["x"] = geometry.x
            data["y"] = geometry.y
            if geometry.width is not None:
                data["width"] = geometry.width
            if geometry.height is not None:
                data["height"] = geometry.height
        nodes.append(data)

    logger.debug("Copied %d node(s)", len(nodes))
    return ClipboardPayload(nodes=nodes, timestamp=int(time.time() * 1000))


# ==================== Paste ====================

def remap_payload(payload: ClipboardPayload,
                  position: Optional[Tuple[float, float]],
                  default_offset: Tuple[float, float] = (40.0, 40.0)) -> Tuple[List[Node], List[str]]:
    """Build the nodes a paste would insert.

    Returns (nodes, new_root_ids). Raises ProjectFormatError on a malformed
    payload.
    """
    originals: Dict[str, Node] = {}
    for raw in payload.nodes:
        node = node_from_dict(raw)
        originals[node.id] = node
    id_map = {old_id: new_node_id() for old_id in originals}

    pasted: List[Node] = []
    new_roots: List[Node] = []
    for old_id, original in originals.items():
        node = original.copy()
        node.id = id_map[old_id]
        if original.parent_id in originals:
            node.parent_id = id_map[original.parent_id]
            node.structure = STRUCTURE_NODE
        else:
            node.parent_id = None
            node.structure = STRUCTURE_ROOT
            new_roots.append(node)
        # Keep only children that came along and still point back here
        node.children_ids = [
            id_map[c] for c in dict.fromkeys(original.children_ids)
            if c in originals and originals[c].parent_id == old_id
        ]
        pasted.append(node)

    by_id = {n.id: n for n in pasted}
    for node in pasted:
        if node.parent_id is not None and node.id not in by_id[node.parent_id].children_ids:
            by_id[node.parent_id].children_ids.append(node.id)

    # A hand-edited payload can carry a parent cycle; cut it where the walk loops
    for node in pasted:
        path = set()
        current = node
        while current.parent_id is not None and current.id not in path:
            path.add(current.id)
            current = by_id[current.parent_id]
        if current.parent_id is not None:
            logger.warning("Clipboard payload has a parent cycle at %s", current.id)
            siblings = by_id[current.parent_id].children_ids
            if current.id in siblings:
                siblings.remove(current.id)
            current.parent_id = None
            current.structure = STRUCTURE_ROOT
            new_roots.append(current)

    if new_roots:
        if position is not None:
            left = min(n.x for n in new_roots)
            top = min(n.y for n in new_roots)
            dx, dy = position[0] - left, position[1] - top
        else:
            dx, dy = default_offset
        for node in new_roots:
            node.x += dx
            node.y += dy

    return pasted, [n.id for n in new_roots]


def paste_into(draft: Draft, nodes: List[Node]) -> List[str]:
    """Insert remapped nodes; nodes without a parent join the root set."""
    for node in nodes:
        draft.nodes[node.id] = node
        if node.parent_id is None:
            draft.root_nodes.add(node.id)
    return [n.id for n in nodes]
