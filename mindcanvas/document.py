"""Document model for MindCanvas: nodes, manual edges and the root set."""

from dataclasses import dataclass, field, replace
from typing import ClassVar, Dict, Iterable, Iterator, List, Mapping, Optional, Tuple, Union

STRUCTURE_ROOT = "root"
STRUCTURE_NODE = "node"


# ==================== Content payloads ====================

@dataclass(frozen=True)
class TextContent:
    """Markdown/plain text body."""
    kind: ClassVar[str] = "markdown"
    text: str = ""
    language: Optional[str] = None


@dataclass(frozen=True)
class ImageContent:
    """Image reference with its aspect ratio (width / height)."""
    kind: ClassVar[str] = "image"
    ratio: float = 1.0
    fit: Optional[str] = None        # cover, contain
    relative_path: Optional[str] = None
    runtime_path: Optional[str] = None


@dataclass(frozen=True)
class LinkContent:
    """Web link card."""
    kind: ClassVar[str] = "link"
    url: str = ""
    meta_title: Optional[str] = None
    meta_description: Optional[str] = None
    meta_image: Optional[str] = None


Content = Union[TextContent, ImageContent, LinkContent]

CONTENT_TYPES = {
    TextContent.kind: TextContent,
    ImageContent.kind: ImageContent,
    LinkContent.kind: LinkContent,
}


# ==================== Nodes and edges ====================

@dataclass
class Node:
    """A canvas node.

    Root nodes own their position; attached nodes get x/y from layout.
    """
    id: str
    structure: str = STRUCTURE_ROOT
    content: Content = field(default_factory=TextContent)
    parent_id: Optional[str] = None
    children_ids: List[str] = field(default_factory=list)
    x: float = 0.0
    y: float = 0.0
    width: Optional[float] = None
    height: Optional[float] = None
    fixed_size: bool = False
    css_class: Optional[str] = None
    content_scale: Optional[float] = None

    @property
    def is_root(self) -> bool:
        return self.structure == STRUCTURE_ROOT

    @property
    def content_type(self) -> str:
        return self.content.kind

    def copy(self) -> "Node":
        """Shallow copy that owns its own children list."""
        return replace(self, children_ids=list(self.children_ids))


@dataclass(frozen=True)
class Edge:
    """A manual connection between two nodes (not a tree link)."""
    id: str
    source: str
    target: str
    source_handle: Optional[str] = None
    target_handle: Optional[str] = None
    label: str = ""

    def touches(self, node_id: str) -> bool:
        return self.source == node_id or self.target == node_id


@dataclass(frozen=True)
class VisualGeometry:
    """On-screen geometry of a node as reported by the renderer."""
    x: float
    y: float
    width: Optional[float] = None
    height: Optional[float] = None


class OrderedIdSet:
    """Insertion-ordered set of node ids.

    Equality ignores order, iteration does not.
    """

    __slots__ = ("_items",)

    def __init__(self, ids: Iterable[str] = ()):
        self._items: Dict[str, None] = dict.fromkeys(ids)

    def add(self, node_id: str):
        self._items.setdefault(node_id, None)

    def insert(self, index: int, node_id: str):
        if node_id in self._items:
            return
        ids = list(self._items)
        ids.insert(index, node_id)
        self._items = dict.fromkeys(ids)

    def discard(self, node_id: str):
        self._items.pop(node_id, None)

    def remove(self, node_id: str):
        del self._items[node_id]

    def index(self, node_id: str) -> int:
        return list(self._items).index(node_id)

    def copy(self) -> "OrderedIdSet":
        return OrderedIdSet(self._items)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._items

    def __iter__(self) -> Iterator[str]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, OrderedIdSet):
            return self._items.keys() == other._items.keys()
        if isinstance(other, (set, frozenset)):
            return set(self._items) == other
        return NotImplemented

    def __repr__(self) -> str:
        return f"OrderedIdSet({list(self._items)!r})"


@dataclass
class Document:
    """Immutable-by-convention snapshot of the whole canvas.

    Consumers must treat a snapshot as read-only; all writes go through
    `TransactionEngine.execute`.
    """
    nodes: Dict[str, Node] = field(default_factory=dict)
    root_nodes: OrderedIdSet = field(default_factory=OrderedIdSet)
    edges: Tuple[Edge, ...] = ()

    def get(self, node_id: Optional[str]) -> Optional[Node]:
        if node_id is None:
            return None
        return self.nodes.get(node_id)

    def children(self, node_id: str) -> List[Node]:
        node = self.nodes.get(node_id)
        if node is None:
            return []
        return [self.nodes[c] for c in node.children_ids if c in self.nodes]

    def descendants(self, node_id: str) -> List[str]:
        return list(iter_descendants(self.nodes, node_id))

    def is_descendant(self, ancestor_id: str, candidate_id: str) -> bool:
        return is_descendant(self.nodes, ancestor_id, candidate_id)

    def check_invariants(self) -> List[str]:
        return check_invariants(self.nodes, self.root_nodes, self.edges)


# ==================== Tree walks ====================

def iter_descendants(nodes: Mapping[str, Node], node_id: str) -> Iterator[str]:
    """Yield every transitive descendant of `node_id` in pre-order.

    Uses an explicit stack; ids already seen are skipped so a corrupted
    (cyclic) table still terminates.
    """
    start = nodes.get(node_id)
    if start is None:
        return
    seen = {node_id}
    stack = list(reversed(start.children_ids))
    while stack:
        current_id = stack.pop()
        if current_id in seen:
            continue
        seen.add(current_id)
        current = nodes.get(current_id)
        if current is None:
            continue
        yield current_id
        stack.extend(reversed(current.children_ids))


def is_descendant(nodes: Mapping[str, Node], ancestor_id: str, candidate_id: str) -> bool:
    """Check if candidate_id sits anywhere below ancestor_id."""
    for descendant_id in iter_descendants(nodes, ancestor_id):
        if descendant_id == candidate_id:
            return True
    return False


def check_invariants(nodes: Mapping[str, Node], root_nodes: Iterable[str],
                     edges: Iterable[Edge]) -> List[str]:
    """Return a list of consistency violations (empty if the document is sound)."""
    violations: List[str] = []
    roots = set(root_nodes)

    for root_id in roots:
        if root_id not in nodes:
            violations.append(f"root set references missing node {root_id}")

    for node_id, node in nodes.items():
        if node.id != node_id:
            violations.append(f"node stored under {node_id} has id {node.id}")

        # Root-set consistency
        is_root_structure = node.structure == STRUCTURE_ROOT
        has_parent = node.parent_id is not None
        in_roots = node_id in roots
        if is_root_structure == has_parent or has_parent == in_roots:
            violations.append(
                f"node {node_id}: structure={node.structure} parent={node.parent_id} "
                f"in_root_set={in_roots}"
            )

        # Parent -> child direction
        if has_parent:
            parent = nodes.get(node.parent_id)
            if parent is None:
                violations.append(f"node {node_id} has missing parent {node.parent_id}")
            elif parent.children_ids.count(node_id) != 1:
                violations.append(
                    f"node {node_id} appears {parent.children_ids.count(node_id)} "
                    f"times in parent {parent.id}"
                )

        # Child -> parent direction
        if len(set(node.children_ids)) != len(node.children_ids):
            violations.append(f"node {node_id} has duplicate children")
        for child_id in node.children_ids:
            child = nodes.get(child_id)
            if child is None:
                violations.append(f"node {node_id} lists missing child {child_id}")
            elif child.parent_id != node_id:
                violations.append(
                    f"child {child_id} of {node_id} points at parent {child.parent_id}"
                )

    # Acyclicity: walk each parent chain
    for node_id in nodes:
        seen = {node_id}
        current = nodes[node_id].parent_id
        while current is not None and current in nodes:
            if current in seen:
                violations.append(f"cycle through node {node_id}")
                break
            seen.add(current)
            current = nodes[current].parent_id

    for edge in edges:
        for end in (edge.source, edge.target):
            if end not in nodes:
                violations.append(f"edge {edge.id} references missing node {end}")

    return violations
