"""Horizontal mind-map layout.

Each root is laid out in two passes: a bottom-up measure that gives every
node the height of the band its subtree needs (`area_height`), then a
top-down placement that stacks child bands to the right of their parent,
centred on the parent's vertical centre.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Tuple

from mindcanvas.config import LayoutConfig
from mindcanvas.document import Document, ImageContent, LinkContent, Node, TextContent

logger = logging.getLogger(__name__)


# ==================== Grid helpers ====================

def ceil_to_grid(value: float, grid_size: int) -> float:
    """Round a dimension up to the next grid step."""
    if grid_size <= 0:
        return value
    return math.ceil(value / grid_size) * grid_size


def snap_to_grid(value: float, grid_size: int) -> float:
    """Snap a coordinate to the nearest grid point."""
    if grid_size <= 0:
        return value
    return round(value / grid_size) * grid_size


# ==================== Result types ====================

@dataclass
class PositionedNode:
    """A node with its absolute, computed geometry."""
    id: str
    x: float
    y: float
    width: float
    height: float
    area_height: float
    node: Node
    is_root: bool = False

    def contains_point(self, px: float, py: float) -> bool:
        """Check if a point is inside this node."""
        return (self.x <= px <= self.x + self.width and
                self.y <= py <= self.y + self.height)


@dataclass
class RenderedEdge:
    """An edge ready for drawing; structural edges are derived, never stored."""
    id: str
    source: str
    target: str
    structural: bool = True
    source_handle: Optional[str] = None
    target_handle: Optional[str] = None
    label: str = ""


@dataclass
class LayoutResult:
    positioned_nodes: List[PositionedNode] = field(default_factory=list)
    edges: List[RenderedEdge] = field(default_factory=list)

    def by_id(self) -> Dict[str, PositionedNode]:
        return {p.id: p for p in self.positioned_nodes}


CanvasView = LayoutResult


class _LayoutNode:
    """Scratch tree node that only lives for one layout pass."""

    __slots__ = ("data", "parent", "children", "width", "height", "area_height", "x", "y")

    def __init__(self, data: Node, parent: Optional["_LayoutNode"] = None):
        self.data = data
        self.parent = parent
        self.children: List["_LayoutNode"] = []
        self.width = 0.0
        self.height = 0.0
        self.area_height = 0.0
        self.x = 0.0
        self.y = 0.0


# ==================== Sizing ====================

def estimate_size(node: Node, config: LayoutConfig) -> Tuple[float, float]:
    """Content box of a node before grid snapping.

    Reported or fixed sizes win; the estimates only cover nodes whose content
    has not been measured yet.
    """
    match node.content:
        case TextContent(text=text):
            estimated = len(text) * config.char_width + config.padding_x
            width = node.width or max(config.min_width, estimated)
            height = node.height or config.min_height
        case ImageContent(ratio=ratio):
            width = node.width or config.image_default_width
            if node.fixed_size and node.height:
                height = node.height
            elif ratio and ratio > 0:
                height = width / ratio
            else:
                height = node.height or config.min_height
        case LinkContent():
            width = node.width or config.link_card_width
            height = node.height or config.link_card_height
        case _:
            width = node.width or config.min_width
            height = node.height or config.min_height
    return width, height


# ==================== Layout ====================

def _build_tree(root: Node, nodes: Mapping[str, Node]) -> List[_LayoutNode]:
    """Resolve the subtree under `root`; returns nodes parents-first."""
    top = _LayoutNode(root)
    order = [top]
    seen = {root.id}
    stack = [top]
    while stack:
        current = stack.pop()
        for child_id in current.data.children_ids:
            child = nodes.get(child_id)
            if child is None or child_id in seen:
                # Dangling or repeated reference: leave it out
                continue
            seen.add(child_id)
            layout_child = _LayoutNode(child, current)
            current.children.append(layout_child)
            order.append(layout_child)
            stack.append(layout_child)
    return order


def _measure(order: List[_LayoutNode], config: LayoutConfig):
    for node in reversed(order):
        raw_width, raw_height = estimate_size(node.data, config)
        node.width = ceil_to_grid(raw_width, config.grid_size)
        node.height = ceil_to_grid(raw_height, config.grid_size)

        if not node.children:
            node.area_height = node.height
        else:
            node.area_height = max(node.height, _block_height(node, config))


def _block_height(node: _LayoutNode, config: LayoutConfig) -> float:
    """Stacked height of all child bands plus the gaps between them."""
    total = sum(child.area_height for child in node.children)
    return total + config.v_gap * (len(node.children) - 1)


def _place(order: List[_LayoutNode], config: LayoutConfig):
    for node in order:
        if not node.children:
            continue
        child_x = node.x + node.width + config.h_gap
        center_y = node.y + node.height / 2
        cursor = center_y - _block_height(node, config) / 2
        for child in node.children:
            child.x = child_x
            child.y = cursor + (child.area_height - child.height) / 2
            cursor += child.area_height + config.v_gap


def layout_tree(root: Node, nodes: Mapping[str, Node],
                config: Optional[LayoutConfig] = None) -> LayoutResult:
    """Lay out the tree under `root`.

    Pure: neither `root` nor `nodes` is modified. The root's own x/y is used
    as its top-left anchor.
    """
    config = config or LayoutConfig()
    order = _build_tree(root, nodes)
    _measure(order, config)

    top = order[0]
    top.x = root.x
    top.y = root.y
    _place(order, config)

    result = LayoutResult()
    stack = [top]
    while stack:
        current = stack.pop()
        result.positioned_nodes.append(PositionedNode(
            id=current.data.id,
            x=current.x,
            y=current.y,
            width=current.width,
            height=current.height,
            area_height=current.area_height,
            node=current.data,
            is_root=current.parent is None,
        ))
        if current.parent is not None:
            parent_id = current.parent.data.id
            result.edges.append(RenderedEdge(
                id=f"e-{parent_id}-{current.data.id}",
                source=parent_id,
                target=current.data.id,
            ))
        stack.extend(reversed(current.children))
    return result


def compute_view(document: Document, config: Optional[LayoutConfig] = None) -> LayoutResult:
    """Lay out every root and collect manual edges into one view."""
    config = config or LayoutConfig()
    view = LayoutResult()

    for edge in document.edges:
        if edge.source not in document.nodes or edge.target not in document.nodes:
            logger.debug("Skipping edge %s with missing endpoint", edge.id)
            continue
        view.edges.append(RenderedEdge(
            id=edge.id,
            source=edge.source,
            target=edge.target,
            structural=False,
            source_handle=edge.source_handle,
            target_handle=edge.target_handle,
            label=edge.label,
        ))

    for root_id in document.root_nodes:
        root = document.nodes.get(root_id)
        if root is None:
            logger.debug("Skipping missing root %s", root_id)
            continue
        tree = layout_tree(root, document.nodes, config)
        view.positioned_nodes.extend(tree.positioned_nodes)
        view.edges.extend(tree.edges)

    logger.debug("Layout pass: %d nodes, %d edges",
                 len(view.positioned_nodes), len(view.edges))
    return view
