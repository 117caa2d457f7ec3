"""Editing session for one open canvas.

`Canvas` ties the transaction engine, the structural operations, the
clipboard and the layout engine together. Every edit is one transaction;
the view is recomputed after each commit, or on the debounced path for
size reports.
"""

import logging
from dataclasses import replace
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from mindcanvas import clipboard, operations
from mindcanvas.config import EngineConfig
from mindcanvas.debounce import LayoutDebouncer
from mindcanvas.document import (
    Document,
    ImageContent,
    LinkContent,
    Node,
    TextContent,
    VisualGeometry,
)
from mindcanvas.layout import CanvasView, compute_view
from mindcanvas.storage import from_projection, to_projection
from mindcanvas.transaction import Draft, TransactionEngine
from mindcanvas.undo import UndoManager

logger = logging.getLogger(__name__)

# Node attributes that update_node_data may set outside the content payload
ENVELOPE_FIELDS = ("css_class", "content_scale")


class Canvas:
    """One open document and everything needed to edit it."""

    def __init__(self, document: Optional[Document] = None,
                 config: Optional[EngineConfig] = None):
        self.config = config or EngineConfig()
        self.engine = TransactionEngine(
            document,
            history_limit=self.config.history_limit,
            strict=self.config.strict,
        )
        self.engine.on_commit = self._on_commit
        self.debouncer = LayoutDebouncer(self._run_layout, self.config.debounce_ms)
        self.clipboard = clipboard.ClipboardPayload()

        self._view = CanvasView()

        # Callbacks
        self.on_view_changed: Optional[Callable[[CanvasView], None]] = None

        self._run_layout()

    # ==================== State ====================

    @property
    def document(self) -> Document:
        return self.engine.document

    @property
    def history(self) -> UndoManager:
        return self.engine.history

    @property
    def view(self) -> CanvasView:
        """Result of the last layout pass."""
        return self._view

    def visual_snapshot(self) -> Dict[str, VisualGeometry]:
        """On-screen geometry of every node, as of the last layout pass."""
        return {
            p.id: VisualGeometry(x=p.x, y=p.y, width=p.width, height=p.height)
            for p in self._view.positioned_nodes
        }

    def execute(self, mutator: Callable[[Draft], None], record_history: bool = True,
                description: str = "", low_priority: bool = False) -> Document:
        return self.engine.execute(mutator, record_history, description, low_priority)

    def undo(self) -> bool:
        return self.engine.undo()

    def redo(self) -> bool:
        return self.engine.redo()

    def flush_layout(self) -> bool:
        """Run a pending debounced layout pass right away."""
        return self.debouncer.flush()

    def _on_commit(self, document: Document, low_priority: bool):
        if low_priority:
            self.debouncer.schedule()
            return
        self.debouncer.cancel()
        self._run_layout()

    def _run_layout(self):
        self._view = compute_view(self.engine.document, self.config.layout)
        if self.on_view_changed:
            self.on_view_changed(self._view)

    # ==================== Create ====================

    def add_root(self, x: float, y: float, text: str = "New node") -> str:
        """Create a free text node at (x, y)."""
        layout = self.config.layout
        node = operations.make_text_node(text, x=x, y=y)
        node.width = layout.min_width
        node.height = layout.min_height
        self.execute(lambda draft: operations.add_root(draft, node), description="Add node")
        return node.id

    def add_content_node(self, kind: str, data: Dict[str, Any],
                         position: Tuple[float, float],
                         parent_id: Optional[str] = None) -> Optional[str]:
        """Create an image or link node.

        For images `data` holds "path" and optionally "ratio"; for links it
        holds "url". The node hangs under `parent_id` when given.
        """
        layout = self.config.layout
        x, y = position
        if kind == ImageContent.kind:
            ratio = float(data.get("ratio") or 1.0)
            content = ImageContent(ratio=ratio, fit=data.get("fit"),
                                   runtime_path=data.get("path"))
            width = layout.image_default_width
            height = width / ratio
        elif kind == LinkContent.kind:
            content = LinkContent(url=str(data.get("url", "")), meta_title="Loading...")
            width, height = layout.link_card_width, layout.link_card_height
        else:
            logger.warning("Unsupported content kind %r", kind)
            return None

        node = Node(id=operations.new_node_id(), content=content,
                    x=x, y=y, width=width, height=height)
        if parent_id is not None and parent_id not in self.document.nodes:
            logger.warning("Add %s: parent %s not found", kind, parent_id)
            return None

        def mutate(draft: Draft):
            if parent_id is None:
                operations.add_root(draft, node)
            else:
                operations.attach_new(draft, node, parent_id)

        self.execute(mutate, description=f"Add {kind}")
        return node.id

    def add_child_batch(self, parent_ids: Iterable[str]) -> List[str]:
        parent_ids = list(parent_ids)
        created: List[str] = []

        def mutate(draft: Draft):
            created.extend(operations.insert_children(draft, parent_ids))

        self.execute(mutate, description="Add child")
        return created

    def add_sibling_batch(self, node_ids: Iterable[str]) -> List[str]:
        node_ids = list(node_ids)
        created: List[str] = []

        def mutate(draft: Draft):
            created.extend(operations.insert_siblings(draft, node_ids))

        self.execute(mutate, description="Add sibling")
        return created

    # ==================== Move ====================

    def move_node_to(self, source_id: str, target_id: str, relation: str) -> bool:
        """Drag-and-drop reparent. False (and no change) if rejected."""
        moved = []

        def mutate(draft: Draft):
            moved.append(operations.move_to(draft, source_id, target_id, relation))

        self.execute(mutate, description="Move node")
        return moved[0]

    def move_node(self, node_id: str, offset: int) -> bool:
        """Shift a node up (-1) or down (+1) among its siblings."""
        moved = []

        def mutate(draft: Draft):
            moved.append(operations.reorder(draft, node_id, offset))

        self.execute(mutate, description="Reorder node")
        return moved[0]

    def detach_node(self, node_id: str, x: float, y: float) -> bool:
        detached = []

        def mutate(draft: Draft):
            detached.append(operations.detach(draft, node_id, x, y))

        self.execute(mutate, description="Detach node")
        return detached[0]

    def update_node_position(self, node_id: str, x: float, y: float,
                             record_history: bool = True) -> bool:
        if node_id not in self.document.nodes:
            return False

        def mutate(draft: Draft):
            node = draft.nodes[node_id]
            node.x = x
            node.y = y

        self.execute(mutate, record_history, description="Move node")
        return True

    # ==================== Delete ====================

    def next_focus_id(self, node_id: str) -> Optional[str]:
        doc = self.document
        return operations.next_focus_id(doc.nodes, doc.root_nodes, node_id)

    def delete_nodes(self, node_ids: Iterable[str]) -> Optional[str]:
        """Cascade-delete the given nodes.

        Returns the id to select afterwards when exactly one node was
        deleted, else None.
        """
        node_ids = [i for i in dict.fromkeys(node_ids) if i in self.document.nodes]
        if not node_ids:
            return None
        next_id = self.next_focus_id(node_ids[0]) if len(node_ids) == 1 else None

        self.execute(lambda draft: operations.cascade_delete(draft, node_ids),
                     description=f"Delete {len(node_ids)} node(s)")
        if next_id is not None and next_id not in self.document.nodes:
            return None
        return next_id

    # ==================== Size and content ====================

    def update_node_size(self, node_id: str, width: float, height: float) -> bool:
        """User resize: the size becomes authoritative."""
        if node_id not in self.document.nodes:
            return False

        def mutate(draft: Draft):
            node = draft.nodes[node_id]
            node.width = width
            node.height = height
            node.fixed_size = True

        self.execute(mutate, description="Resize node", low_priority=True)
        return True

    def report_content_size(self, node_id: str, width: float, height: float) -> bool:
        """Measured content size. Ignored for fixed-size nodes or no change."""
        current = self.document.nodes.get(node_id)
        if current is None or current.fixed_size:
            return False
        if current.width == width and current.height == height:
            return False

        def mutate(draft: Draft):
            node = draft.nodes[node_id]
            node.width = width
            node.height = height

        self.execute(mutate, record_history=False, low_priority=True)
        return True

    def update_node_content(self, node_id: str, text: str) -> bool:
        current = self.document.nodes.get(node_id)
        if current is None or not isinstance(current.content, TextContent):
            return False

        def mutate(draft: Draft):
            node = draft.nodes[node_id]
            node.content = replace(node.content, text=text)

        self.execute(mutate, description="Edit text")
        return True

    def update_node_data(self, node_id: str, **values) -> bool:
        """Set envelope or payload fields, e.g. ratio=1.5 or css_class="red"."""
        current = self.document.nodes.get(node_id)
        if current is None:
            return False
        envelope = {k: v for k, v in values.items() if k in ENVELOPE_FIELDS}
        payload = {k: v for k, v in values.items() if k not in ENVELOPE_FIELDS}
        try:
            content = replace(current.content, **payload) if payload else current.content
        except TypeError:
            logger.warning("Node %s has no field among %s", node_id, sorted(payload))
            return False

        def mutate(draft: Draft):
            node = draft.nodes[node_id]
            for name, value in envelope.items():
                setattr(node, name, value)
            node.content = content

        # Ratio changes resize images in auto mode
        self.execute(mutate, description="Edit node", low_priority="ratio" in payload)
        return True

    def update_link_metadata(self, node_id: str, title: Optional[str] = None,
                             description: Optional[str] = None,
                             image: Optional[str] = None) -> bool:
        current = self.document.nodes.get(node_id)
        if current is None or not isinstance(current.content, LinkContent):
            return False
        content = replace(current.content, meta_title=title,
                          meta_description=description, meta_image=image)

        def mutate(draft: Draft):
            draft.nodes[node_id].content = content

        self.execute(mutate, description="Update link")
        return True

    # ==================== Manual edges ====================

    def create_edge(self, source: str, target: str,
                    source_handle: Optional[str] = None,
                    target_handle: Optional[str] = None) -> Optional[str]:
        created = []

        def mutate(draft: Draft):
            created.append(operations.add_edge(draft, source, target,
                                               source_handle, target_handle))

        self.execute(mutate, description="Connect")
        return created[0]

    def _edit_edge(self, edge_id: str, description: str, **changes) -> bool:
        index = next((i for i, e in enumerate(self.document.edges) if e.id == edge_id), None)
        if index is None:
            logger.warning("%s: edge %s not found", description, edge_id)
            return False

        def mutate(draft: Draft):
            draft.edges[index] = replace(draft.edges[index], **changes)

        self.execute(mutate, description=description)
        return True

    def update_edge_label(self, edge_id: str, label: str) -> bool:
        return self._edit_edge(edge_id, "Edit label", label=label)

    def update_edge_connection(self, edge_id: str, source: str, target: str,
                               source_handle: Optional[str] = None,
                               target_handle: Optional[str] = None) -> bool:
        """Reconnect an edge. The edge keeps its id."""
        nodes = self.document.nodes
        if source not in nodes or target not in nodes:
            logger.warning("Reconnect: endpoint missing (%s -> %s)", source, target)
            return False
        new_id = operations.edge_id_for(source, target, source_handle, target_handle)
        wanted = (source, target, source_handle, target_handle)
        for edge in self.document.edges:
            if edge.id != edge_id and (
                    edge.id == new_id
                    or (edge.source, edge.target, edge.source_handle, edge.target_handle) == wanted):
                logger.warning("Reconnect: %s would duplicate edge %s", edge_id, edge.id)
                return False
        return self._edit_edge(edge_id, "Reconnect", source=source, target=target,
                               source_handle=source_handle, target_handle=target_handle)

    def remove_edge(self, edge_id: str) -> bool:
        if not any(e.id == edge_id for e in self.document.edges):
            return False

        def mutate(draft: Draft):
            draft.edges[:] = [e for e in draft.edges if e.id != edge_id]

        self.execute(mutate, description="Remove edge")
        return True

    # ==================== Clipboard ====================

    def copy_selection(self, node_ids: Iterable[str],
                       visual: Optional[Dict[str, VisualGeometry]] = None) -> int:
        """Copy the selected subtrees. Returns the number of nodes copied."""
        if visual is None:
            visual = self.visual_snapshot()
        payload = clipboard.copy_selection(self.document, node_ids, visual)
        if payload:
            self.clipboard = payload
        return len(payload.nodes)

    def paste(self, position: Optional[Tuple[float, float]] = None,
              payload: Optional[clipboard.ClipboardPayload] = None) -> List[str]:
        """Paste the clipboard (or `payload`). Returns the new root ids."""
        payload = payload if payload is not None else self.clipboard
        if not payload:
            return []
        nodes, root_ids = clipboard.remap_payload(payload, position, self.config.paste_offset)
        self.execute(lambda draft: clipboard.paste_into(draft, nodes),
                     description=f"Paste {len(nodes)} node(s)")
        return root_ids

    # ==================== Persistence ====================

    def load_projection(self, data: Dict[str, Any], project_root=None):
        """Replace the whole document; history starts empty."""
        self.debouncer.cancel()
        self.engine.reset(from_projection(data, project_root))

    def to_projection(self, project_root=None) -> Dict[str, Any]:
        return to_projection(self.document, project_root)
