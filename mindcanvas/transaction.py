"""Copy-on-write transactions over document snapshots.

A mutator edits a `Draft`; on return the draft is diffed against its base
snapshot, the forward patches are applied to produce the next snapshot and
the inverse patches are kept for undo.
"""

import logging
from typing import Callable, Dict, Iterator, List, Mapping, MutableMapping, Optional, Set

from mindcanvas.document import Document, Edge, Node, iter_descendants, is_descendant
from mindcanvas.errors import (
    InvariantViolationError,
    PatchError,
    StaleDraftError,
    TransactionInProgressError,
)
from mindcanvas.patches import Patch, PatchPair, apply_patches, diff_edges, diff_node, diff_roots
from mindcanvas.undo import DEFAULT_HISTORY_LIMIT, HistoryEntry, UndoManager

logger = logging.getLogger(__name__)

Mutator = Callable[["Draft"], None]
CommitCallback = Callable[[Document, bool], None]


class DraftNodes(MutableMapping):
    """Node table of a draft.

    Reading a node through item access hands out a private mutable copy; the
    base snapshot is never touched. Use `peek` for reads that must not copy.
    """

    def __init__(self, base: Mapping[str, Node]):
        self._base = base
        self._copies: Dict[str, Node] = {}
        self._deleted: Set[str] = set()
        self._sealed = False

    def _check_open(self):
        if self._sealed:
            raise StaleDraftError("Draft was already committed")

    def peek(self, node_id: str) -> Optional[Node]:
        """Current value of a node without taking a copy."""
        if node_id in self._copies:
            return self._copies[node_id]
        if node_id in self._deleted:
            return None
        return self._base.get(node_id)

    def __getitem__(self, node_id: str) -> Node:
        self._check_open()
        if node_id in self._copies:
            return self._copies[node_id]
        if node_id in self._deleted or node_id not in self._base:
            raise KeyError(node_id)
        node = self._base[node_id].copy()
        self._copies[node_id] = node
        return node

    def __setitem__(self, node_id: str, node: Node):
        self._check_open()
        self._copies[node_id] = node
        self._deleted.discard(node_id)

    def __delitem__(self, node_id: str):
        self._check_open()
        if node_id not in self:
            raise KeyError(node_id)
        self._copies.pop(node_id, None)
        if node_id in self._base:
            self._deleted.add(node_id)

    def __contains__(self, node_id: object) -> bool:
        if node_id in self._copies:
            return True
        return node_id in self._base and node_id not in self._deleted

    def __iter__(self) -> Iterator[str]:
        for node_id in self._base:
            if node_id not in self._deleted:
                yield node_id
        for node_id in self._copies:
            if node_id not in self._base:
                yield node_id

    def __len__(self) -> int:
        return sum(1 for _ in self)

    @property
    def readonly(self) -> "ReadOnlyNodes":
        return ReadOnlyNodes(self)

    def touched(self) -> List[str]:
        """Ids that were copied, added or deleted, in first-touch order."""
        return list(self._copies) + [d for d in self._deleted if d not in self._copies]

    def seal(self):
        self._sealed = True


class ReadOnlyNodes(Mapping):
    """Non-copying view over a draft's node table, used by tree walks."""

    def __init__(self, nodes: DraftNodes):
        self._nodes = nodes

    def __getitem__(self, node_id: str) -> Node:
        node = self._nodes.peek(node_id)
        if node is None:
            raise KeyError(node_id)
        return node

    def __iter__(self) -> Iterator[str]:
        return iter(self._nodes)

    def __len__(self) -> int:
        return len(self._nodes)


class Draft:
    """Mutable working copy handed to a mutator for the span of one transaction."""

    def __init__(self, base: Document):
        self.base = base
        self.nodes = DraftNodes(base.nodes)
        self.root_nodes = base.root_nodes.copy()
        self.edges: List[Edge] = list(base.edges)

    def is_descendant(self, ancestor_id: str, candidate_id: str) -> bool:
        return is_descendant(self.nodes.readonly, ancestor_id, candidate_id)

    def descendants(self, node_id: str) -> List[str]:
        return list(iter_descendants(self.nodes.readonly, node_id))

    def diff(self) -> PatchPair:
        """Forward and inverse patches from the base snapshot to this draft."""
        forward: List[Patch] = []
        inverse: List[Patch] = []
        for node_id in self.nodes.touched():
            f, i = diff_node(node_id, self.base.nodes.get(node_id), self.nodes.peek(node_id))
            forward += f
            inverse += i

        f, i = diff_roots(list(self.base.root_nodes), list(self.root_nodes))
        forward += f
        inverse += i

        f, i = diff_edges(self.base.edges, self.edges)
        forward += f
        inverse += i
        return forward, inverse

    def seal(self):
        self.nodes.seal()


class TransactionEngine:
    """Owns the current snapshot and the undo/redo history."""

    def __init__(self, document: Optional[Document] = None,
                 history_limit: int = DEFAULT_HISTORY_LIMIT, strict: bool = False):
        self._document = document if document is not None else Document()
        self.history = UndoManager(max_undo=history_limit, max_redo=history_limit)
        self.strict = strict
        self._draft: Optional[Draft] = None

        # Called with (document, low_priority) after every snapshot change
        self.on_commit: Optional[CommitCallback] = None

    @property
    def document(self) -> Document:
        return self._document

    @property
    def in_transaction(self) -> bool:
        return self._draft is not None

    def execute(self, mutator: Mutator, record_history: bool = True,
                description: str = "", low_priority: bool = False) -> Document:
        """Run `mutator` against a draft and commit the result.

        Returns the (possibly unchanged) current snapshot. A mutator that
        changes nothing records no history and keeps the snapshot as is.
        """
        if self._draft is not None:
            raise TransactionInProgressError(
                "execute() called while another transaction holds the draft"
            )

        draft = Draft(self._document)
        self._draft = draft
        try:
            mutator(draft)
        finally:
            self._draft = None
            draft.seal()

        forward, inverse = draft.diff()
        if not forward:
            logger.debug("No-op transaction %r", description)
            return self._document

        self._replace(forward, low_priority)
        if record_history:
            self.history.push(HistoryEntry(undo=inverse, redo=forward, description=description))
        logger.debug("Committed %r (%d patches)", description, len(forward))
        return self._document

    def undo(self) -> bool:
        """Revert the latest transaction. Returns False if there is none."""
        entry = self.history.peek_undo()
        if entry is None:
            return False
        self._replace(entry.undo)
        self.history.undo()
        logger.debug("Undo %r", entry.description)
        return True

    def redo(self) -> bool:
        """Re-apply the latest undone transaction. Returns False if there is none."""
        entry = self.history.peek_redo()
        if entry is None:
            return False
        self._replace(entry.redo)
        self.history.redo()
        logger.debug("Redo %r", entry.description)
        return True

    def reset(self, document: Document):
        """Swap in a whole new snapshot and drop all history."""
        if self._draft is not None:
            raise TransactionInProgressError("reset() called inside a transaction")
        self._document = document
        self.history.clear()
        self._notify(False)

    def _replace(self, patches: List[Patch], low_priority: bool = False):
        # Fail closed: the current snapshot is only swapped once everything checks out
        try:
            new_doc = apply_patches(self._document, patches)
        except PatchError as exc:
            logger.error("Patch rejected at %s: %s", exc.path, exc)
            raise

        if self.strict:
            violations = new_doc.check_invariants()
            if violations:
                logger.error("Commit rejected, %d invariant violation(s): %s",
                             len(violations), violations[0])
                raise InvariantViolationError(violations)

        self._document = new_doc
        self._notify(low_priority)

    def _notify(self, low_priority: bool):
        if self.on_commit:
            self.on_commit(self._document, low_priority)
