"""Undo/Redo history for MindCanvas."""

from typing import Optional, List, Callable
from dataclasses import dataclass

from mindcanvas.patches import Patch

DEFAULT_HISTORY_LIMIT = 50


@dataclass
class HistoryEntry:
    """One committed transaction, stored as a patch pair."""
    undo: List[Patch]   # Inverse patches (new -> old)
    redo: List[Patch]   # Forward patches (old -> new)
    description: str = ""


class UndoManager:
    """Manages undo/redo history."""

    def __init__(self, max_undo: int = DEFAULT_HISTORY_LIMIT,
                 max_redo: int = DEFAULT_HISTORY_LIMIT):
        self.max_undo = max_undo
        self.max_redo = max_redo
        self._undo_stack: List[HistoryEntry] = []
        self._redo_stack: List[HistoryEntry] = []

        # Callbacks
        self.on_state_changed: Optional[Callable[[], None]] = None

    @property
    def can_undo(self) -> bool:
        """Check if undo is available."""
        return len(self._undo_stack) > 0

    @property
    def can_redo(self) -> bool:
        """Check if redo is available."""
        return len(self._redo_stack) > 0

    @property
    def undo_depth(self) -> int:
        return len(self._undo_stack)

    @property
    def redo_depth(self) -> int:
        return len(self._redo_stack)

    @property
    def undo_description(self) -> str:
        """Get description of next undo entry."""
        if self._undo_stack:
            return self._undo_stack[-1].description
        return ""

    @property
    def redo_description(self) -> str:
        """Get description of next redo entry."""
        if self._redo_stack:
            return self._redo_stack[-1].description
        return ""

    def peek_undo(self) -> Optional[HistoryEntry]:
        return self._undo_stack[-1] if self._undo_stack else None

    def peek_redo(self) -> Optional[HistoryEntry]:
        return self._redo_stack[-1] if self._redo_stack else None

    def push(self, entry: HistoryEntry):
        """Record a new transaction; any redo history is discarded."""
        self._undo_stack.append(entry)
        self._redo_stack.clear()

        # Evict oldest entries
        while len(self._undo_stack) > self.max_undo:
            self._undo_stack.pop(0)

        self._notify_changed()

    def undo(self) -> Optional[HistoryEntry]:
        """Move the latest entry to the redo stack and return it."""
        if not self._undo_stack:
            return None

        entry = self._undo_stack.pop()
        self._redo_stack.append(entry)
        while len(self._redo_stack) > self.max_redo:
            self._redo_stack.pop(0)

        self._notify_changed()
        return entry

    def redo(self) -> Optional[HistoryEntry]:
        """Move the latest undone entry back to the undo stack and return it."""
        if not self._redo_stack:
            return None

        entry = self._redo_stack.pop()
        self._undo_stack.append(entry)
        while len(self._undo_stack) > self.max_undo:
            self._undo_stack.pop(0)

        self._notify_changed()
        return entry

    def clear(self):
        """Clear all history."""
        self._undo_stack.clear()
        self._redo_stack.clear()
        self._notify_changed()

    def _notify_changed(self):
        """Notify that undo/redo state changed."""
        if self.on_state_changed:
            self.on_state_changed()
