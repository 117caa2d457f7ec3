"""Exceptions raised by the MindCanvas document engine.

Expected editing failures (missing ids, cycle attempts, nothing to undo) are
not exceptions; operations return a falsy result and log a warning instead.
Only failures of the snapshot/patch machinery itself propagate.
"""

from typing import List, Optional


class MindCanvasError(Exception):
    """Base class for all engine errors."""


class PatchError(MindCanvasError):
    """A patch path does not resolve against the snapshot it is applied to."""

    def __init__(self, message: str, path: Optional[tuple] = None):
        super().__init__(message)
        self.path = path


class InvariantViolationError(MindCanvasError):
    """A commit would leave the document inconsistent."""

    def __init__(self, violations: List[str]):
        summary = violations[0] if violations else "unknown violation"
        if len(violations) > 1:
            summary += f" (+{len(violations) - 1} more)"
        super().__init__(f"Document invariant violated: {summary}")
        self.violations = list(violations)


class TransactionInProgressError(MindCanvasError):
    """`execute` was called again while a mutator still holds the draft."""


class ProjectFormatError(MindCanvasError):
    """A persisted projection could not be decoded."""


class StaleDraftError(MindCanvasError):
    """A draft was used after its transaction had already been committed."""
