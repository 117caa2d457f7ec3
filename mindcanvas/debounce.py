"""Main-loop debouncer for layout passes triggered by size reports."""

import logging
from typing import Callable, Optional

from gi.repository import GLib

logger = logging.getLogger(__name__)


class LayoutDebouncer:
    """Runs `callback` once, `delay_ms` after the last `schedule()` call.

    The timer lives on the default GLib main context, so the callback only
    fires while a main loop (or a manual context iteration) is running.
    `flush()` runs it synchronously instead.
    """

    def __init__(self, callback: Callable[[], None], delay_ms: int = 300):
        self.callback = callback
        self.delay_ms = max(0, int(delay_ms))
        self._source_id: Optional[int] = None

    @property
    def pending(self) -> bool:
        return self._source_id is not None

    def schedule(self):
        """(Re)start the timer; a newer report supersedes a pending one."""
        if self._source_id is not None:
            GLib.source_remove(self._source_id)
        self._source_id = GLib.timeout_add(self.delay_ms, self._on_timeout)

    def cancel(self):
        if self._source_id is not None:
            GLib.source_remove(self._source_id)
            self._source_id = None

    def flush(self) -> bool:
        """Run a pending callback now. Returns False if nothing was pending."""
        if self._source_id is None:
            return False
        self.cancel()
        self.callback()
        return True

    def _on_timeout(self) -> bool:
        self._source_id = None
        logger.debug("Debounced layout fired after %d ms", self.delay_ms)
        self.callback()
        return GLib.SOURCE_REMOVE
