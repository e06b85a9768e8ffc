"""Debounced callbacks on the event loop.

Bursts of feed updates (a tick storm, a batch of indicator updates) should
trigger one recompute, not one per message. ``Debouncer.schedule()`` arms a
timer; scheduling again before it fires cancels the pending call, so only
the last one runs.
"""

import asyncio
import logging
from typing import Callable

logger = logging.getLogger(__name__)


class Debouncer:
    """Run *callback* once, *delay* seconds after the last ``schedule()``."""

    def __init__(self, delay: float, callback: Callable[[], None], name: str = "debounce"):
        self.delay = delay
        self.callback = callback
        self.name = name
        self._handle: asyncio.TimerHandle | None = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def schedule(self) -> None:
        """(Re)arm the timer, cancelling any pending call.

        Without a running event loop the callback runs immediately.
        """
        self.cancel()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._run()
            return
        if self.delay <= 0:
            self._handle = loop.call_soon(self._fire)
        else:
            self._handle = loop.call_later(self.delay, self._fire)

    def cancel(self) -> bool:
        """Cancel the pending call. Returns True if one was pending."""
        if self._handle is None:
            return False
        self._handle.cancel()
        self._handle = None
        return True

    def flush(self) -> bool:
        """Run the pending call now. Returns True if one was pending."""
        if not self.cancel():
            return False
        self._run()
        return True

    def _fire(self) -> None:
        self._handle = None
        self._run()

    def _run(self) -> None:
        try:
            self.callback()
        except Exception:
            logger.exception(f"{self.name} callback failed")
