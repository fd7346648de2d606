"""Quiet-period detection over canvas mutation events."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

from models.canvas_models import MutationEvent
from models.session_models import ActivitySession
from services.canvas.document import CanvasDocument

LOGGER = logging.getLogger(__name__)


class ActivityDebouncer:
    """Call `on_quiet` once every time the document stays still for `quiet_period` seconds.

    Only user-sourced, document-scoped events count. Events seen while
    `is_suppressed()` is true neither restart nor start the countdown. The
    watch is perpetual: after firing, the next qualifying event starts a new
    countdown.
    """

    def __init__(
        self,
        on_quiet: Callable[[], None],
        quiet_period: float = 2.0,
        is_suppressed: Optional[Callable[[], bool]] = None,
    ) -> None:
        self.on_quiet = on_quiet
        self.quiet_period = quiet_period
        self._is_suppressed = is_suppressed or (lambda: False)
        self.session = ActivitySession()
        self._unsubscribe: Optional[Callable[[], None]] = None

    @property
    def armed(self) -> bool:
        return self._unsubscribe is not None

    def arm(self, document: CanvasDocument, start_timer: bool = True) -> None:
        """Start observing `document`, by default with an initial countdown."""
        if self.armed:
            return
        self._unsubscribe = document.listen(self.notify)
        if start_timer:
            self._restart()

    def notify(self, event: MutationEvent) -> bool:
        """Feed one event. Returns True when it restarted the countdown."""
        if not self.armed or not event.qualifies:
            return False
        if self._is_suppressed():
            return False
        self._restart()
        return True

    def disarm(self) -> None:
        """Cancel the live timer and stop observing. Safe to call twice."""
        self._cancel_timer()
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _restart(self) -> None:
        loop = asyncio.get_running_loop()
        self._cancel_timer()
        self.session.last_event_at = loop.time()
        self.session.timer = loop.call_later(self.quiet_period, self._fire)

    def _cancel_timer(self) -> None:
        if self.session.timer is not None:
            self.session.timer.cancel()
            self.session.timer = None

    def _fire(self) -> None:
        self.session.timer = None
        if not self.armed:
            return
        self.session.quiet_count += 1
        LOGGER.debug("Quiet period elapsed (%s)", self.session.quiet_count)
        self.on_quiet()
