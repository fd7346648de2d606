"""Suppression flag for canvas writes made by the pipeline itself."""

from __future__ import annotations

import asyncio
from contextlib import contextmanager
from typing import Iterator, Optional


class SelfMutationGuard:
    """Marks document events caused by our own writes.

    `hold()` raises the flag for the duration of a block and keeps it raised
    for `grace_seconds` afterwards, since echoes of the write can reach
    listeners on a later loop tick.
    """

    def __init__(self, grace_seconds: float = 0.1) -> None:
        self.grace_seconds = grace_seconds
        self._depth = 0
        self._release: Optional[asyncio.TimerHandle] = None

    @property
    def active(self) -> bool:
        return self._depth > 0 or self._release is not None

    @contextmanager
    def hold(self) -> Iterator[None]:
        self._cancel_release()
        self._depth += 1
        try:
            yield
        finally:
            self._depth -= 1
            if self._depth == 0:
                self._schedule_release()

    def reset(self) -> None:
        self._cancel_release()
        self._depth = 0

    def _schedule_release(self) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop means no later tick to wait for.
            return
        self._release = loop.call_later(self.grace_seconds, self._expire)

    def _expire(self) -> None:
        self._release = None

    def _cancel_release(self) -> None:
        if self._release is not None:
            self._release.cancel()
            self._release = None
