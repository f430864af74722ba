"""
Cooperative cancellation for in-flight attestation lookups.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

logger = logging.getLogger(__name__)


class FetchCancelledError(Exception):
    """Raised by a fetch that observed its cancellation token firing."""


class CancellationToken:
    """A one-shot flag shared between a request and the code performing its I/O.

    The owner calls `cancel()`; workers either poll `cancelled` at checkpoints
    or await `wait()` alongside their I/O.
    """

    def __init__(self):
        self._cancelled = False
        self._event: Optional[asyncio.Event] = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        if self._event is not None:
            self._event.set()
        logger.debug("Cancellation requested")

    async def wait(self) -> None:
        """Block until `cancel()` is called."""
        if self._event is None:
            self._event = asyncio.Event()
            if self._cancelled:
                self._event.set()
        await self._event.wait()

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise FetchCancelledError("Operation was cancelled")
