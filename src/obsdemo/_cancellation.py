"""Client-disconnect detection for handlers that wait."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING

from obsdemo._errors import RequestCancelled

if TYPE_CHECKING:
    from starlette.requests import Request

logger = logging.getLogger("obsdemo.cancellation")


class CancellationToken:
    """Cooperative cancellation bound to one request.

    Polls the connection at most every ``check_interval`` seconds; once a
    disconnect is seen the token stays cancelled.
    """

    def __init__(self, request: Request, check_interval: float = 0.1) -> None:
        self.request = request
        self.check_interval = check_interval
        self._cancelled = False
        self._last_check = float("-inf")

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True

    async def is_cancelled(self) -> bool:
        if self._cancelled:
            return True
        now = time.monotonic()
        if now - self._last_check >= self.check_interval:
            self._last_check = now
            if await self.request.is_disconnected():
                self._cancelled = True
                logger.info("Client disconnected: %s %s", self.request.method, self.request.url.path)
        return self._cancelled

    async def raise_if_cancelled(self) -> None:
        if await self.is_cancelled():
            raise RequestCancelled("client disconnected")


async def cancellable_sleep(
    request: Request,
    delay: float,
    *,
    check_interval: float = 0.1,
) -> None:
    """Wait at least ``delay`` seconds, aborting early if the client goes away.

    Raises RequestCancelled on disconnect so the surrounding operation closes
    its span with an error status.
    """
    token = CancellationToken(request, check_interval)
    loop = asyncio.get_running_loop()
    deadline = loop.time() + delay
    while True:
        await token.raise_if_cancelled()
        remaining = deadline - loop.time()
        if remaining <= 0:
            return
        await asyncio.sleep(min(check_interval, remaining))
