"""
Waits for an interrupted target to come back so its save can resume.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Sequence, TypeVar

from rich.markup import escape

from autosr.exceptions import StreamURLNotFoundError, TargetNotLiveError
from autosr.models.target import Target

log = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_RECOVER_TIMEOUT = 300.0


@dataclass(frozen=True)
class RecoveryResult:
    url: str
    elapsed: float


async def wait_any(events: Sequence[asyncio.Event], timeout: float) -> bool:
    """Waits until one of the events is set. Returns False on timeout."""
    if any(e.is_set() for e in events):
        return True
    if not events:
        await asyncio.sleep(timeout)
        return False
    waiters = [asyncio.ensure_future(e.wait()) for e in events]
    try:
        done, _ = await asyncio.wait(
            waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
        )
        return bool(done)
    finally:
        for w in waiters:
            w.cancel()


class Recovery:
    """
    Two-phase bounded wait used after a downloader exits unexpectedly.

    A target can report itself live before its stream manifest is available,
    so liveness and URL resolution are awaited separately, each within
    `timeout` seconds. Setting any of the `stop` events ends the wait early.
    """

    def __init__(
        self, timeout: float = DEFAULT_RECOVER_TIMEOUT, poll_interval: float = 10.0
    ):
        self.timeout = timeout
        self.poll_interval = min(poll_interval, timeout)

    async def recover(
        self, target: Target, stop: Sequence[asyncio.Event] = ()
    ) -> RecoveryResult:
        """
        Returns a fresh stream URL and the time spent waiting for it.

        Raises:
            TargetNotLiveError: The target did not come back within the timeout.
            StreamURLNotFoundError: It came back but no URL could be resolved.
        """
        begin_at = time.monotonic()
        name = escape(target.name)
        log.info(f"Trying to recover {name}...")

        if not await self._poll(target.check_live, bool, stop):
            elapsed = time.monotonic() - begin_at
            log.info(f"[yellow]{name} is not online.[/yellow]")
            raise TargetNotLiveError(f"{target.name} is not live", elapsed)
        log.info(f"{name} is online.")

        url = await self._poll(self._try_stream(target), bool, stop)
        elapsed = time.monotonic() - begin_at
        if not url:
            log.info(f"[yellow]{name}: did not find a stream url.[/yellow]")
            raise StreamURLNotFoundError(
                f"{target.name}: did not find a stream url", elapsed
            )

        log.info(f"{name}: found a new stream url.")
        return RecoveryResult(url=url, elapsed=elapsed)

    @staticmethod
    def _try_stream(target: Target) -> Callable[[], Awaitable[str]]:
        async def check() -> str:
            try:
                return await target.check_stream()
            except (TargetNotLiveError, StreamURLNotFoundError):
                return ""

        return check

    async def _poll(
        self,
        check: Callable[[], Awaitable[T]],
        ok: Callable[[T], bool],
        stop: Sequence[asyncio.Event],
    ) -> Optional[T]:
        """Calls `check` until `ok` accepts its result, the timeout passes, or a stop."""
        deadline = time.monotonic() + self.timeout
        while True:
            try:
                result = await asyncio.wait_for(
                    check(), timeout=max(deadline - time.monotonic(), 0)
                )
                if ok(result):
                    return result
            except asyncio.TimeoutError:
                return None
            except Exception as e:
                log.debug(f"Recovery check failed: {e}")

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return None
            if await wait_any(stop, min(self.poll_interval, remaining)):
                return None
