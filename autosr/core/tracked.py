"""
Registry entry pairing a target with the state only the orchestrator needs.
"""

import asyncio
from datetime import datetime

from autosr.models.target import Target, TargetInfo


class TrackedTarget:
    """
    A target plus its cancellation signal.

    The signal is replaced at the start of every save attempt, so a cancel that
    fired while nothing was recording never leaks into the next save.
    """

    def __init__(self, target: Target):
        self.target = target
        self.cancel = asyncio.Event()
        self.added_at = datetime.now()
        target.set_cancel(self.cancel)

    @property
    def link(self) -> str:
        return self.target.link

    @property
    def name(self) -> str:
        return self.target.name

    def renew_cancel(self) -> asyncio.Event:
        """Installs a fresh cancellation signal for a new save attempt."""
        self.cancel = asyncio.Event()
        self.target.set_cancel(self.cancel)
        return self.cancel

    def fire_cancel(self) -> None:
        self.cancel.set()

    def info(self) -> TargetInfo:
        return self.target.info()

    def __repr__(self) -> str:
        return f"<TrackedTarget {self.name} {self.link}>"
