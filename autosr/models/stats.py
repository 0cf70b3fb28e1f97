"""
Dataclass for tracking recording session statistics.
"""

import time
from dataclasses import dataclass, field


@dataclass
class SaveStats:
    """Counts what happened to every save attempt during a session."""

    saves_started: int = 0
    saves_finished: int = 0
    saves_canceled: int = 0
    saves_duplicate: int = 0
    saves_failed: int = 0
    recoveries: int = 0
    recoveries_failed: int = 0
    targets_recorded: set[str] = field(default_factory=set)
    _started_at: float = field(default_factory=time.monotonic, repr=False)

    @property
    def uptime(self) -> float:
        """Seconds since the session began."""
        return time.monotonic() - self._started_at

    @property
    def saves_active(self) -> int:
        return self.saves_started - (
            self.saves_finished + self.saves_canceled + self.saves_failed
        )
