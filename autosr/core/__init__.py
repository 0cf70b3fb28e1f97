"""
Core tracking and save orchestration engine.

The `Tracker` owns the table of tracked targets and hands live ones to the
`SaveManager`, which runs the downloader, watches it, and asks `Recovery` to
bring an interrupted stream back. `WorkGroup` keeps count of everything running
in the background so shutdown can drain it.
"""

from .modules import ModuleRegistry
from .recovery import Recovery
from .saver import SaveManager, SaveState, SaveTask
from .shutdown import WorkGroup
from .tracked import TrackedTarget
from .tracker import Tracker

__all__ = [
    "ModuleRegistry",
    "Recovery",
    "SaveManager",
    "SaveState",
    "SaveTask",
    "TrackedTarget",
    "Tracker",
    "WorkGroup",
]
