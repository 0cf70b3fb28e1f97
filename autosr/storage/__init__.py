"""
Storage Layer.

This package handles the configuration file and the track list.
"""

from .config_manager import ConfigManager
from .track_list import TrackListWatcher, read_track_list

__all__ = ["ConfigManager", "TrackListWatcher", "read_track_list"]
