"""
Dashboard Layer.

This package answers status requests from a connected dashboard.
"""

from .status import Dashboard, StatusService

__all__ = ["Dashboard", "StatusService"]
