"""
Data Models Layer.

This package contains the models that define the core data structures used
throughout the application: configuration, targets, and session statistics.
"""

from .config import AppConfig
from .stats import SaveStats
from .target import BaseModule, Module, Target, TargetInfo

__all__ = ["AppConfig", "BaseModule", "Module", "SaveStats", "Target", "TargetInfo"]
