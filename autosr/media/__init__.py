"""
Media Processing Layer.

This package is responsible for running the external downloader that writes
recordings to disk.
"""

from .downloader import Downloader, ProcessHandle, build_command, output_path

__all__ = ["Downloader", "ProcessHandle", "build_command", "output_path"]
