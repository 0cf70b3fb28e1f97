"""
autosr: watches live stream targets and records them as soon as they go live.
"""

__version__ = "0.4.0"
