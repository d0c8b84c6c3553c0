"""Inspect AMD GPU runlists, KFD nodes and processes, and DRM topology."""

__version__ = "0.1.0"