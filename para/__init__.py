"""Serve a directory of markdown notes as a live-reloading website."""

__version__ = "0.1.0"
