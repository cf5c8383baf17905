"""Cadence - keeps a local music library in step with a remote media server."""

__version__ = "0.1.0"
