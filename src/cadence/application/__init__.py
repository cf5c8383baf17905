"""Application layer: sync services and background workers."""
