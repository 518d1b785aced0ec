"""API route handlers."""
from . import fx, quota, quotes, snapshots

__all__ = ["fx", "quota", "quotes", "snapshots"]
