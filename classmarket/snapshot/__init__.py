"""Read-optimized market snapshot."""

from .cache import SNAPSHOT_KEY, SnapshotCache

__all__ = ["SNAPSHOT_KEY", "SnapshotCache"]
