"""
Snapshot Services

Read-only derivation of the wellness snapshot consumed by chat
personalization and the dashboard.
"""
from .aggregator import SnapshotAggregator, SnapshotLookup, build_snapshot, compute_confidence
from .snapshot_cache import SnapshotCache

__all__ = [
    'SnapshotAggregator',
    'SnapshotLookup',
    'SnapshotCache',
    'build_snapshot',
    'compute_confidence',
]
