"""
Snapshot Cache

Short-TTL cache of computed snapshots, persisted in snapshot_cache so every
worker process sees the same invalidation. Lifecycle mutations delete the
user's row inside their own transaction.
"""
from datetime import datetime, timedelta
from typing import Optional

from ...config import SNAPSHOT_CACHE_TTL_SECONDS
from ...models.lifecycle import Snapshot
from ..lifecycle.store import AssessmentStore


class SnapshotCache:

    def __init__(self, store: AssessmentStore, ttl_seconds: int = SNAPSHOT_CACHE_TTL_SECONDS):
        self.store = store
        self.ttl = timedelta(seconds=ttl_seconds)

    def get(self, user_id: str, now: datetime) -> Optional[Snapshot]:
        entry = self.store.get_cached_snapshot(user_id)
        if entry is None or entry.expires_at <= now:
            return None
        return Snapshot.from_dict(entry.payload)

    def put(self, user_id: str, snapshot: Snapshot, now: datetime):
        self.store.put_cached_snapshot(
            user_id,
            payload=snapshot.to_dict(),
            computed_at=now,
            expires_at=now + self.ttl,
        )

    def invalidate(self, user_id: str) -> bool:
        return self.store.invalidate_cached_snapshot(user_id)
