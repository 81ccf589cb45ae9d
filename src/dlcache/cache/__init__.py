"""
Cache package.

This package provides the time-bounded download cache:
- Key derivation (keys.py): SHA-256 keys from request identities
- Disk store (disk_store.py): flat directory of ``<key>-<name>`` files
- Index (index.py): lock-guarded in-memory entry map with TTL checks
- Scheduler (scheduler.py): periodic background sweep of stale entries
- Service (service.py): lifecycle owner tying the pieces together
"""

from dlcache.cache.disk_store import DiskStore
from dlcache.cache.index import CacheIndex
from dlcache.cache.keys import derive_key
from dlcache.cache.scheduler import EvictionScheduler
from dlcache.cache.service import CacheService

__all__ = [
    "CacheIndex",
    "CacheService",
    "DiskStore",
    "EvictionScheduler",
    "derive_key",
]
