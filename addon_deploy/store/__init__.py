"""
The store module provides the watch-backed object store the controllers
reconcile against, along with secondary indexes over its deployable units.

- Uses NamedResource as the key for all objects.
- Stores values as dataclass instances from manifest.py for type safety.
- Reads are served from a local cache, writes are versioned remote calls.

This abstract interface allows for various implementations (in-memory, remote, etc.).
"""

from .store import Store, StoreEvent
from .in_memory import InMemoryStore
from .indexer import (
    INDEX_HOOK_BY_HOSTED_ADDON,
    INDEX_WORK_BY_ADDON,
    INDEX_WORK_BY_HOSTED_ADDON,
    Indexer,
)

__all__ = [
    "Store",
    "StoreEvent",
    "InMemoryStore",
    "Indexer",
    "INDEX_WORK_BY_ADDON",
    "INDEX_WORK_BY_HOSTED_ADDON",
    "INDEX_HOOK_BY_HOSTED_ADDON",
]
