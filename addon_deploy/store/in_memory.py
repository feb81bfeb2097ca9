"""Module for in memory object store."""

import asyncio
from collections import defaultdict
from collections.abc import Callable
import logging
from typing import Any, DefaultDict, TypeVar
import uuid

from addon_deploy.exceptions import (
    AlreadyExistsError,
    ConflictError,
    ObjectNotFoundError,
)
from addon_deploy.manifest import KubeObject, NamedResource, now
from addon_deploy.patch import apply_merge_patch

from .store import Store, StoreEvent

_LOGGER = logging.getLogger(__name__)

T = TypeVar("T", bound=KubeObject)


class InMemoryStore(Store):
    """In-memory implementation of the Store interface.

    Stores objects keyed by NamedResource, assigns uids and resource versions
    on write, and supports event listeners for object changes.
    """

    def __init__(self, latency: float = 0.0) -> None:
        """Initialize the InMemoryStore.

        Args:
            latency: Seconds each write waits before it is applied.
        """
        self._objects: dict[NamedResource, KubeObject] = {}
        self._listeners: DefaultDict[StoreEvent, list[Callable[..., None]]] = (
            defaultdict(list)
        )
        self._latency = latency
        self._version = 0
        self.writes = 0

    def _next_version(self) -> str:
        self._version += 1
        return str(self._version)

    async def _round_trip(self) -> None:
        await asyncio.sleep(self._latency)
        self.writes += 1

    def add_object(self, obj: KubeObject) -> None:
        """Seed an object into the store without a remote round trip."""
        _LOGGER.debug("Adding object %s to store", obj.resource_id)
        stored = obj.deep_copy()
        existing = self._objects.get(obj.resource_id)
        if not stored.metadata.uid:
            stored.metadata.uid = (
                existing.metadata.uid if existing else str(uuid.uuid4())
            )
        stored.metadata.generation = stored.metadata.generation or 1
        stored.metadata.resource_version = self._next_version()
        self._objects[obj.resource_id] = stored
        self._fire_event(
            StoreEvent.OBJECT_UPDATED if existing else StoreEvent.OBJECT_ADDED,
            obj.resource_id,
            stored.deep_copy(),
        )

    def get_object(self, resource_id: NamedResource, cls: type[T]) -> T | None:
        """Retrieve a copy of an object by resource identity and type."""
        obj = self._objects.get(resource_id)
        if obj is None:
            return None
        if not isinstance(obj, cls):
            raise ValueError(
                f"Object {resource_id.namespaced_name} is not of type {cls.__name__} (was {obj.__class__.__name__})"
            )
        return obj.deep_copy()

    def list_objects(
        self, kind: str | None = None, namespace: str | None = None
    ) -> list[KubeObject]:
        """List copies of the objects, optionally filtered by kind and namespace."""
        return [
            obj.deep_copy()
            for resource_id, obj in self._objects.items()
            if (kind is None or resource_id.kind == kind)
            and (namespace is None or resource_id.namespace == namespace)
        ]

    async def create(self, obj: T) -> T:
        """Create a new object."""
        await self._round_trip()
        resource_id = obj.resource_id
        if resource_id in self._objects:
            raise AlreadyExistsError(f"{resource_id} already exists")
        stored = obj.deep_copy()
        stored.metadata.uid = str(uuid.uuid4())
        stored.metadata.generation = 1
        stored.metadata.resource_version = self._next_version()
        self._objects[resource_id] = stored
        _LOGGER.debug("Created %s (version %s)", resource_id, stored.metadata.resource_version)
        self._fire_event(StoreEvent.OBJECT_ADDED, resource_id, stored.deep_copy())
        return stored.deep_copy()

    def _existing(self, resource_id: NamedResource, resource_version: str | None) -> KubeObject:
        if (existing := self._objects.get(resource_id)) is None:
            raise ObjectNotFoundError(f"{resource_id} not found")
        if (
            resource_version is not None
            and resource_version != existing.metadata.resource_version
        ):
            raise ConflictError(
                f"Operation cannot be fulfilled on {resource_id}: the object has been "
                f"modified (version {resource_version} != {existing.metadata.resource_version})"
            )
        return existing

    async def update(self, obj: T) -> T:
        """Update the metadata and spec of an object, leaving its status untouched."""
        await self._round_trip()
        resource_id = obj.resource_id
        existing = self._existing(resource_id, obj.metadata.resource_version)
        stored = obj.deep_copy()
        stored.metadata.uid = existing.metadata.uid
        stored.metadata.deletion_timestamp = existing.metadata.deletion_timestamp
        stored.metadata.generation = existing.metadata.generation
        if getattr(stored, "spec", None) != getattr(existing, "spec", None):
            stored.metadata.generation = (existing.metadata.generation or 0) + 1
        if hasattr(existing, "status"):
            stored.status = existing.status  # type: ignore[attr-defined]
        if stored.deleting and not stored.metadata.finalizers:
            del self._objects[resource_id]
            _LOGGER.debug("Removed %s after its last finalizer", resource_id)
            self._fire_event(StoreEvent.OBJECT_DELETED, resource_id, stored.deep_copy())
            return stored.deep_copy()
        stored.metadata.resource_version = self._next_version()
        self._objects[resource_id] = stored
        self._fire_event(StoreEvent.OBJECT_UPDATED, resource_id, stored.deep_copy())
        return stored.deep_copy()

    async def update_status(self, obj: T) -> T:
        """Replace the status of an object."""
        await self._round_trip()
        resource_id = obj.resource_id
        existing = self._existing(resource_id, obj.metadata.resource_version)
        stored = existing.deep_copy()
        stored.status = obj.deep_copy().status  # type: ignore[attr-defined]
        stored.metadata.resource_version = self._next_version()
        self._objects[resource_id] = stored
        self._fire_event(StoreEvent.OBJECT_UPDATED, resource_id, stored.deep_copy())
        return stored.deep_copy()

    async def patch_status(
        self, resource_id: NamedResource, patch: dict[str, Any]
    ) -> KubeObject:
        """Apply a JSON merge patch to the status of an object."""
        await self._round_trip()
        metadata = patch.get("metadata") or {}
        existing = self._existing(resource_id, metadata.get("resourceVersion"))
        if (uid := metadata.get("uid")) is not None and uid != existing.metadata.uid:
            raise ConflictError(
                f"Precondition failed for {resource_id}: uid {uid} != {existing.metadata.uid}"
            )
        body = existing.to_dict()
        body["status"] = apply_merge_patch(body.get("status") or {}, patch.get("status") or {})
        stored = existing.__class__.from_dict(body)
        stored.metadata.resource_version = self._next_version()
        self._objects[resource_id] = stored
        self._fire_event(StoreEvent.OBJECT_UPDATED, resource_id, stored.deep_copy())
        return stored.deep_copy()

    async def delete(self, resource_id: NamedResource) -> None:
        """Delete an object, or mark it for deletion if it has finalizers."""
        await self._round_trip()
        existing = self._existing(resource_id, None)
        if existing.metadata.finalizers:
            if existing.deleting:
                return
            existing.metadata.deletion_timestamp = now()
            existing.metadata.resource_version = self._next_version()
            _LOGGER.debug("Marked %s for deletion", resource_id)
            self._fire_event(StoreEvent.OBJECT_UPDATED, resource_id, existing.deep_copy())
            return
        del self._objects[resource_id]
        _LOGGER.debug("Deleted %s", resource_id)
        self._fire_event(StoreEvent.OBJECT_DELETED, resource_id, existing.deep_copy())

    def add_listener(
        self,
        event: StoreEvent,
        callback: Callable[[NamedResource, KubeObject], None],
        flush: bool = False,
    ) -> Callable[[], None]:
        """Register a callback for a specific event (object added, updated, deleted)."""

        def remove() -> None:
            if callback in self._listeners[event]:
                self._listeners[event].remove(callback)

        self._listeners[event].append(callback)

        if flush and event == StoreEvent.OBJECT_ADDED:
            _LOGGER.debug("Flushing objects for event type %s", event)
            for resource_id, obj in list(self._objects.items()):
                callback(resource_id, obj.deep_copy())

        return remove

    def _fire_event(self, event: StoreEvent, *args: Any) -> None:
        for cb in list(self._listeners[event]):  # Iterate over a copy for safe removal
            try:
                cb(*args)
            except Exception:
                _LOGGER.exception("Store listener callback failed for event %s", event)
