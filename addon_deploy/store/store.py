"""Store module for the objects reconciled by the controllers."""

from abc import ABC, abstractmethod
from collections.abc import Callable
from enum import Enum
from typing import Any, TypeVar

from addon_deploy.manifest import KubeObject, NamedResource

T = TypeVar("T", bound=KubeObject)


class StoreEvent(str, Enum):
    """Enum for store events."""

    OBJECT_ADDED = "object_added"
    OBJECT_UPDATED = "object_updated"
    OBJECT_DELETED = "object_deleted"


class Store(ABC):
    """Abstract base class for the object store watched by the controllers.

    Reads are served from a local, eventually consistent cache and never block.
    Writes are remote calls and are awaited. Every write carries the resource
    version it was computed from, and stale versions are rejected.
    """

    @abstractmethod
    def get_object(self, resource_id: NamedResource, cls: type[T]) -> T | None:
        """Retrieve a copy of an object by resource identity and type."""

    @abstractmethod
    def list_objects(
        self, kind: str | None = None, namespace: str | None = None
    ) -> list[KubeObject]:
        """List copies of the objects, optionally filtered by kind and namespace."""

    @abstractmethod
    async def create(self, obj: T) -> T:
        """Create a new object.

        Raises:
            AlreadyExistsError: If an object with the same identity exists.
        """

    @abstractmethod
    async def update(self, obj: T) -> T:
        """Update the metadata and spec of an object, leaving its status untouched.

        Raises:
            ObjectNotFoundError: If the object does not exist.
            ConflictError: If the resource version of `obj` is stale.
        """

    @abstractmethod
    async def update_status(self, obj: T) -> T:
        """Replace the status of an object.

        Raises:
            ObjectNotFoundError: If the object does not exist.
            ConflictError: If the resource version of `obj` is stale.
        """

    @abstractmethod
    async def patch_status(
        self, resource_id: NamedResource, patch: dict[str, Any]
    ) -> KubeObject:
        """Apply a JSON merge patch to the status of an object.

        The `metadata.uid` and `metadata.resourceVersion` fields of the patch,
        when present, are preconditions of the write.

        Raises:
            ObjectNotFoundError: If the object does not exist.
            ConflictError: If a precondition does not hold.
        """

    @abstractmethod
    async def delete(self, resource_id: NamedResource) -> None:
        """Delete an object.

        Objects with finalizers are only marked for deletion and are removed
        once their last finalizer is dropped.

        Raises:
            ObjectNotFoundError: If the object does not exist.
        """

    @abstractmethod
    def add_listener(
        self,
        event: StoreEvent,
        callback: Callable[[NamedResource, KubeObject], None],
        flush: bool = False,
    ) -> Callable[[], None]:
        """Register a callback for a specific event (object added, updated, deleted).

        When `flush` is set, the callback is invoked immediately for every object
        already in the store.

        Returns a callable that can be called to remove the listener.
        """
