"""Secondary indexes over the deployable units held in the store.

Units are looked up by the addon that owns them rather than by their own
namespace. In hosted mode a unit lives in the hosting cluster namespace while
its addon lives in the managed cluster namespace, so the addon namespace label
is used as the index key instead.
"""

from collections import defaultdict
from collections.abc import Callable
import logging

from addon_deploy.constants import (
    ADDON_LABEL,
    ADDON_NAMESPACE_LABEL,
    deploy_unit_name_prefix,
    pre_delete_hook_unit_name,
)
from addon_deploy.manifest import UNIT_KIND, DeployableUnit, KubeObject, NamedResource

from .store import Store, StoreEvent

__all__ = [
    "INDEX_WORK_BY_ADDON",
    "INDEX_WORK_BY_HOSTED_ADDON",
    "INDEX_HOOK_BY_HOSTED_ADDON",
    "Indexer",
    "IndexFunc",
    "index_work_by_addon",
    "index_work_by_hosted_addon",
    "index_hook_by_hosted_addon",
]

_LOGGER = logging.getLogger(__name__)

INDEX_WORK_BY_ADDON = "manifestWorkByAddon"
INDEX_WORK_BY_HOSTED_ADDON = "manifestWorkByHostedAddon"
INDEX_HOOK_BY_HOSTED_ADDON = "manifestWorkHookByHostedAddon"

IndexFunc = Callable[[DeployableUnit], list[str]]


def index_work_by_addon(unit: DeployableUnit) -> list[str]:
    """Index deploy units living in the namespace of their addon."""
    labels = unit.metadata.labels
    if not (addon_name := labels.get(ADDON_LABEL)):
        return []
    if ADDON_NAMESPACE_LABEL in labels:
        return []
    if not unit.name.startswith(deploy_unit_name_prefix(addon_name)):
        return []
    return [f"{unit.namespace}/{addon_name}"]


def index_work_by_hosted_addon(unit: DeployableUnit) -> list[str]:
    """Index deploy units placed on the hosting cluster by addon namespace."""
    labels = unit.metadata.labels
    addon_name = labels.get(ADDON_LABEL)
    addon_namespace = labels.get(ADDON_NAMESPACE_LABEL)
    if not addon_name or not addon_namespace:
        return []
    if not unit.name.startswith(deploy_unit_name_prefix(addon_name)):
        return []
    return [f"{addon_namespace}/{addon_name}"]


def index_hook_by_hosted_addon(unit: DeployableUnit) -> list[str]:
    """Index hook units placed on the hosting cluster by addon namespace."""
    labels = unit.metadata.labels
    addon_name = labels.get(ADDON_LABEL)
    addon_namespace = labels.get(ADDON_NAMESPACE_LABEL)
    if not addon_name or not addon_namespace:
        return []
    if not unit.name.startswith(pre_delete_hook_unit_name(addon_name)):
        return []
    return [f"{addon_namespace}/{addon_name}"]


DEFAULT_INDEXERS: dict[str, IndexFunc] = {
    INDEX_WORK_BY_ADDON: index_work_by_addon,
    INDEX_WORK_BY_HOSTED_ADDON: index_work_by_hosted_addon,
    INDEX_HOOK_BY_HOSTED_ADDON: index_hook_by_hosted_addon,
}


class Indexer:
    """Read-only lookup of deployable units by owning addon.

    The index follows the store through its listeners so results reflect the
    cached view of the store and may briefly lag behind remote writes.
    """

    def __init__(
        self, store: Store, indexers: dict[str, IndexFunc] | None = None
    ) -> None:
        self._store = store
        self._indexers = dict(indexers if indexers is not None else DEFAULT_INDEXERS)
        self._indices: dict[str, defaultdict[str, set[NamedResource]]] = {
            name: defaultdict(set) for name in self._indexers
        }
        self._keys: dict[NamedResource, dict[str, list[str]]] = {}
        self._removers = [
            store.add_listener(StoreEvent.OBJECT_ADDED, self._on_upsert, flush=True),
            store.add_listener(StoreEvent.OBJECT_UPDATED, self._on_upsert),
            store.add_listener(StoreEvent.OBJECT_DELETED, self._on_delete),
        ]

    def _on_upsert(self, resource_id: NamedResource, obj: KubeObject) -> None:
        if resource_id.kind != UNIT_KIND or not isinstance(obj, DeployableUnit):
            return
        self._drop(resource_id)
        keys: dict[str, list[str]] = {}
        for name, func in self._indexers.items():
            keys[name] = func(obj)
            for key in keys[name]:
                self._indices[name][key].add(resource_id)
        self._keys[resource_id] = keys

    def _on_delete(self, resource_id: NamedResource, obj: KubeObject) -> None:
        if resource_id.kind != UNIT_KIND:
            return
        self._drop(resource_id)

    def _drop(self, resource_id: NamedResource) -> None:
        if (keys := self._keys.pop(resource_id, None)) is None:
            return
        for name, values in keys.items():
            for key in values:
                index = self._indices[name]
                index[key].discard(resource_id)
                if not index[key]:
                    del index[key]

    def by_index(self, index_name: str, key: str) -> list[DeployableUnit]:
        """Return the units stored under `key` in the named index.

        Raises:
            KeyError: If no index with that name exists.
        """
        if index_name not in self._indices:
            raise KeyError(f"Index with name {index_name} does not exist")
        result = []
        for resource_id in sorted(self._indices[index_name].get(key, ())):
            if (unit := self._store.get_object(resource_id, DeployableUnit)) is None:
                _LOGGER.debug("Indexed unit %s is gone from the store", resource_id)
                continue
            result.append(unit)
        return result

    def close(self) -> None:
        """Stop following the store."""
        for remove in self._removers:
            remove()
        self._removers.clear()
