"""Contract shared by the syncers run for every addon."""

from abc import ABC, abstractmethod
import logging

from addon_deploy.exceptions import AddonDeployException, aggregate
from addon_deploy.manifest import (
    CLUSTER_KIND,
    AddonInstance,
    DeployableUnit,
    ManagedCluster,
    NamedResource,
)
from addon_deploy.store import Indexer, Store
from addon_deploy.workapplier import WorkApplier

__all__ = [
    "AddonDeploySyncer",
    "delete_units",
    "get_cluster",
    "units_by_addon",
]

_LOGGER = logging.getLogger(__name__)


class AddonDeploySyncer(ABC):
    """One step of the reconciliation of an addon.

    A syncer receives a copy of the addon, records its outcome on that copy
    (conditions, health, finalizers) and returns it. Failures are raised
    after the outcome has been recorded.
    """

    @abstractmethod
    async def sync(
        self, cluster: ManagedCluster, addon: AddonInstance
    ) -> AddonInstance:
        """Reconcile one aspect of the addon on the cluster."""


def units_by_addon(
    indexer: Indexer, index_name: str, addon: AddonInstance
) -> list[DeployableUnit]:
    """Return the units of the addon found in the named index."""
    return indexer.by_index(index_name, f"{addon.cluster_name}/{addon.name}")


def get_cluster(store: Store, name: str) -> ManagedCluster | None:
    return store.get_object(NamedResource(CLUSTER_KIND, None, name), ManagedCluster)


async def delete_units(applier: WorkApplier, units: list[DeployableUnit]) -> None:
    """Delete every unit, raising the collected failures at the end."""
    errors: list[Exception] = []
    for unit in units:
        try:
            await applier.delete(unit.namespace or "", unit.name)
        except AddonDeployException as err:
            _LOGGER.debug("Failed to delete unit %s: %s", unit.resource_id, err)
            errors.append(err)
    if (err := aggregate(errors)) is not None:
        raise err
