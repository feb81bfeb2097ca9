"""Deploy the units of a hosted addon into the hosting cluster namespace.

The hosting cluster must itself be a managed cluster of the hub. When it is
missing or being deleted, or the addon leaves hosted mode, the hosted units
are removed and the cleanup finalizer of the addon is released.
"""

import logging

from addon_deploy.agent import AgentAddon
from addon_deploy.constants import (
    CONDITION_HOSTING_CLUSTER_VALIDITY,
    CONDITION_HOSTING_MANIFEST_APPLIED,
    HOSTING_MANIFEST_FINALIZER,
    HOSTING_PRE_DELETE_HOOK_FINALIZER,
    REASON_HOSTING_CLUSTER_INVALID,
    REASON_HOSTING_CLUSTER_VALID,
)
from addon_deploy.exceptions import AddonDeployException, EmptyManifestsError, aggregate
from addon_deploy.hosting import hosted_mode_info
from addon_deploy.manifest import (
    AddonInstance,
    Condition,
    ConditionStatus,
    InstallMode,
    ManagedCluster,
)
from addon_deploy.store import INDEX_WORK_BY_HOSTED_ADDON, Indexer, Store
from addon_deploy.workapplier import WorkApplier

from .base import AddonDeploySyncer, delete_units, get_cluster, units_by_addon
from .builders import AddonUnitBuilder

_LOGGER = logging.getLogger(__name__)


class HostedSyncer(AddonDeploySyncer):
    """Keeps the deploy units on the hosting cluster up to date."""

    def __init__(
        self,
        agent_addon: AgentAddon,
        builder: AddonUnitBuilder,
        applier: WorkApplier,
        indexer: Indexer,
        store: Store,
    ) -> None:
        self._agent_addon = agent_addon
        self._builder = builder
        self._applier = applier
        self._indexer = indexer
        self._store = store

    async def _cleanup(self, addon: AddonInstance) -> None:
        units = units_by_addon(self._indexer, INDEX_WORK_BY_HOSTED_ADDON, addon)
        if units:
            _LOGGER.info(
                "Removing %d hosted deploy units of addon %s",
                len(units),
                addon.resource_id,
            )
        await delete_units(self._applier, units)
        addon.remove_finalizer(HOSTING_MANIFEST_FINALIZER)

    async def sync(
        self, cluster: ManagedCluster, addon: AddonInstance
    ) -> AddonInstance:
        if not self._agent_addon.options().hosted_mode_enabled:
            return addon

        install_mode, hosting_cluster_name = hosted_mode_info(addon, cluster)
        if install_mode != InstallMode.HOSTED:
            await self._cleanup(addon)
            return addon

        hosting_cluster = get_cluster(self._store, hosting_cluster_name)
        if hosting_cluster is None:
            await self._cleanup(addon)
            addon.set_condition(
                Condition(
                    type=CONDITION_HOSTING_CLUSTER_VALIDITY,
                    status=ConditionStatus.FALSE,
                    reason=REASON_HOSTING_CLUSTER_INVALID,
                    message=f"hosting cluster {hosting_cluster_name} is not a managed cluster of the hub",
                )
            )
            return addon

        addon.set_condition(
            Condition(
                type=CONDITION_HOSTING_CLUSTER_VALIDITY,
                status=ConditionStatus.TRUE,
                reason=REASON_HOSTING_CLUSTER_VALID,
                message=f"hosting cluster {hosting_cluster_name} is a managed cluster of the hub",
            )
        )

        if hosting_cluster.deleting:
            await self._cleanup(addon)
            return addon

        if addon.deleting:
            # The hook runs on the hosting cluster before the units go away
            if addon.has_finalizer(HOSTING_PRE_DELETE_HOOK_FINALIZER):
                return addon
            await self._cleanup(addon)
            return addon

        if addon.add_finalizer(HOSTING_MANIFEST_FINALIZER):
            return addon

        existing = units_by_addon(self._indexer, INDEX_WORK_BY_HOSTED_ADDON, addon)
        try:
            applied, deleted = await self._builder.build_deploy_units(
                InstallMode.HOSTED, hosting_cluster_name, cluster, existing, addon
            )
        except EmptyManifestsError as err:
            _LOGGER.info(
                "Addon %s has no hosted manifests, removing its hosted units",
                addon.resource_id,
            )
            await delete_units(self._applier, err.existing)
            return addon

        errors: list[Exception] = []
        for unit in deleted:
            try:
                await self._applier.delete(hosting_cluster_name, unit.name)
            except AddonDeployException as err:
                errors.append(err)
        for unit in applied:
            try:
                await self._applier.apply_work(
                    CONDITION_HOSTING_MANIFEST_APPLIED, unit, addon
                )
            except AddonDeployException as err:
                errors.append(err)
        if (agg := aggregate(errors)) is not None:
            raise agg
        return addon
