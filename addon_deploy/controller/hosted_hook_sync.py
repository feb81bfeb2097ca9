"""Run the pre-delete hook of a hosted addon on the hosting cluster."""

import logging

from addon_deploy.agent import AgentAddon
from addon_deploy.constants import HOSTING_PRE_DELETE_HOOK_FINALIZER
from addon_deploy.hosting import hosted_mode_info
from addon_deploy.manifest import AddonInstance, InstallMode, ManagedCluster
from addon_deploy.store import INDEX_HOOK_BY_HOSTED_ADDON, Indexer, Store
from addon_deploy.workapplier import WorkApplier

from .base import AddonDeploySyncer, delete_units, get_cluster, units_by_addon
from .builders import AddonUnitBuilder
from .default_hook_sync import run_hook

_LOGGER = logging.getLogger(__name__)


class HostedHookSyncer(AddonDeploySyncer):
    """Holds a deleting hosted addon until its pre-delete hook completed."""

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
        units = units_by_addon(self._indexer, INDEX_HOOK_BY_HOSTED_ADDON, addon)
        await delete_units(self._applier, units)
        addon.remove_finalizer(HOSTING_PRE_DELETE_HOOK_FINALIZER)

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
        if hosting_cluster is None or hosting_cluster.deleting:
            _LOGGER.debug(
                "Hosting cluster %s of addon %s is gone",
                hosting_cluster_name,
                addon.resource_id,
            )
            await self._cleanup(addon)
            return addon

        hook_unit = await self._builder.build_hook_unit(
            InstallMode.HOSTED, hosting_cluster_name, cluster, addon
        )
        if hook_unit is None:
            addon.remove_finalizer(HOSTING_PRE_DELETE_HOOK_FINALIZER)
            return addon

        if not addon.deleting:
            addon.add_finalizer(HOSTING_PRE_DELETE_HOOK_FINALIZER)
            return addon

        if not addon.has_finalizer(HOSTING_PRE_DELETE_HOOK_FINALIZER):
            return addon

        await run_hook(
            self._applier, hook_unit, addon, HOSTING_PRE_DELETE_HOOK_FINALIZER
        )
        return addon
