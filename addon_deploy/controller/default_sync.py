"""Deploy the units of an addon into the managed cluster namespace."""

import logging

from addon_deploy.agent import AgentAddon
from addon_deploy.constants import CONDITION_MANIFEST_APPLIED
from addon_deploy.exceptions import AddonDeployException, EmptyManifestsError, aggregate
from addon_deploy.hosting import hosted_mode_info
from addon_deploy.manifest import AddonInstance, InstallMode, ManagedCluster
from addon_deploy.store import INDEX_WORK_BY_ADDON, Indexer
from addon_deploy.workapplier import WorkApplier

from .base import AddonDeploySyncer, delete_units, units_by_addon
from .builders import AddonUnitBuilder

_LOGGER = logging.getLogger(__name__)


class DefaultSyncer(AddonDeploySyncer):
    """Keeps the deploy units in the managed cluster namespace up to date."""

    def __init__(
        self,
        agent_addon: AgentAddon,
        builder: AddonUnitBuilder,
        applier: WorkApplier,
        indexer: Indexer,
    ) -> None:
        self._agent_addon = agent_addon
        self._builder = builder
        self._applier = applier
        self._indexer = indexer

    async def sync(
        self, cluster: ManagedCluster, addon: AddonInstance
    ) -> AddonInstance:
        if cluster.deleting or addon.deleting:
            return addon

        unit_namespace = addon.cluster_name
        existing = units_by_addon(self._indexer, INDEX_WORK_BY_ADDON, addon)
        try:
            applied, deleted = await self._builder.build_deploy_units(
                InstallMode.DEFAULT, unit_namespace, cluster, existing, addon
            )
        except EmptyManifestsError as err:
            install_mode, _ = hosted_mode_info(addon, cluster)
            if (
                install_mode != InstallMode.HOSTED
                or not self._agent_addon.options().hosted_mode_enabled
            ):
                _LOGGER.debug("Addon %s has nothing to deploy", addon.resource_id)
                return addon
            _LOGGER.info(
                "Addon %s moved to hosted mode, removing its deploy units",
                addon.resource_id,
            )
            await delete_units(self._applier, err.existing)
            return addon

        errors: list[Exception] = []
        for unit in deleted:
            try:
                await self._applier.delete(unit_namespace, unit.name)
            except AddonDeployException as err:
                errors.append(err)
        for unit in applied:
            try:
                await self._applier.apply_work(CONDITION_MANIFEST_APPLIED, unit, addon)
            except AddonDeployException as err:
                errors.append(err)
        if (agg := aggregate(errors)) is not None:
            raise agg
        return addon
