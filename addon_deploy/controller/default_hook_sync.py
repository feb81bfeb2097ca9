"""Run the pre-delete hook of an addon on the managed cluster."""

import logging

from addon_deploy.constants import (
    CONDITION_HOOK_MANIFEST_COMPLETED,
    PRE_DELETE_HOOK_FINALIZER,
    REASON_HOOK_COMPLETED,
    REASON_HOOK_NOT_COMPLETED,
)
from addon_deploy.manifest import (
    AddonInstance,
    Condition,
    ConditionStatus,
    DeployableUnit,
    InstallMode,
    ManagedCluster,
)
from addon_deploy.workapplier import WorkApplier
from addon_deploy.workbuilder import hook_unit_is_completed

from .base import AddonDeploySyncer
from .builders import AddonUnitBuilder

_LOGGER = logging.getLogger(__name__)


async def run_hook(
    applier: WorkApplier,
    hook_unit: DeployableUnit,
    addon: AddonInstance,
    finalizer: str,
) -> None:
    """Apply the hook unit of a deleting addon and record its progress.

    The finalizer holding the addon is released once the hook completed.
    """
    unit = await applier.apply_work(CONDITION_HOOK_MANIFEST_COMPLETED, hook_unit, addon)
    if hook_unit_is_completed(unit):
        _LOGGER.info("Pre-delete hook %s of addon %s completed", unit.name, addon.resource_id)
        addon.set_condition(
            Condition(
                type=CONDITION_HOOK_MANIFEST_COMPLETED,
                status=ConditionStatus.TRUE,
                reason=REASON_HOOK_COMPLETED,
                message=f"{unit.name} completed.",
            )
        )
        addon.remove_finalizer(finalizer)
        return
    addon.set_condition(
        Condition(
            type=CONDITION_HOOK_MANIFEST_COMPLETED,
            status=ConditionStatus.FALSE,
            reason=REASON_HOOK_NOT_COMPLETED,
            message=f"{unit.name} is not completed.",
        )
    )


class DefaultHookSyncer(AddonDeploySyncer):
    """Holds a deleting addon until its pre-delete hook completed."""

    def __init__(self, builder: AddonUnitBuilder, applier: WorkApplier) -> None:
        self._builder = builder
        self._applier = applier

    async def sync(
        self, cluster: ManagedCluster, addon: AddonInstance
    ) -> AddonInstance:
        hook_unit = await self._builder.build_hook_unit(
            InstallMode.DEFAULT, addon.cluster_name, cluster, addon
        )
        if hook_unit is None:
            addon.remove_finalizer(PRE_DELETE_HOOK_FINALIZER)
            return addon

        if not addon.deleting:
            addon.add_finalizer(PRE_DELETE_HOOK_FINALIZER)
            return addon

        # A deleting object cannot gain finalizers, the hook already ran
        if not addon.has_finalizer(PRE_DELETE_HOOK_FINALIZER):
            return addon

        await run_hook(self._applier, hook_unit, addon, PRE_DELETE_HOOK_FINALIZER)
        return addon
