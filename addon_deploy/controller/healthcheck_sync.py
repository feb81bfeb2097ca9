"""Judge the health of an addon from the units it already deployed."""

import logging

from addon_deploy.agent import AgentAddon, HealthProberType, WorkHealthProber
from addon_deploy.constants import (
    CONDITION_AVAILABLE,
    REASON_NO_PROBE_RESULT,
    REASON_PROBE_AVAILABLE,
    REASON_PROBE_UNAVAILABLE,
    REASON_WORK_AVAILABLE,
    REASON_WORK_NOT_FOUND,
    WORK_APPLIED,
)
from addon_deploy.manifest import (
    AddonInstance,
    Condition,
    ConditionStatus,
    HealthCheckMode,
    ManagedCluster,
    ManifestCondition,
    ResourceIdentifier,
    is_condition_true,
)
from addon_deploy.store import INDEX_WORK_BY_ADDON, INDEX_WORK_BY_HOSTED_ADDON, Indexer

from .base import AddonDeploySyncer, units_by_addon

_LOGGER = logging.getLogger(__name__)


def _find_result(
    identifier: ResourceIdentifier, results: list[ManifestCondition]
) -> ManifestCondition | None:
    for result in results:
        if result.resource_meta == identifier:
            return result
    return None


class HealthCheckSyncer(AddonDeploySyncer):
    """Sets the health check mode and the Available condition of an addon.

    Nothing is written to the store, the outcome is only recorded on the
    addon copy.
    """

    def __init__(self, agent_addon: AgentAddon, indexer: Indexer) -> None:
        self._agent_addon = agent_addon
        self._indexer = indexer

    async def sync(
        self, cluster: ManagedCluster, addon: AddonInstance
    ) -> AddonInstance:
        prober = self._agent_addon.options().health_prober
        prober_type = prober.type if prober is not None else HealthProberType.LEASE
        match prober_type:
            case HealthProberType.WORK | HealthProberType.NONE:
                mode = HealthCheckMode.CUSTOMIZED
            case _:
                mode = HealthCheckMode.LEASE
        if addon.status.health_check.mode != mode:
            addon.status.health_check.mode = mode

        if prober is None or prober.type != HealthProberType.WORK:
            return addon
        self._probe(addon, prober.work_prober)
        return addon

    def _available(
        self, addon: AddonInstance, status: ConditionStatus, reason: str, message: str
    ) -> None:
        addon.set_condition(
            Condition(
                type=CONDITION_AVAILABLE,
                status=status,
                reason=reason,
                message=message,
            )
        )

    def _probe(
        self, addon: AddonInstance, work_prober: WorkHealthProber | None
    ) -> None:
        if work_prober is None or not work_prober.probe_fields:
            self._available(
                addon,
                ConditionStatus.TRUE,
                REASON_WORK_AVAILABLE,
                "Addon manifestWork is available",
            )
            return

        units = units_by_addon(self._indexer, INDEX_WORK_BY_ADDON, addon)
        units += units_by_addon(self._indexer, INDEX_WORK_BY_HOSTED_ADDON, addon)
        if not units:
            self._available(
                addon,
                ConditionStatus.UNKNOWN,
                REASON_WORK_NOT_FOUND,
                "Work for addon is not found",
            )
            return

        results: list[ManifestCondition] = []
        for unit in units:
            if not is_condition_true(unit.status.conditions, WORK_APPLIED):
                _LOGGER.debug("Unit %s is not applied yet", unit.resource_id)
                return
            results.extend(unit.status.resource_status)

        for probe_field in work_prober.probe_fields:
            result = _find_result(probe_field.resource_identifier, results)
            if result is None:
                self._available(
                    addon,
                    ConditionStatus.UNKNOWN,
                    REASON_NO_PROBE_RESULT,
                    "Probe results are not returned",
                )
                return
            if work_prober.health_check is None:
                continue
            try:
                work_prober.health_check(probe_field.resource_identifier, result)
            except Exception as err:
                self._available(
                    addon,
                    ConditionStatus.FALSE,
                    REASON_PROBE_UNAVAILABLE,
                    f"Probe addon unavailable with err {err}",
                )
                return

        self._available(
            addon,
            ConditionStatus.TRUE,
            REASON_PROBE_AVAILABLE,
            f"{addon.name} add-on is available.",
        )
