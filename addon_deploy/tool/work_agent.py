"""A local stand-in for the agent that runs deployable units on a cluster.

The agent reports every deployable unit as applied and available, with the
status feedback of its hook workloads marked as finished, so a reconcile run
can be followed through to the addon conditions without a real cluster.
"""

import asyncio
import copy
import logging
from typing import Any

from addon_deploy.constants import (
    FEEDBACK_JOB_COMPLETE,
    FEEDBACK_POD_PHASE,
    WORK_APPLIED,
    WORK_AVAILABLE,
)
from addon_deploy.exceptions import ConflictError, ObjectNotFoundError
from addon_deploy.manifest import (
    UNIT_KIND,
    Condition,
    ConditionStatus,
    DeployableUnit,
    KubeObject,
    ManifestCondition,
    NamedResource,
    ResourceIdentifier,
    UnitStatus,
    find_condition,
    set_condition,
)
from addon_deploy.store import Store, StoreEvent

__all__ = [
    "LocalWorkAgent",
    "applied_status",
]

_LOGGER = logging.getLogger(__name__)

_FEEDBACK_VALUES = {
    FEEDBACK_JOB_COMPLETE: "True",
    FEEDBACK_POD_PHASE: "Succeeded",
}


def _lookup(obj: dict[str, Any], path: str) -> Any:
    """Return the value of a simple `.a.b.c` path within a raw object."""
    value: Any = obj
    for part in path.strip(".").split("."):
        if not isinstance(value, dict) or part not in value:
            return None
        value = value[part]
    return value


def applied_status(unit: DeployableUnit) -> UnitStatus:
    """Return the status an agent reports after applying the unit."""
    status = copy.deepcopy(unit.status)
    for cond_type, reason in (
        (WORK_APPLIED, "AppliedManifestWorkComplete"),
        (WORK_AVAILABLE, "ResourcesAvailable"),
    ):
        set_condition(
            status.conditions,
            Condition(
                type=cond_type,
                status=ConditionStatus.TRUE,
                reason=reason,
                observed_generation=unit.metadata.generation,
            ),
        )
    applied = find_condition(status.conditions, WORK_APPLIED)
    applied_at = applied.last_transition_time if applied else None

    resource_status = []
    for manifest in unit.spec.manifests:
        identifier = ResourceIdentifier.from_object(manifest)
        feedback: dict[str, str] = {}
        for config in unit.spec.manifest_configs:
            if config.resource_identifier != identifier:
                continue
            for rule in config.feedback_rules:
                if (value := _FEEDBACK_VALUES.get(rule.name)) is None:
                    value = _lookup(manifest, rule.path)
                if value is not None:
                    feedback[rule.name] = str(value)
        resource_status.append(
            ManifestCondition(
                resource_meta=identifier,
                conditions=[
                    Condition(
                        type=WORK_APPLIED,
                        status=ConditionStatus.TRUE,
                        reason="AppliedManifestComplete",
                        last_transition_time=applied_at,
                    )
                ],
                status_feedback=feedback,
            )
        )
    status.resource_status = resource_status
    return status


class LocalWorkAgent:
    """Marks the deployable units in the store as applied."""

    def __init__(self, store: Store) -> None:
        self._store = store
        self._pending: asyncio.Queue[NamedResource] = asyncio.Queue()
        self._removers = [
            store.add_listener(StoreEvent.OBJECT_ADDED, self._on_unit, flush=True),
            store.add_listener(StoreEvent.OBJECT_UPDATED, self._on_unit),
        ]

    def _on_unit(self, resource_id: NamedResource, obj: KubeObject) -> None:
        if resource_id.kind == UNIT_KIND:
            self._pending.put_nowait(resource_id)

    def idle(self) -> bool:
        return self._pending.empty()

    async def wait_idle(self) -> None:
        """Wait until every reported unit change has been handled."""
        await self._pending.join()

    async def run(self) -> None:
        """Report the status of units as they change, until cancelled."""
        _LOGGER.info("Starting local work agent")
        try:
            while True:
                resource_id = await self._pending.get()
                try:
                    await self.report(resource_id)
                finally:
                    self._pending.task_done()
        finally:
            for remove in self._removers:
                remove()

    async def report(self, resource_id: NamedResource) -> None:
        """Report the unit as applied if its status is not up to date."""
        unit = self._store.get_object(resource_id, DeployableUnit)
        if unit is None or unit.deleting:
            return
        status = applied_status(unit)
        if status == unit.status:
            return
        unit.status = status
        try:
            await self._store.update_status(unit)
        except (ConflictError, ObjectNotFoundError) as err:
            # A newer version of the unit is already queued
            _LOGGER.debug("Skipping status of %s: %s", resource_id, err)
            return
        _LOGGER.info("Reported unit %s as applied", resource_id.namespaced_name)
