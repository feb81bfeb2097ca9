"""Idempotent create, update and delete of deployable units."""

import logging

from .constants import (
    REASON_MANIFESTS_APPLIED,
    REASON_MANIFESTS_APPLY_FAILED,
    REASON_WORK_APPLY_FAILED,
    WORK_APPLIED,
)
from .exceptions import ObjectNotFoundError
from .manifest import (
    AddonInstance,
    Condition,
    ConditionStatus,
    DeployableUnit,
    NamedResource,
    UNIT_KIND,
    find_condition,
)
from .store import Store

__all__ = [
    "WorkApplier",
]

_LOGGER = logging.getLogger(__name__)


def _unit_equal(desired: DeployableUnit, current: DeployableUnit) -> bool:
    return (
        desired.spec == current.spec
        and desired.metadata.labels == current.metadata.labels
        and desired.metadata.annotations == current.metadata.annotations
    )


class WorkApplier:
    """Applies deployable units against the store.

    The cached view of the store is consulted before every write so that
    applying a unit that is already up to date performs no write at all.
    """

    def __init__(self, store: Store) -> None:
        self._store = store

    async def apply(self, unit: DeployableUnit) -> DeployableUnit:
        """Create or update the unit and return the stored version."""
        current = self._store.get_object(unit.resource_id, DeployableUnit)
        if current is None:
            _LOGGER.info("Creating unit %s", unit.resource_id.namespaced_name)
            return await self._store.create(unit)
        if _unit_equal(unit, current):
            _LOGGER.debug("Unit %s is up to date", unit.resource_id.namespaced_name)
            return current
        updated = current.deep_copy()
        updated.spec = unit.spec
        updated.metadata.labels = dict(unit.metadata.labels)
        updated.metadata.annotations = dict(unit.metadata.annotations)
        _LOGGER.info("Updating unit %s", unit.resource_id.namespaced_name)
        return await self._store.update(updated)

    async def delete(self, namespace: str, name: str) -> None:
        """Delete the unit, treating a missing unit as deleted."""
        _LOGGER.info("Deleting unit %s/%s", namespace, name)
        try:
            await self._store.delete(NamedResource(UNIT_KIND, namespace, name))
        except ObjectNotFoundError:
            _LOGGER.debug("Unit %s/%s was already deleted", namespace, name)

    async def apply_work(
        self, applied_type: str, unit: DeployableUnit, addon: AddonInstance
    ) -> DeployableUnit:
        """Apply the unit and reflect its outcome in an addon condition.

        The condition is only set once the agent running the unit has
        reported whether it was applied. A failed write sets the condition
        to False and the error is raised.
        """
        try:
            unit = await self.apply(unit)
        except Exception as err:
            addon.set_condition(
                Condition(
                    type=applied_type,
                    status=ConditionStatus.FALSE,
                    reason=REASON_WORK_APPLY_FAILED,
                    message=f"failed to apply manifestWork: {err}",
                )
            )
            raise

        applied = find_condition(unit.status.conditions, WORK_APPLIED)
        if applied is None or applied.status == ConditionStatus.UNKNOWN:
            return unit
        if applied.status == ConditionStatus.TRUE:
            addon.set_condition(
                Condition(
                    type=applied_type,
                    status=ConditionStatus.TRUE,
                    reason=REASON_MANIFESTS_APPLIED,
                    message="manifests of addon are applied successfully",
                )
            )
        else:
            addon.set_condition(
                Condition(
                    type=applied_type,
                    status=ConditionStatus.FALSE,
                    reason=REASON_MANIFESTS_APPLY_FAILED,
                    message="failed to apply the manifests of addon",
                )
            )
        return unit
