"""Tests for applying deployable units."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from addon_deploy.constants import (
    ADDON_LABEL,
    CONDITION_MANIFEST_APPLIED,
    REASON_MANIFESTS_APPLIED,
    REASON_MANIFESTS_APPLY_FAILED,
    REASON_WORK_APPLY_FAILED,
    WORK_APPLIED,
)
from addon_deploy.exceptions import ConflictError
from addon_deploy.manifest import (
    AddonInstance,
    Condition,
    ConditionStatus,
    DeployableUnit,
    ObjectMeta,
    UnitSpec,
)
from addon_deploy.store import InMemoryStore
from addon_deploy.workapplier import WorkApplier


@pytest.fixture
def store() -> InMemoryStore:
    """Fixture for an empty store."""
    return InMemoryStore()


@pytest.fixture
def applier(store: InMemoryStore) -> WorkApplier:
    """Fixture for an applier writing to the store."""
    return WorkApplier(store)


@pytest.fixture
def addon() -> AddonInstance:
    """Fixture for the addon owning the units."""
    return AddonInstance(metadata=ObjectMeta(name="foo", namespace="cluster1"))


def _unit(data: str = "a") -> DeployableUnit:
    return DeployableUnit(
        metadata=ObjectMeta(
            name="addon-foo-deploy-0",
            namespace="cluster1",
            labels={ADDON_LABEL: "foo"},
        ),
        spec=UnitSpec(
            manifests=[
                {"apiVersion": "v1", "kind": "ConfigMap", "metadata": {"name": data}}
            ]
        ),
    )


async def _report(store: InMemoryStore, status: ConditionStatus) -> None:
    """Report the unit as applied the way the agent running it would."""
    unit = store.get_object(_unit().resource_id, DeployableUnit)
    unit.status.conditions = [Condition(type=WORK_APPLIED, status=status)]
    await store.update_status(unit)


async def test_apply_creates(store: InMemoryStore, applier: WorkApplier) -> None:
    """Test a unit that does not exist is created."""
    created = await applier.apply(_unit())
    assert created.metadata.uid
    assert store.writes == 1
    assert store.get_object(created.resource_id, DeployableUnit) == created


async def test_apply_unchanged(store: InMemoryStore, applier: WorkApplier) -> None:
    """Test applying an up to date unit performs no write."""
    created = await applier.apply(_unit())
    current = await applier.apply(_unit())
    assert current == created
    assert store.writes == 1


async def test_apply_updates(store: InMemoryStore, applier: WorkApplier) -> None:
    """Test a changed unit is updated keeping its status."""
    created = await applier.apply(_unit())
    await _report(store, ConditionStatus.TRUE)

    updated = await applier.apply(_unit("b"))
    assert updated.metadata.uid == created.metadata.uid
    assert updated.metadata.generation == 2
    assert updated.spec.manifests[0]["metadata"]["name"] == "b"
    assert [cond.type for cond in updated.status.conditions] == [WORK_APPLIED]


async def test_delete(store: InMemoryStore, applier: WorkApplier) -> None:
    """Test deleting units, including ones that are already gone."""
    created = await applier.apply(_unit())
    await applier.delete("cluster1", created.name)
    assert store.get_object(created.resource_id, DeployableUnit) is None
    await applier.delete("cluster1", created.name)


async def test_apply_work_not_reported(
    applier: WorkApplier, addon: AddonInstance
) -> None:
    """Test the addon condition is left alone until the agent reports."""
    addon.set_condition(
        Condition(
            type=CONDITION_MANIFEST_APPLIED,
            status=ConditionStatus.TRUE,
            reason=REASON_MANIFESTS_APPLIED,
        )
    )
    previous = addon.deep_copy()
    await applier.apply_work(CONDITION_MANIFEST_APPLIED, _unit(), addon)
    assert addon == previous


@pytest.mark.parametrize(
    ("reported", "status", "reason"),
    [
        (ConditionStatus.TRUE, ConditionStatus.TRUE, REASON_MANIFESTS_APPLIED),
        (ConditionStatus.FALSE, ConditionStatus.FALSE, REASON_MANIFESTS_APPLY_FAILED),
    ],
)
async def test_apply_work_reported(
    store: InMemoryStore,
    applier: WorkApplier,
    addon: AddonInstance,
    reported: ConditionStatus,
    status: ConditionStatus,
    reason: str,
) -> None:
    """Test the applied condition of the unit is reflected on the addon."""
    await applier.apply(_unit())
    await _report(store, reported)

    await applier.apply_work(CONDITION_MANIFEST_APPLIED, _unit(), addon)
    cond = addon.find_condition(CONDITION_MANIFEST_APPLIED)
    assert cond is not None
    assert cond.status == status
    assert cond.reason == reason


async def test_apply_work_unknown(
    store: InMemoryStore, applier: WorkApplier, addon: AddonInstance
) -> None:
    """Test an unknown applied condition is not reflected."""
    await applier.apply(_unit())
    await _report(store, ConditionStatus.UNKNOWN)
    await applier.apply_work(CONDITION_MANIFEST_APPLIED, _unit(), addon)
    assert addon.find_condition(CONDITION_MANIFEST_APPLIED) is None


async def test_apply_work_failure(addon: AddonInstance) -> None:
    """Test a failed write is recorded on the addon and raised."""
    store = MagicMock()
    store.get_object.return_value = None
    store.create = AsyncMock(side_effect=ConflictError("write rejected"))
    applier = WorkApplier(store)

    with pytest.raises(ConflictError, match="write rejected"):
        await applier.apply_work(CONDITION_MANIFEST_APPLIED, _unit(), addon)
    cond = addon.find_condition(CONDITION_MANIFEST_APPLIED)
    assert cond is not None
    assert cond.status == ConditionStatus.FALSE
    assert cond.reason == REASON_WORK_APPLY_FAILED
    assert cond.message == "failed to apply manifestWork: write rejected"
