"""Tests for writing the status of an addon after a sync."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from addon_deploy.constants import CONDITION_MANIFEST_APPLIED
from addon_deploy.controller import StatusReconciler
from addon_deploy.exceptions import ConflictError
from addon_deploy.manifest import (
    AddonInstance,
    Condition,
    ConditionStatus,
    HealthCheckMode,
    ObjectMeta,
)
from addon_deploy.store import InMemoryStore

APPLIED = Condition(
    type=CONDITION_MANIFEST_APPLIED,
    status=ConditionStatus.TRUE,
    reason="AddonManifestApplied",
    last_transition_time="2024-01-01T00:00:00Z",
)


@pytest.fixture
def store() -> InMemoryStore:
    """Fixture for a store holding one addon."""
    store = InMemoryStore()
    store.add_object(
        AddonInstance(metadata=ObjectMeta(name="foo", namespace="cluster1"))
    )
    return store


@pytest.fixture
def addon(store: InMemoryStore) -> AddonInstance:
    """Fixture for the stored addon."""
    return store.get_object(
        AddonInstance(metadata=ObjectMeta(name="foo", namespace="cluster1")).resource_id,
        AddonInstance,
    )


async def test_no_change(store: InMemoryStore, addon: AddonInstance) -> None:
    """Test nothing is written when nothing changed."""
    await StatusReconciler(store).update(addon.deep_copy(), addon)
    assert store.writes == 0


async def test_status_change(store: InMemoryStore, addon: AddonInstance) -> None:
    """Test a status change is written as a patch."""
    new = addon.deep_copy()
    new.set_condition(APPLIED)
    new.status.health_check.mode = HealthCheckMode.LEASE

    await StatusReconciler(store).update(new, addon)
    assert store.writes == 1
    stored = store.get_object(addon.resource_id, AddonInstance)
    assert stored.conditions == [APPLIED]
    assert stored.status.health_check.mode == HealthCheckMode.LEASE


async def test_finalizer_change(store: InMemoryStore, addon: AddonInstance) -> None:
    """Test a finalizer change is written without the status."""
    new = addon.deep_copy()
    new.add_finalizer("example.com/cleanup")
    new.set_condition(APPLIED)

    await StatusReconciler(store).update(new, addon)
    assert store.writes == 1
    stored = store.get_object(addon.resource_id, AddonInstance)
    assert stored.metadata.finalizers == ["example.com/cleanup"]
    assert stored.conditions == []


async def test_stale_version(store: InMemoryStore, addon: AddonInstance) -> None:
    """Test a patch from a stale version is rejected."""
    concurrent = addon.deep_copy()
    concurrent.set_condition(APPLIED)
    await store.update_status(concurrent)

    new = addon.deep_copy()
    new.status.health_check.mode = HealthCheckMode.CUSTOMIZED
    with pytest.raises(ConflictError):
        await StatusReconciler(store).update(new, addon)


async def test_patch_content(addon: AddonInstance) -> None:
    """Test the patch holds the identity and the changed status only."""
    store = MagicMock()
    store.patch_status = AsyncMock()
    new = addon.deep_copy()
    new.status.health_check.mode = HealthCheckMode.CUSTOMIZED

    await StatusReconciler(store).update(new, addon)
    store.patch_status.assert_awaited_once_with(
        addon.resource_id,
        {
            "metadata": {
                "uid": addon.metadata.uid,
                "resourceVersion": addon.metadata.resource_version,
            },
            "status": {"healthCheck": {"mode": "Customized"}},
        },
    )
    store.update.assert_not_called()
