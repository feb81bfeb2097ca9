"""Fixtures for the addon deploy controller tests."""

import pytest

from addon_deploy.agent import AgentAddonRegistry
from addon_deploy.config import AddonDeployControllerConfig
from addon_deploy.constants import CONDITION_REGISTRATION_APPLIED
from addon_deploy.controller import AddonDeployController
from addon_deploy.manifest import (
    AddonInstance,
    AddonInstanceStatus,
    Condition,
    ConditionStatus,
    ManagedCluster,
    ObjectMeta,
)
from addon_deploy.store import InMemoryStore

from . import FakeAgentAddon, configmap


@pytest.fixture
def store() -> InMemoryStore:
    """Fixture for an empty store."""
    return InMemoryStore()


@pytest.fixture
def agent_addon() -> FakeAgentAddon:
    """Fixture for the provider of the foo addon with a single manifest."""
    agent_addon = FakeAgentAddon()
    agent_addon.objects = [configmap("foo-config")]
    return agent_addon


@pytest.fixture
def registry(agent_addon: FakeAgentAddon) -> AgentAddonRegistry:
    """Fixture for a registry serving the foo addon."""
    return AgentAddonRegistry([agent_addon])


@pytest.fixture
def config() -> AddonDeployControllerConfig:
    """Fixture for the controller configuration."""
    return AddonDeployControllerConfig(workers=2, sync_timeout=5.0)


@pytest.fixture
def controller(
    store: InMemoryStore,
    registry: AgentAddonRegistry,
    config: AddonDeployControllerConfig,
) -> AddonDeployController:
    """Fixture for a controller that is not started.

    Tests drive it by calling sync directly.
    """
    return AddonDeployController(store, registry, config)


@pytest.fixture
def cluster(store: InMemoryStore) -> ManagedCluster:
    """Fixture seeding the managed cluster cluster1."""
    store.add_object(ManagedCluster(metadata=ObjectMeta(name="cluster1")))
    return store.get_object(
        ManagedCluster(metadata=ObjectMeta(name="cluster1")).resource_id,
        ManagedCluster,
    )


@pytest.fixture
def addon(store: InMemoryStore) -> AddonInstance:
    """Fixture seeding the registered foo addon on cluster1."""
    addon = AddonInstance(
        metadata=ObjectMeta(name="foo", namespace="cluster1"),
        status=AddonInstanceStatus(
            conditions=[
                Condition(
                    type=CONDITION_REGISTRATION_APPLIED,
                    status=ConditionStatus.TRUE,
                    reason="Registered",
                    last_transition_time="2024-01-01T00:00:00Z",
                )
            ]
        ),
    )
    store.add_object(addon)
    return store.get_object(addon.resource_id, AddonInstance)
