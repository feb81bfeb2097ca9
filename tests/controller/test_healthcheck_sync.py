"""Tests for judging the health of an addon from its deploy units."""

from unittest.mock import MagicMock

import pytest

from addon_deploy.agent import (
    HealthProber,
    HealthProberType,
    ProbeField,
    WorkHealthProber,
)
from addon_deploy.constants import (
    CONDITION_AVAILABLE,
    REASON_NO_PROBE_RESULT,
    REASON_PROBE_AVAILABLE,
    REASON_PROBE_UNAVAILABLE,
    REASON_WORK_AVAILABLE,
    REASON_WORK_NOT_FOUND,
    WORK_APPLIED,
)
from addon_deploy.controller.healthcheck_sync import HealthCheckSyncer
from addon_deploy.manifest import (
    AddonInstance,
    Condition,
    ConditionStatus,
    DeployableUnit,
    HealthCheckMode,
    ManagedCluster,
    ManifestCondition,
    ObjectMeta,
    ResourceIdentifier,
    UnitStatus,
)
from addon_deploy.store import INDEX_WORK_BY_ADDON, INDEX_WORK_BY_HOSTED_ADDON

from . import FakeAgentAddon

DEPLOYMENT = ResourceIdentifier(
    group="apps", kind="Deployment", name="foo-agent", namespace="addon-agent"
)
CLUSTER = ManagedCluster(metadata=ObjectMeta(name="cluster1"))


def _unit(
    name: str = "addon-foo-deploy-0",
    applied: bool = True,
    results: list[ManifestCondition] | None = None,
) -> DeployableUnit:
    conditions = []
    if applied:
        conditions.append(Condition(type=WORK_APPLIED, status=ConditionStatus.TRUE))
    return DeployableUnit(
        metadata=ObjectMeta(name=name, namespace="cluster1"),
        status=UnitStatus(conditions=conditions, resource_status=results or []),
    )


@pytest.fixture
def units() -> dict[str, list[DeployableUnit]]:
    """Fixture for the units returned per index."""
    return {INDEX_WORK_BY_ADDON: [], INDEX_WORK_BY_HOSTED_ADDON: []}


@pytest.fixture
def indexer(units: dict[str, list[DeployableUnit]]) -> MagicMock:
    """Fixture for an indexer serving the units fixture."""
    indexer = MagicMock()
    indexer.by_index.side_effect = lambda index_name, key: list(units[index_name])
    return indexer


@pytest.fixture
def addon() -> AddonInstance:
    """Fixture for the foo addon on cluster1."""
    return AddonInstance(metadata=ObjectMeta(name="foo", namespace="cluster1"))


def _work_prober(agent_addon: FakeAgentAddon, **kwargs) -> WorkHealthProber:
    work_prober = WorkHealthProber(**kwargs)
    agent_addon.options().health_prober = HealthProber(
        type=HealthProberType.WORK, work_prober=work_prober
    )
    return work_prober


async def _available(
    agent_addon: FakeAgentAddon, indexer: MagicMock, addon: AddonInstance
) -> Condition | None:
    syncer = HealthCheckSyncer(agent_addon, indexer)
    addon = await syncer.sync(CLUSTER, addon)
    return addon.find_condition(CONDITION_AVAILABLE)


async def test_lease_by_default(indexer: MagicMock, addon: AddonInstance) -> None:
    """Test an addon without a prober is checked with a lease."""
    syncer = HealthCheckSyncer(FakeAgentAddon(), indexer)
    addon = await syncer.sync(CLUSTER, addon)
    assert addon.status.health_check.mode == HealthCheckMode.LEASE
    assert addon.find_condition(CONDITION_AVAILABLE) is None
    indexer.by_index.assert_not_called()


async def test_no_health_checker(indexer: MagicMock, addon: AddonInstance) -> None:
    """Test an addon without health checks is customized and never probed."""
    agent_addon = FakeAgentAddon()
    agent_addon.options().health_prober = HealthProber(type=HealthProberType.NONE)
    syncer = HealthCheckSyncer(agent_addon, indexer)
    addon = await syncer.sync(CLUSTER, addon)
    assert addon.status.health_check.mode == HealthCheckMode.CUSTOMIZED
    assert addon.find_condition(CONDITION_AVAILABLE) is None


async def test_work_without_feedback_fields(
    indexer: MagicMock, addon: AddonInstance
) -> None:
    """Test a work prober without probe fields reports the addon available."""
    agent_addon = FakeAgentAddon()
    agent_addon.options().health_prober = HealthProber(type=HealthProberType.WORK)
    cond = await _available(agent_addon, indexer, addon)
    assert addon.status.health_check.mode == HealthCheckMode.CUSTOMIZED
    assert cond is not None
    assert cond.status == ConditionStatus.TRUE
    assert cond.reason == REASON_WORK_AVAILABLE


async def test_work_not_found(indexer: MagicMock, addon: AddonInstance) -> None:
    """Test the health is unknown before any unit was deployed."""
    agent_addon = FakeAgentAddon()
    _work_prober(agent_addon, probe_fields=[ProbeField(DEPLOYMENT)])
    cond = await _available(agent_addon, indexer, addon)
    assert cond is not None
    assert cond.status == ConditionStatus.UNKNOWN
    assert cond.reason == REASON_WORK_NOT_FOUND


async def test_unit_not_applied(
    units: dict[str, list[DeployableUnit]],
    indexer: MagicMock,
    addon: AddonInstance,
) -> None:
    """Test the Available condition is left alone until every unit is applied."""
    agent_addon = FakeAgentAddon()
    _work_prober(agent_addon, probe_fields=[ProbeField(DEPLOYMENT)])
    units[INDEX_WORK_BY_ADDON].append(_unit(applied=False))
    assert await _available(agent_addon, indexer, addon) is None


async def test_no_feedback_result(
    units: dict[str, list[DeployableUnit]],
    indexer: MagicMock,
    addon: AddonInstance,
) -> None:
    """Test a probed resource missing from the feedback is unknown."""
    agent_addon = FakeAgentAddon()
    _work_prober(agent_addon, probe_fields=[ProbeField(DEPLOYMENT)])
    units[INDEX_WORK_BY_ADDON].append(_unit())
    cond = await _available(agent_addon, indexer, addon)
    assert cond is not None
    assert cond.status == ConditionStatus.UNKNOWN
    assert cond.reason == REASON_NO_PROBE_RESULT


async def test_health_check_unavailable(
    units: dict[str, list[DeployableUnit]],
    indexer: MagicMock,
    addon: AddonInstance,
) -> None:
    """Test a failing health check marks the addon unavailable."""

    def health_check(
        identifier: ResourceIdentifier, result: ManifestCondition
    ) -> None:
        if result.status_feedback.get("readyReplicas") != "1":
            raise ValueError("no ready replicas")

    agent_addon = FakeAgentAddon()
    _work_prober(
        agent_addon,
        probe_fields=[ProbeField(DEPLOYMENT)],
        health_check=health_check,
    )
    units[INDEX_WORK_BY_ADDON].append(
        _unit(results=[ManifestCondition(resource_meta=DEPLOYMENT)])
    )
    cond = await _available(agent_addon, indexer, addon)
    assert cond is not None
    assert cond.status == ConditionStatus.FALSE
    assert cond.reason == REASON_PROBE_UNAVAILABLE
    assert cond.message == "Probe addon unavailable with err no ready replicas"


async def test_health_check_available(
    units: dict[str, list[DeployableUnit]],
    indexer: MagicMock,
    addon: AddonInstance,
) -> None:
    """Test results are gathered from both the managed and the hosting side."""
    checked: list[ResourceIdentifier] = []

    def health_check(
        identifier: ResourceIdentifier, result: ManifestCondition
    ) -> None:
        checked.append(identifier)

    hosted = ResourceIdentifier(
        kind="ConfigMap", name="foo-hosting", namespace="default"
    )
    agent_addon = FakeAgentAddon()
    _work_prober(
        agent_addon,
        probe_fields=[ProbeField(DEPLOYMENT), ProbeField(hosted)],
        health_check=health_check,
    )
    units[INDEX_WORK_BY_ADDON].append(
        _unit(results=[ManifestCondition(resource_meta=DEPLOYMENT)])
    )
    units[INDEX_WORK_BY_HOSTED_ADDON].append(
        _unit(
            name="addon-foo-deploy-hosting-cluster1-0",
            results=[ManifestCondition(resource_meta=hosted)],
        )
    )
    cond = await _available(agent_addon, indexer, addon)
    assert cond is not None
    assert cond.status == ConditionStatus.TRUE
    assert cond.reason == REASON_PROBE_AVAILABLE
    assert cond.message == "foo add-on is available."
    assert checked == [DEPLOYMENT, hosted]


async def test_index_failure(indexer: MagicMock, addon: AddonInstance) -> None:
    """Test a failing index lookup is raised."""
    agent_addon = FakeAgentAddon()
    _work_prober(agent_addon, probe_fields=[ProbeField(DEPLOYMENT)])
    indexer.by_index.side_effect = KeyError("work-by-addon")
    syncer = HealthCheckSyncer(agent_addon, indexer)
    with pytest.raises(KeyError, match="work-by-addon"):
        await syncer.sync(CLUSTER, addon)
