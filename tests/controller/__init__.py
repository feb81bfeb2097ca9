"""Test helpers for the addon deploy controller."""

import copy
from typing import Any

from addon_deploy.agent import AgentAddon, AgentAddonOptions
from addon_deploy.manifest import AddonInstance, ManagedCluster


class FakeAgentAddon(AgentAddon):
    """Addon provider whose manifests and failures are set by the test."""

    def __init__(self, addon_name: str = "foo") -> None:
        self.objects: list[dict[str, Any]] = []
        self.error: Exception | None = None
        self.calls = 0
        self._options = AgentAddonOptions(addon_name=addon_name)

    async def manifests(
        self, cluster: ManagedCluster, addon: AddonInstance
    ) -> list[dict[str, Any]]:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return copy.deepcopy(self.objects)

    def options(self) -> AgentAddonOptions:
        return self._options


def configmap(name: str) -> dict[str, Any]:
    """Return a small raw ConfigMap manifest."""
    return {
        "apiVersion": "v1",
        "kind": "ConfigMap",
        "metadata": {"name": name, "namespace": "default"},
        "data": {"key": "value"},
    }
