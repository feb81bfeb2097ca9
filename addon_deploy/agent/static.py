"""Addon provider serving a fixed set of manifests."""

import copy
import logging
from pathlib import Path
from typing import Any

from addon_deploy.manifest import AddonInstance, ManagedCluster, read_manifests

from .interface import AgentAddon, AgentAddonOptions

__all__ = [
    "StaticAgentAddon",
]

_LOGGER = logging.getLogger(__name__)


class StaticAgentAddon(AgentAddon):
    """An addon provider returning the same manifests for every cluster."""

    def __init__(
        self, options: AgentAddonOptions, objects: list[dict[str, Any]]
    ) -> None:
        self._options = options
        self._objects = objects

    @classmethod
    async def from_file(
        cls, options: AgentAddonOptions, path: Path
    ) -> "StaticAgentAddon":
        """Create a provider from the manifests of a multi-document YAML file."""
        objects = await read_manifests(path)
        _LOGGER.debug("Loaded %d manifests for addon %s", len(objects), options.addon_name)
        return cls(options, objects)

    async def manifests(
        self, cluster: ManagedCluster, addon: AddonInstance
    ) -> list[dict[str, Any]]:
        return copy.deepcopy(self._objects)

    def options(self) -> AgentAddonOptions:
        return self._options
