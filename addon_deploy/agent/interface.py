"""Interface implemented by the suppliers of addon manifests.

An addon provider decides which raw manifests an addon runs on a cluster and
how its health is judged. The controllers only consume its output.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
import logging
from typing import Any

from addon_deploy.exceptions import AddonDeployException
from addon_deploy.manifest import (
    AddonInstance,
    JsonPath,
    ManagedCluster,
    ManifestCondition,
    ResourceIdentifier,
    UpdateStrategy,
)

__all__ = [
    "AgentAddon",
    "AgentAddonOptions",
    "AgentAddonRegistry",
    "HealthProber",
    "HealthProberType",
    "ProbeField",
    "Updater",
    "WorkHealthProber",
]

_LOGGER = logging.getLogger(__name__)


class HealthProberType(StrEnum):
    """How the health of an addon agent is probed."""

    NONE = "None"
    LEASE = "Lease"
    WORK = "Work"


@dataclass
class ProbeField:
    """Values of a deployed resource used to judge the addon health."""

    resource_identifier: ResourceIdentifier
    probe_rules: list[JsonPath] = field(default_factory=list)


HealthCheckFunc = Callable[[ResourceIdentifier, ManifestCondition], None]
"""Raises when the reported state of the resource is unhealthy."""


@dataclass
class WorkHealthProber:
    """Probe the addon health from the status feedback of its deploy units."""

    probe_fields: list[ProbeField] = field(default_factory=list)
    health_check: HealthCheckFunc | None = None


@dataclass
class HealthProber:
    """Health check policy of an addon."""

    type: HealthProberType = HealthProberType.LEASE
    work_prober: WorkHealthProber | None = None


@dataclass
class Updater:
    """Update strategy for one of the resources of the addon."""

    resource_identifier: ResourceIdentifier
    update_strategy: UpdateStrategy


@dataclass
class AgentAddonOptions:
    """Capabilities declared by an addon provider."""

    addon_name: str
    """The name of the addon this provider serves."""

    hosted_mode_enabled: bool = False
    """Whether the addon can run on a hosting cluster."""

    health_prober: HealthProber | None = None
    """How the health of the addon is checked, defaults to a lease."""

    updaters: list[Updater] = field(default_factory=list)
    """Per resource update strategies."""


class AgentAddon(ABC):
    """Supplier of the desired manifests of one addon."""

    @abstractmethod
    async def manifests(
        self, cluster: ManagedCluster, addon: AddonInstance
    ) -> list[dict[str, Any]]:
        """Return the raw manifests the addon should run on the cluster."""

    @abstractmethod
    def options(self) -> AgentAddonOptions:
        """Return the capabilities of this provider."""


class AgentAddonRegistry:
    """Registry of addon providers keyed by addon name."""

    def __init__(self, addons: list[AgentAddon] | None = None) -> None:
        self._addons: dict[str, AgentAddon] = {}
        for addon in addons or ():
            self.register(addon)

    def register(self, addon: AgentAddon) -> None:
        """Register a provider under the addon name it declares."""
        name = addon.options().addon_name
        if name in self._addons:
            raise AddonDeployException(f"Addon {name} is already registered")
        _LOGGER.debug("Registering addon provider %s", name)
        self._addons[name] = addon

    def get(self, name: str) -> AgentAddon | None:
        return self._addons.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._addons

    @property
    def names(self) -> list[str]:
        return list(self._addons)
