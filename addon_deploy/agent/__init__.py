"""Addon providers supply the desired manifests and health policy of an addon."""

from .interface import (
    AgentAddon,
    AgentAddonOptions,
    AgentAddonRegistry,
    HealthProber,
    HealthProberType,
    ProbeField,
    Updater,
    WorkHealthProber,
)
from .static import StaticAgentAddon

__all__ = [
    "AgentAddon",
    "AgentAddonOptions",
    "AgentAddonRegistry",
    "HealthProber",
    "HealthProberType",
    "ProbeField",
    "StaticAgentAddon",
    "Updater",
    "WorkHealthProber",
]
