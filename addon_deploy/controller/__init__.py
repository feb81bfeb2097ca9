"""Controller deploying the agents of addons onto managed clusters."""

from .base import AddonDeploySyncer
from .controller import AddonDeployController
from .default_hook_sync import DefaultHookSyncer
from .default_sync import DefaultSyncer
from .healthcheck_sync import HealthCheckSyncer
from .hosted_hook_sync import HostedHookSyncer
from .hosted_sync import HostedSyncer
from .status import StatusReconciler

__all__ = [
    "AddonDeployController",
    "AddonDeploySyncer",
    "DefaultHookSyncer",
    "DefaultSyncer",
    "HealthCheckSyncer",
    "HostedHookSyncer",
    "HostedSyncer",
    "StatusReconciler",
]
