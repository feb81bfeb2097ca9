"""Well-known names shared between the addon objects and deployable units."""

import re

from .exceptions import InputException

# Labels identifying the addon that owns a deployable unit. The namespace
# label is only set when the unit lives outside the addon's namespace.
ADDON_LABEL = "addon.open-cluster-management.io/addon-name"
ADDON_NAMESPACE_LABEL = "addon.open-cluster-management.io/addon-namespace"

# The hosting cluster of an addon running in hosted mode.
HOSTING_CLUSTER_ANNOTATION = "addon.open-cluster-management.io/hosting-cluster-name"

# Where a manifest of a hosted addon is deployed.
HOSTED_MANIFEST_LOCATION_ANNOTATION = (
    "addon.open-cluster-management.io/hosted-manifest-location"
)
HOSTED_MANIFEST_LOCATION_MANAGED = "managed"
HOSTED_MANIFEST_LOCATION_HOSTING = "hosting"
HOSTED_MANIFEST_LOCATION_NONE = "none"

# Label or annotation marking a manifest as a pre-delete hook.
PRE_DELETE_HOOK_LABEL = "open-cluster-management.io/addon-pre-delete"

PRE_DELETE_HOOK_FINALIZER = "cluster.open-cluster-management.io/addon-pre-delete"
HOSTING_PRE_DELETE_HOOK_FINALIZER = (
    "cluster.open-cluster-management.io/hosting-addon-pre-delete"
)
HOSTING_MANIFEST_FINALIZER = (
    "cluster.open-cluster-management.io/hosting-manifests-cleanup"
)

# Addon condition types
CONDITION_REGISTRATION_APPLIED = "RegistrationApplied"
CONDITION_MANIFEST_APPLIED = "ManifestApplied"
CONDITION_HOSTING_MANIFEST_APPLIED = "HostingManifestApplied"
CONDITION_HOSTING_CLUSTER_VALIDITY = "HostingClusterValidity"
CONDITION_HOOK_MANIFEST_COMPLETED = "HookManifestCompleted"
CONDITION_AVAILABLE = "Available"

# Addon condition reasons
REASON_WORK_APPLY_FAILED = "ManifestWorkApplyFailed"
REASON_MANIFESTS_APPLIED = "AddonManifestApplied"
REASON_MANIFESTS_APPLY_FAILED = "AddonManifestAppliedFailed"
REASON_HOSTING_CLUSTER_VALID = "HostingClusterValid"
REASON_HOSTING_CLUSTER_INVALID = "HostingClusterInvalid"
REASON_HOOK_COMPLETED = "HookManifestIsCompleted"
REASON_HOOK_NOT_COMPLETED = "HookManifestIsNotCompleted"
REASON_WORK_NOT_FOUND = "WorkNotFound"
REASON_NO_PROBE_RESULT = "NoProbeResult"
REASON_PROBE_UNAVAILABLE = "ProbeUnavailable"
REASON_PROBE_AVAILABLE = "ProbeAvailable"
REASON_WORK_AVAILABLE = "ManifestWorkAvailable"

# Deployable unit condition types, set by the agent running the workload
WORK_APPLIED = "Applied"
WORK_AVAILABLE = "Available"

# Status feedback names reported for hook workloads
FEEDBACK_JOB_COMPLETE = "JobComplete"
FEEDBACK_POD_PHASE = "PodPhase"

DEFAULT_INSTALL_NAMESPACE = "open-cluster-management-agent-addon"

_MAX_NAME_LENGTH = 253
_DNS_LABEL = r"[a-z0-9]([-a-z0-9]*[a-z0-9])?"
_DNS_SUBDOMAIN = re.compile(rf"^{_DNS_LABEL}(\.{_DNS_LABEL})*$")


def validate_unit_name(name: str) -> str:
    """Return the unit name, raising if it is not a valid object name.

    Names are never rewritten so that two addons can not end up sharing a unit.
    """
    if len(name) > _MAX_NAME_LENGTH or not _DNS_SUBDOMAIN.match(name):
        raise InputException(f"Invalid unit name {name}, must be a DNS subdomain")
    return name


def deploy_unit_name_prefix(addon_name: str) -> str:
    """Prefix shared by every deploy unit of an addon."""
    return f"addon-{addon_name}-deploy"


def deploy_hosting_unit_name_prefix(addon_namespace: str, addon_name: str) -> str:
    """Prefix of the deploy units placed on the hosting cluster."""
    return f"addon-{addon_name}-deploy-hosting-{addon_namespace}"


def deploy_unit_name(addon_name: str, index: int) -> str:
    """Name of the deploy unit holding bin `index`."""
    return f"{deploy_unit_name_prefix(addon_name)}-{index}"


def deploy_hosting_unit_name(addon_namespace: str, addon_name: str, index: int) -> str:
    """Name of the hosted deploy unit holding bin `index`."""
    return f"{deploy_hosting_unit_name_prefix(addon_namespace, addon_name)}-{index}"


def pre_delete_hook_unit_name(addon_name: str) -> str:
    """Name of the pre-delete hook unit of an addon."""
    return f"addon-{addon_name}-pre-delete"


def pre_delete_hook_hosting_unit_name(addon_namespace: str, addon_name: str) -> str:
    """Name of the pre-delete hook unit placed on the hosting cluster."""
    return f"addon-{addon_name}-pre-delete-hosting-{addon_namespace}"
