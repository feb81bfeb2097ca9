"""Resolve where an addon and each of its manifests are deployed."""

from typing import Any

from .constants import (
    HOSTED_MANIFEST_LOCATION_ANNOTATION,
    HOSTED_MANIFEST_LOCATION_HOSTING,
    HOSTED_MANIFEST_LOCATION_MANAGED,
    HOSTED_MANIFEST_LOCATION_NONE,
    HOSTING_CLUSTER_ANNOTATION,
)
from .exceptions import InputException
from .manifest import AddonInstance, InstallMode, ManagedCluster

__all__ = [
    "hosted_mode_info",
    "hosted_manifest_location",
]

_LOCATIONS = {
    HOSTED_MANIFEST_LOCATION_MANAGED,
    HOSTED_MANIFEST_LOCATION_HOSTING,
    HOSTED_MANIFEST_LOCATION_NONE,
}


def hosted_mode_info(
    addon: AddonInstance, cluster: ManagedCluster | None = None
) -> tuple[InstallMode, str]:
    """Return the install mode of the addon and its hosting cluster name.

    The hosting cluster annotation on the addon takes precedence over the one
    on the managed cluster.
    """
    for annotations in (
        addon.metadata.annotations,
        cluster.metadata.annotations if cluster else {},
    ):
        if hosting_cluster := annotations.get(HOSTING_CLUSTER_ANNOTATION):
            return InstallMode.HOSTED, hosting_cluster
    return InstallMode.DEFAULT, ""


def hosted_manifest_location(obj: dict[str, Any]) -> str:
    """Return where a manifest of a hosted addon is deployed.

    Manifests without an explicit location are deployed on the managed cluster.
    """
    metadata = obj.get("metadata") or {}
    for attrs in (metadata.get("labels") or {}, metadata.get("annotations") or {}):
        if (location := attrs.get(HOSTED_MANIFEST_LOCATION_ANNOTATION)) is None:
            continue
        if location not in _LOCATIONS:
            raise InputException(
                f"Invalid hosted manifest location {location} for "
                f"{obj.get('kind')} {metadata.get('name')}"
            )
        return location
    return HOSTED_MANIFEST_LOCATION_MANAGED
