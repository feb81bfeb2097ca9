"""Route the manifests of an addon into its deploy and hook units.

Which manifests end up in which unit depends on the role being built (the
managed cluster side or the hosting cluster side), whether the provider
supports hosted mode, whether the addon currently runs hosted, and the hosted
manifest location of each manifest.
"""

import logging
from typing import Any

from addon_deploy.constants import (
    ADDON_LABEL,
    ADDON_NAMESPACE_LABEL,
    FEEDBACK_JOB_COMPLETE,
    FEEDBACK_POD_PHASE,
    HOSTED_MANIFEST_LOCATION_HOSTING,
    HOSTED_MANIFEST_LOCATION_MANAGED,
    WORK_APPLIED,
    deploy_hosting_unit_name,
    deploy_unit_name,
    pre_delete_hook_hosting_unit_name,
    pre_delete_hook_unit_name,
    validate_unit_name,
)
from addon_deploy.exceptions import InvalidInstallModeError
from addon_deploy.hosting import hosted_manifest_location, hosted_mode_info
from addon_deploy.manifest import (
    AddonInstance,
    DeployableUnit,
    InstallMode,
    JsonPath,
    ManagedCluster,
    ManifestConfigOption,
    ManifestSet,
    ObjectMeta,
    ResourceIdentifier,
    is_condition_true,
)

from .builder import WorkBuilder

__all__ = [
    "AddonWorksBuilder",
    "hook_unit_is_completed",
]

_LOGGER = logging.getLogger(__name__)

JOB_COMPLETE_PATH = '.status.conditions[?(@.type=="Complete")].status'
POD_PHASE_PATH = ".status.phase"


class AddonWorksBuilder:
    """Builds the deploy and hook units of an addon for one install role."""

    def __init__(self, hosted_mode_enabled: bool, builder: WorkBuilder) -> None:
        self._hosted_mode_enabled = hosted_mode_enabled
        self._builder = builder

    def _deployable(
        self, role: InstallMode, addon_mode: InstallMode, obj: dict[str, Any]
    ) -> bool:
        hosted = self._hosted_mode_enabled and addon_mode == InstallMode.HOSTED
        if role == InstallMode.DEFAULT:
            if not hosted:
                return True
            return hosted_manifest_location(obj) == HOSTED_MANIFEST_LOCATION_MANAGED
        if not hosted:
            return False
        return hosted_manifest_location(obj) == HOSTED_MANIFEST_LOCATION_HOSTING

    def _select(
        self,
        role: InstallMode,
        cluster: ManagedCluster | None,
        addon: AddonInstance,
        objects: list[dict[str, Any]],
    ) -> ManifestSet:
        if role not in (InstallMode.DEFAULT, InstallMode.HOSTED):
            raise InvalidInstallModeError(role)
        addon_mode, _ = hosted_mode_info(addon, cluster)
        manifests = ManifestSet.from_objects(objects)
        return ManifestSet(
            deploy=[o for o in manifests.deploy if self._deployable(role, addon_mode, o)],
            hook=[o for o in manifests.hook if self._deployable(role, addon_mode, o)],
        )

    def build_deploy_units(
        self,
        install_mode: InstallMode,
        unit_namespace: str,
        cluster: ManagedCluster | None,
        existing: list[DeployableUnit],
        addon: AddonInstance,
        objects: list[dict[str, Any]],
        options: list[ManifestConfigOption] | None = None,
    ) -> tuple[list[DeployableUnit], list[DeployableUnit]]:
        """Return the deploy units to apply and the existing ones to delete."""
        manifests = self._select(install_mode, cluster, addon, objects)
        _LOGGER.debug(
            "Addon %s/%s has %d %s deploy manifests",
            addon.namespace,
            addon.name,
            len(manifests.deploy),
            install_mode,
        )

        def meta_generator(index: int) -> ObjectMeta:
            if install_mode == InstallMode.HOSTED:
                name = deploy_hosting_unit_name(addon.cluster_name, addon.name, index)
            else:
                name = deploy_unit_name(addon.name, index)
            return ObjectMeta(
                name=validate_unit_name(name),
                namespace=unit_namespace,
                labels=self._labels(install_mode, addon),
            )

        return self._builder.build(manifests.deploy, meta_generator, existing, options)

    def build_hook_unit(
        self,
        install_mode: InstallMode,
        unit_namespace: str,
        cluster: ManagedCluster | None,
        addon: AddonInstance,
        objects: list[dict[str, Any]],
    ) -> DeployableUnit | None:
        """Return the pre-delete hook unit of the addon, None without hooks."""
        manifests = self._select(install_mode, cluster, addon, objects)
        if not manifests.hook:
            return None
        if install_mode == InstallMode.HOSTED:
            name = pre_delete_hook_hosting_unit_name(addon.cluster_name, addon.name)
        else:
            name = pre_delete_hook_unit_name(addon.name)
        meta = ObjectMeta(
            name=validate_unit_name(name),
            namespace=unit_namespace,
            labels=self._labels(install_mode, addon),
        )
        return self._builder.build_single(
            manifests.hook, meta, _hook_feedback_options(manifests.hook)
        )

    @staticmethod
    def _labels(install_mode: InstallMode, addon: AddonInstance) -> dict[str, str]:
        labels = {ADDON_LABEL: addon.name}
        if install_mode == InstallMode.HOSTED:
            labels[ADDON_NAMESPACE_LABEL] = addon.cluster_name
        return labels


def _hook_feedback_options(objects: list[dict[str, Any]]) -> list[ManifestConfigOption]:
    options = []
    for obj in objects:
        match obj.get("kind"):
            case "Job":
                rule = JsonPath(name=FEEDBACK_JOB_COMPLETE, path=JOB_COMPLETE_PATH)
            case "Pod":
                rule = JsonPath(name=FEEDBACK_POD_PHASE, path=POD_PHASE_PATH)
            case _:
                continue
        options.append(
            ManifestConfigOption(
                resource_identifier=ResourceIdentifier.from_object(obj),
                feedback_rules=[rule],
            )
        )
    return options


def hook_unit_is_completed(unit: DeployableUnit | None) -> bool:
    """Return True once every Job and Pod of a hook unit has finished."""
    if unit is None:
        return False
    if not is_condition_true(unit.status.conditions, WORK_APPLIED):
        return False
    if not unit.status.resource_status:
        return False
    for manifest in unit.status.resource_status:
        match manifest.resource_meta.kind:
            case "Job":
                if manifest.status_feedback.get(FEEDBACK_JOB_COMPLETE) != "True":
                    return False
            case "Pod":
                if manifest.status_feedback.get(FEEDBACK_POD_PHASE) != "Succeeded":
                    return False
    return True
