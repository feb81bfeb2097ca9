"""Fetch the manifests of an addon and build its units for one install role.

Provider and build failures are recorded as a False condition on the addon
before they are raised, so the user sees why the addon is not deployed.
"""

import logging
from typing import Any

from addon_deploy.agent import AgentAddon, HealthProberType
from addon_deploy.constants import (
    CONDITION_HOSTING_MANIFEST_APPLIED,
    CONDITION_MANIFEST_APPLIED,
    REASON_WORK_APPLY_FAILED,
)
from addon_deploy.exceptions import (
    BuildError,
    EmptyManifestsError,
    InputException,
    InvalidInstallModeError,
    ManifestRetrievalError,
)
from addon_deploy.manifest import (
    AddonInstance,
    Condition,
    ConditionStatus,
    DeployableUnit,
    InstallMode,
    ManagedCluster,
    ManifestConfigOption,
    ResourceIdentifier,
)
from addon_deploy.workbuilder import AddonWorksBuilder, WorkBuilder

__all__ = [
    "AddonUnitBuilder",
    "manifest_config_options",
]

_LOGGER = logging.getLogger(__name__)


def applied_condition_type(install_mode: InstallMode) -> str:
    """Return the addon condition recording the outcome of an install role."""
    match install_mode:
        case InstallMode.DEFAULT:
            return CONDITION_MANIFEST_APPLIED
        case InstallMode.HOSTED:
            return CONDITION_HOSTING_MANIFEST_APPLIED
    raise InvalidInstallModeError(install_mode)


def manifest_config_options(addon: AgentAddon) -> list[ManifestConfigOption]:
    """Return the per manifest options declared by the provider.

    Update strategies come from the updaters and feedback rules from the
    probe fields of a work health prober.
    """
    options = addon.options()
    by_identifier: dict[ResourceIdentifier, ManifestConfigOption] = {}

    def option_for(identifier: ResourceIdentifier) -> ManifestConfigOption:
        if identifier not in by_identifier:
            by_identifier[identifier] = ManifestConfigOption(
                resource_identifier=identifier
            )
        return by_identifier[identifier]

    for updater in options.updaters:
        option_for(updater.resource_identifier).update_strategy = (
            updater.update_strategy
        )
    prober = options.health_prober
    if prober is not None and prober.type == HealthProberType.WORK and prober.work_prober:
        for probe_field in prober.work_prober.probe_fields:
            option_for(probe_field.resource_identifier).feedback_rules.extend(
                probe_field.probe_rules
            )
    return list(by_identifier.values())


class AddonUnitBuilder:
    """Builds the units of an addon from the manifests of its provider."""

    def __init__(self, agent_addon: AgentAddon, work_builder: WorkBuilder) -> None:
        self._agent_addon = agent_addon
        self._work_builder = work_builder

    def _works_builder(self) -> AddonWorksBuilder:
        return AddonWorksBuilder(
            self._agent_addon.options().hosted_mode_enabled, self._work_builder
        )

    async def _manifests(
        self, applied_type: str, cluster: ManagedCluster, addon: AddonInstance
    ) -> list[dict[str, Any]]:
        try:
            return await self._agent_addon.manifests(cluster, addon)
        except Exception as err:
            addon.set_condition(
                Condition(
                    type=applied_type,
                    status=ConditionStatus.FALSE,
                    reason=REASON_WORK_APPLY_FAILED,
                    message=f"failed to get manifest from agent interface: {err}",
                )
            )
            raise ManifestRetrievalError(
                f"failed to get manifests of addon {addon.name}: {err}"
            ) from err

    @staticmethod
    def _build_failed(applied_type: str, addon: AddonInstance, err: Exception) -> None:
        addon.set_condition(
            Condition(
                type=applied_type,
                status=ConditionStatus.FALSE,
                reason=REASON_WORK_APPLY_FAILED,
                message=f"failed to build manifestwork: {err}",
            )
        )

    async def build_deploy_units(
        self,
        install_mode: InstallMode,
        unit_namespace: str,
        cluster: ManagedCluster,
        existing: list[DeployableUnit],
        addon: AddonInstance,
    ) -> tuple[list[DeployableUnit], list[DeployableUnit]]:
        """Return the deploy units to apply and the ones to delete.

        Raises:
            EmptyManifestsError: If nothing is to be deployed but units exist.
                No condition is recorded, the caller decides what it means.
        """
        applied_type = applied_condition_type(install_mode)
        objects = await self._manifests(applied_type, cluster, addon)
        try:
            return self._works_builder().build_deploy_units(
                install_mode,
                unit_namespace,
                cluster,
                existing,
                addon,
                objects,
                manifest_config_options(self._agent_addon),
            )
        except EmptyManifestsError:
            raise
        except (BuildError, InputException) as err:
            self._build_failed(applied_type, addon, err)
            raise

    async def build_hook_unit(
        self,
        install_mode: InstallMode,
        unit_namespace: str,
        cluster: ManagedCluster,
        addon: AddonInstance,
    ) -> DeployableUnit | None:
        """Return the pre-delete hook unit, None if the addon has no hooks."""
        applied_type = applied_condition_type(install_mode)
        objects = await self._manifests(applied_type, cluster, addon)
        if not objects:
            return None
        try:
            return self._works_builder().build_hook_unit(
                install_mode, unit_namespace, cluster, addon, objects
            )
        except (BuildError, InputException) as err:
            self._build_failed(applied_type, addon, err)
            raise
