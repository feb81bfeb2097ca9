"""Pack raw manifests into size bounded deployable units.

The builder is a pure function of its inputs: it never reads or writes the
store. Given the desired manifests and the units deployed previously, it
returns the units to apply and the units to delete.
"""

import copy
from collections.abc import Callable
from dataclasses import dataclass
import logging
from typing import Any

from addon_deploy.config import DEFAULT_MANIFESTS_LIMIT
from addon_deploy.exceptions import EmptyManifestsError, ManifestTooLargeError
from addon_deploy.manifest import (
    DeployableUnit,
    ManifestConfigOption,
    ObjectMeta,
    ResourceIdentifier,
    UnitSpec,
    serialized_size,
)

__all__ = [
    "WorkBuilder",
    "MetaGenerator",
]

_LOGGER = logging.getLogger(__name__)

MetaGenerator = Callable[[int], ObjectMeta]
"""Returns the metadata of the unit holding the bin with the given index."""


def _manifest_name(obj: dict[str, Any]) -> str:
    return str(ResourceIdentifier.from_object(obj))


@dataclass
class WorkBuilder:
    """Builds deployable units from a flat list of manifests."""

    manifests_limit: int = DEFAULT_MANIFESTS_LIMIT
    """Maximum sum of the compact JSON sizes of the manifests of one unit."""

    def pack(self, objects: list[dict[str, Any]]) -> list[list[dict[str, Any]]]:
        """Partition the manifests in order into bins within the size limit.

        A bin is closed as soon as the next manifest would push it over the
        limit, so concatenating the bins reproduces the input.
        """
        bins: list[list[dict[str, Any]]] = []
        current: list[dict[str, Any]] = []
        current_size = 0
        for obj in objects:
            size = serialized_size(obj)
            if size > self.manifests_limit:
                raise ManifestTooLargeError(
                    _manifest_name(obj), size, self.manifests_limit
                )
            if current and current_size + size > self.manifests_limit:
                bins.append(current)
                current, current_size = [], 0
            current.append(obj)
            current_size += size
        if current:
            bins.append(current)
        return bins

    def build(
        self,
        objects: list[dict[str, Any]],
        meta_generator: MetaGenerator,
        existing: list[DeployableUnit] | None = None,
        options: list[ManifestConfigOption] | None = None,
    ) -> tuple[list[DeployableUnit], list[DeployableUnit]]:
        """Return the units to apply and the existing units to delete.

        Raises:
            EmptyManifestsError: If there are no manifests but units exist.
            ManifestTooLargeError: If a single manifest exceeds the limit.
        """
        existing = existing or []
        if not objects:
            if existing:
                raise EmptyManifestsError(existing)
            return [], []

        remaining = {unit.name: unit for unit in existing}
        applied: list[DeployableUnit] = []
        for index, manifests in enumerate(self.pack(objects)):
            unit = self._new_unit(meta_generator(index), manifests, options)
            if (current := remaining.pop(unit.name, None)) is not None:
                unit.metadata.uid = current.metadata.uid
                unit.metadata.resource_version = current.metadata.resource_version
            applied.append(unit)
        deleted = list(remaining.values())
        _LOGGER.debug(
            "Built %d units to apply, %d to delete", len(applied), len(deleted)
        )
        return applied, deleted

    def build_single(
        self,
        objects: list[dict[str, Any]],
        meta: ObjectMeta,
        options: list[ManifestConfigOption] | None = None,
    ) -> DeployableUnit:
        """Return one unit holding every manifest, without splitting.

        Raises:
            ManifestTooLargeError: If the manifests exceed the limit together.
        """
        size = sum(serialized_size(obj) for obj in objects)
        if size > self.manifests_limit:
            raise ManifestTooLargeError(meta.name, size, self.manifests_limit)
        return self._new_unit(meta, objects, options)

    @staticmethod
    def _new_unit(
        meta: ObjectMeta,
        manifests: list[dict[str, Any]],
        options: list[ManifestConfigOption] | None,
    ) -> DeployableUnit:
        identifiers = {ResourceIdentifier.from_object(obj) for obj in manifests}
        configs = [
            copy.deepcopy(option)
            for option in options or ()
            if option.resource_identifier in identifiers
        ]
        return DeployableUnit(
            metadata=meta,
            spec=UnitSpec(manifests=copy.deepcopy(manifests), manifest_configs=configs),
        )
