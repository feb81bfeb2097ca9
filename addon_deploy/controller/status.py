"""Persist the outcome of a sync with as few and as small writes as possible."""

import json
import logging
from typing import Any

from addon_deploy.exceptions import StatusPatchError
from addon_deploy.manifest import AddonInstance, AddonInstanceStatus
from addon_deploy.patch import create_merge_patch
from addon_deploy.store import Store

__all__ = [
    "StatusReconciler",
]

_LOGGER = logging.getLogger(__name__)


def _status_body(addon: AddonInstance) -> dict[str, Any]:
    return AddonInstanceStatus(
        conditions=addon.status.conditions,
        health_check=addon.status.health_check,
    ).to_dict()


class StatusReconciler:
    """Writes the finalizers and status of an addon after a sync.

    Finalizers and status are never written together: a finalizer change is
    written on its own and the status follows on the next sync. Status
    changes are sent as a merge patch of the conditions and health check
    only, preconditioned on the version the sync started from.
    """

    def __init__(self, store: Store) -> None:
        self._store = store

    async def update(self, new: AddonInstance, old: AddonInstance) -> None:
        """Write the changes from `old` to `new`, if there are any."""
        if new.metadata.finalizers != old.metadata.finalizers:
            updated = old.deep_copy()
            updated.metadata.finalizers = list(new.metadata.finalizers)
            _LOGGER.info(
                "Updating finalizers of addon %s to %s",
                new.resource_id.namespaced_name,
                updated.metadata.finalizers,
            )
            await self._store.update(updated)
            return

        if (
            new.status.health_check == old.status.health_check
            and new.status.conditions == old.status.conditions
        ):
            return

        try:
            old_data = {"status": _status_body(old)}
            identity = {
                "uid": new.metadata.uid,
                "resourceVersion": new.metadata.resource_version,
            }
            new_data = {
                "metadata": {k: v for k, v in identity.items() if v is not None},
                "status": _status_body(new),
            }
            patch = create_merge_patch(old_data, new_data)
            patch_text = json.dumps(patch)
        except (TypeError, ValueError) as err:
            raise StatusPatchError(
                f"failed to create patch for addon {new.name}: {err}"
            ) from err

        _LOGGER.info(
            "Patching addon %s condition with %s",
            new.resource_id.namespaced_name,
            patch_text,
        )
        await self._store.patch_status(new.resource_id, patch)
