"""JSON merge patch (RFC 7386) creation and application.

Status writes are sent as merge patches holding only the fields that changed,
so concurrent writers of other fields are never overwritten.
"""

import copy
from typing import Any

__all__ = [
    "create_merge_patch",
    "apply_merge_patch",
]


def create_merge_patch(original: Any, modified: Any) -> dict[str, Any]:
    """Return the merge patch that transforms `original` into `modified`.

    Both documents must be mappings. Removed keys are set to None and lists
    are replaced as a whole.
    """
    if not isinstance(original, dict) or not isinstance(modified, dict):
        raise TypeError("merge patches can only be created between two mappings")
    patch: dict[str, Any] = {}
    for key in original:
        if key not in modified:
            patch[key] = None
    for key, value in modified.items():
        if key not in original:
            patch[key] = copy.deepcopy(value)
            continue
        old_value = original[key]
        if isinstance(old_value, dict) and isinstance(value, dict):
            if sub_patch := create_merge_patch(old_value, value):
                patch[key] = sub_patch
        elif old_value != value:
            patch[key] = copy.deepcopy(value)
    return patch


def apply_merge_patch(target: Any, patch: Any) -> Any:
    """Return a new document with the merge patch applied to `target`."""
    if not isinstance(patch, dict):
        return copy.deepcopy(patch)
    result = copy.deepcopy(target) if isinstance(target, dict) else {}
    for key, value in patch.items():
        if value is None:
            result.pop(key, None)
        else:
            result[key] = apply_merge_patch(result.get(key), value)
    return result
