"""Build the deployable units that carry the manifests of an addon."""

from .addon_builder import AddonWorksBuilder, hook_unit_is_completed
from .builder import MetaGenerator, WorkBuilder

__all__ = [
    "AddonWorksBuilder",
    "MetaGenerator",
    "WorkBuilder",
    "hook_unit_is_completed",
]
