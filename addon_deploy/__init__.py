"""
addon-deploy reconciles the deployment of addons onto managed clusters.

Given an addon declared on a managed cluster, the library computes the size
bounded deployable units that must exist for it, reconciles them against a
watch-backed object store and reports the outcome as conditions on the addon.
"""

__all__ = [
    "agent",
    "controller",
    "exceptions",
    "manifest",
    "plugin",
    "store",
    "workbuilder",
    # Note this is exposed for CLI documentation, not to be used as a library
    "tool",
]
