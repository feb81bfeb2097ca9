"""Configuration objects for addon-deploy."""

from dataclasses import dataclass

# The default manifest limit of a ManifestWork is 500k
DEFAULT_MANIFESTS_LIMIT = 500 * 1024


@dataclass
class AddonDeployControllerConfig:
    """Configuration for the AddonDeployController."""

    manifests_limit: int = DEFAULT_MANIFESTS_LIMIT
    """Maximum sum of the compact JSON sizes of the manifests of one unit.

    Each manifest is measured on its own, so the list framing of the encoded
    unit is not counted against the limit.
    """

    workers: int = 4
    """Number of keys synced concurrently."""

    sync_timeout: float = 30.0
    """Seconds a single sync may take before it is cancelled and retried."""

    base_retry_delay: float = 0.005
    """Delay before the first retry of a failed key."""

    max_retry_delay: float = 1000.0
    """Upper bound of the exponential retry delay."""
