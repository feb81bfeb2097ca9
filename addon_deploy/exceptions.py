"""Exceptions related to addon-deploy."""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .manifest import DeployableUnit

__all__ = [
    "AddonDeployException",
    "InputException",
    "ObjectNotFoundError",
    "AlreadyExistsError",
    "ConflictError",
    "BuildError",
    "InvalidInstallModeError",
    "EmptyManifestsError",
    "ManifestTooLargeError",
    "ManifestRetrievalError",
    "StatusPatchError",
    "AggregateError",
    "QueueShutDownError",
    "aggregate",
]


class AddonDeployException(Exception):
    """Generic base exception used for this library."""


class InputException(AddonDeployException):
    """Raised when the input files or values are not formatted as expected."""


class ObjectNotFoundError(AddonDeployException):
    """Raised when an object is not found in the store."""


class AlreadyExistsError(AddonDeployException):
    """Raised when creating an object that already exists in the store."""


class ConflictError(AddonDeployException):
    """Raised when a write is made against a stale resource version."""


class BuildError(AddonDeployException):
    """Raised when the deployable units for an addon cannot be built."""


class InvalidInstallModeError(BuildError):
    """Raised for an install mode other than Default or Hosted."""

    def __init__(self, install_mode: str) -> None:
        super().__init__(f"invalid install mode {install_mode}")
        self.install_mode = install_mode


class EmptyManifestsError(BuildError):
    """Raised when no manifests are desired but units were previously deployed.

    The caller decides whether this means there is nothing to do or that the
    existing units should be torn down.
    """

    def __init__(self, existing: list["DeployableUnit"]) -> None:
        names = [unit.metadata.name for unit in existing]
        super().__init__(f"no manifests to deploy, existing units {names}")
        self.existing = existing


class ManifestTooLargeError(BuildError):
    """Raised when a single manifest does not fit within the unit size limit."""

    def __init__(self, manifest_name: str, size: int, limit: int) -> None:
        super().__init__(
            f"manifest {manifest_name} size {size} exceeds the limit {limit}"
        )
        self.size = size
        self.limit = limit


class ManifestRetrievalError(AddonDeployException):
    """Raised when the addon provider fails to return manifests."""


class StatusPatchError(AddonDeployException):
    """Raised when a status patch cannot be computed."""


class AggregateError(AddonDeployException):
    """A collection of independent errors raised as one."""

    def __init__(self, errors: list[Exception]) -> None:
        self.errors = list(errors)
        if len(self.errors) == 1:
            message = str(self.errors[0])
        else:
            message = "[" + ", ".join(str(err) for err in self.errors) + "]"
        super().__init__(message)


class QueueShutDownError(AddonDeployException):
    """Raised when reading from a work queue that has been shut down."""


def aggregate(errors: list[Exception]) -> AggregateError | None:
    """Return an AggregateError for the errors, or None if there are none."""
    if not errors:
        return None
    return AggregateError(errors)
