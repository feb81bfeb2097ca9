"""Representation of the objects reconciled by the addon deploy controller.

The objects mirror the Kubernetes resources exchanged with the hub: the
`ManagedClusterAddOn` declaring an addon on a cluster, the `ManagedCluster`
itself, and the `ManifestWork` bundles (deployable units) that carry the
addon's raw manifests to the cluster.
"""

import copy
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import StrEnum
import json
import logging
from pathlib import Path
from typing import Any, ClassVar, TypeVar

import aiofiles
import yaml
from mashumaro import DataClassDictMixin, field_options
from mashumaro.codecs.yaml import yaml_decode, yaml_encode
from mashumaro.config import BaseConfig
from mashumaro.exceptions import InvalidFieldValue, MissingField

from .constants import PRE_DELETE_HOOK_LABEL
from .exceptions import InputException

__all__ = [
    "NamedResource",
    "ObjectMeta",
    "Condition",
    "ConditionStatus",
    "AddonInstance",
    "ManagedCluster",
    "DeployableUnit",
    "InstallMode",
    "ManifestSet",
    "ResourceIdentifier",
    "parse_object",
    "read_state",
]

_LOGGER = logging.getLogger(__name__)

ADDON_KIND = "ManagedClusterAddOn"
CLUSTER_KIND = "ManagedCluster"
UNIT_KIND = "ManifestWork"

ADDON_API_VERSION = "addon.open-cluster-management.io/v1alpha1"
CLUSTER_API_VERSION = "cluster.open-cluster-management.io/v1"
UNIT_API_VERSION = "work.open-cluster-management.io/v1"


def now() -> str:
    """Return the current time as an RFC 3339 timestamp."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def serialized_size(obj: dict[str, Any]) -> int:
    """Return the size in bytes of the compact JSON encoding of a raw object."""
    return len(json.dumps(obj, separators=(",", ":")).encode("utf-8"))


@dataclass
class BaseManifest(DataClassDictMixin):
    """Base class for all manifest objects."""

    @classmethod
    def parse_yaml(cls, content: str) -> "BaseManifest":
        """Parse a serialized manifest."""
        return yaml_decode(content, cls)

    def yaml(self) -> str:
        """Return a YAML string representation of the object."""
        return yaml_encode(self, self.__class__)  # type: ignore[return-value]

    class Config(BaseConfig):
        omit_none = True
        serialize_by_alias = True


@dataclass(frozen=True, order=True)
class NamedResource:
    """Identifier for a kubernetes resource."""

    kind: str
    namespace: str | None
    name: str

    @property
    def namespaced_name(self) -> str:
        if self.namespace:
            return f"{self.namespace}/{self.name}"
        return self.name

    def __str__(self) -> str:
        """Return the kind and namespaced name concatenated as an id."""
        return f"{self.kind}/{self.namespaced_name}"


class ConditionStatus(StrEnum):
    """Status of a condition."""

    TRUE = "True"
    FALSE = "False"
    UNKNOWN = "Unknown"


@dataclass
class Condition(BaseManifest):
    """A named status entry reported on an object."""

    type: str
    """The type of the condition e.g. ManifestApplied."""

    status: ConditionStatus
    """Whether the condition holds."""

    reason: str = ""
    """Machine readable reason for the last transition."""

    message: str = ""
    """Human readable details about the last transition."""

    last_transition_time: str | None = field(
        metadata=field_options(alias="lastTransitionTime"), default=None
    )
    """When the status last changed."""

    observed_generation: int | None = field(
        metadata=field_options(alias="observedGeneration"), default=None
    )
    """The generation of the object the condition was computed from."""


def find_condition(conditions: list[Condition], cond_type: str) -> Condition | None:
    """Return the condition of the given type, if present."""
    for cond in conditions:
        if cond.type == cond_type:
            return cond
    return None


def is_condition_true(conditions: list[Condition], cond_type: str) -> bool:
    """Return True if the condition of the given type is present and True."""
    cond = find_condition(conditions, cond_type)
    return cond is not None and cond.status == ConditionStatus.TRUE


def set_condition(conditions: list[Condition], new: Condition) -> None:
    """Add or update a condition in place.

    The transition time is only moved when the status changes so that setting
    the same condition twice leaves the list unchanged.
    """
    existing = find_condition(conditions, new.type)
    if existing is None:
        added = copy.copy(new)
        if added.last_transition_time is None:
            added.last_transition_time = now()
        conditions.append(added)
        return
    if existing.status != new.status:
        existing.status = new.status
        existing.last_transition_time = new.last_transition_time or now()
    existing.reason = new.reason
    existing.message = new.message
    existing.observed_generation = new.observed_generation


def remove_condition(conditions: list[Condition], cond_type: str) -> None:
    """Remove the condition of the given type, if present."""
    conditions[:] = [cond for cond in conditions if cond.type != cond_type]


@dataclass
class ObjectMeta(BaseManifest):
    """Metadata common to all stored objects."""

    name: str
    """The name of the object."""

    namespace: str | None = None
    """The namespace of the object, unset for cluster scoped objects."""

    uid: str | None = None
    """Unique identifier assigned by the store on creation."""

    resource_version: str | None = field(
        metadata=field_options(alias="resourceVersion"), default=None
    )
    """Opaque version used as a precondition for writes."""

    generation: int | None = None
    """Incremented by the store whenever the spec changes."""

    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)
    finalizers: list[str] = field(default_factory=list)

    deletion_timestamp: str | None = field(
        metadata=field_options(alias="deletionTimestamp"), default=None
    )
    """Set once deletion of the object was requested."""


@dataclass
class KubeObject(BaseManifest):
    """Base class for objects held in the store."""

    kind: ClassVar[str]
    api_version: ClassVar[str]

    metadata: ObjectMeta

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def namespace(self) -> str | None:
        return self.metadata.namespace

    @property
    def resource_id(self) -> NamedResource:
        """Return the identity of the object in the store."""
        return NamedResource(self.kind, self.metadata.namespace, self.metadata.name)

    @property
    def deleting(self) -> bool:
        """Return True if the object is being deleted."""
        return self.metadata.deletion_timestamp is not None

    def has_finalizer(self, finalizer: str) -> bool:
        return finalizer in self.metadata.finalizers

    def add_finalizer(self, finalizer: str) -> bool:
        """Add a finalizer, returning True if it was not already present."""
        if finalizer in self.metadata.finalizers:
            return False
        self.metadata.finalizers.append(finalizer)
        return True

    def remove_finalizer(self, finalizer: str) -> bool:
        """Remove a finalizer, returning True if it was present."""
        if finalizer not in self.metadata.finalizers:
            return False
        self.metadata.finalizers = [
            f for f in self.metadata.finalizers if f != finalizer
        ]
        return True

    def deep_copy(self: "K") -> "K":
        return copy.deepcopy(self)

    def to_object(self) -> dict[str, Any]:
        """Return the object as a raw kubernetes document."""
        return {"apiVersion": self.api_version, "kind": self.kind, **self.to_dict()}


K = TypeVar("K", bound=KubeObject)


class HealthCheckMode(StrEnum):
    """How the health of an addon is determined."""

    LEASE = "Lease"
    CUSTOMIZED = "Customized"


@dataclass
class HealthCheck(BaseManifest):
    """Summary of how the addon health is checked."""

    mode: HealthCheckMode | None = None


@dataclass
class AddonInstanceSpec(BaseManifest):
    """Desired state of an addon on a managed cluster."""

    install_namespace: str | None = field(
        metadata=field_options(alias="installNamespace"), default=None
    )
    """Namespace on the managed cluster the addon agent runs in."""


@dataclass
class AddonInstanceStatus(BaseManifest):
    """Observed state of an addon on a managed cluster."""

    conditions: list[Condition] = field(default_factory=list)
    health_check: HealthCheck = field(
        metadata=field_options(alias="healthCheck"), default_factory=HealthCheck
    )


@dataclass
class AddonInstance(KubeObject):
    """An addon declared on a managed cluster.

    The namespace of the object is the managed cluster name and its name is
    the addon name.
    """

    kind: ClassVar[str] = ADDON_KIND
    api_version: ClassVar[str] = ADDON_API_VERSION

    spec: AddonInstanceSpec = field(default_factory=AddonInstanceSpec)
    status: AddonInstanceStatus = field(default_factory=AddonInstanceStatus)

    @property
    def cluster_name(self) -> str:
        return self.metadata.namespace or ""

    @property
    def conditions(self) -> list[Condition]:
        return self.status.conditions

    def set_condition(self, cond: Condition) -> None:
        set_condition(self.status.conditions, cond)

    def find_condition(self, cond_type: str) -> Condition | None:
        return find_condition(self.status.conditions, cond_type)


@dataclass
class ManagedCluster(KubeObject):
    """A cluster managed by the hub."""

    kind: ClassVar[str] = CLUSTER_KIND
    api_version: ClassVar[str] = CLUSTER_API_VERSION


@dataclass(unsafe_hash=True)
class ResourceIdentifier(BaseManifest):
    """Identifies a single manifest within a deployable unit."""

    group: str = ""
    kind: str = ""
    name: str = ""
    namespace: str = ""

    @classmethod
    def from_object(cls, obj: dict[str, Any]) -> "ResourceIdentifier":
        """Return the identifier of a raw kubernetes object."""
        api_version = obj.get("apiVersion", "")
        group = api_version.split("/", 1)[0] if "/" in api_version else ""
        metadata = obj.get("metadata") or {}
        return cls(
            group=group,
            kind=obj.get("kind", ""),
            name=metadata.get("name", ""),
            namespace=metadata.get("namespace") or "",
        )

    def __str__(self) -> str:
        return f"{self.group}/{self.kind}: {self.namespace}/{self.name}"


@dataclass
class JsonPath(BaseManifest):
    """A named value to report back from a deployed resource."""

    name: str
    path: str


class UpdateStrategyType(StrEnum):
    """How the work agent updates an existing resource."""

    UPDATE = "Update"
    CREATE_ONLY = "CreateOnly"
    SERVER_SIDE_APPLY = "ServerSideApply"


@dataclass
class UpdateStrategy(BaseManifest):
    """Update strategy for a single manifest."""

    type: UpdateStrategyType = UpdateStrategyType.UPDATE
    force: bool = False
    field_manager: str | None = field(
        metadata=field_options(alias="fieldManager"), default=None
    )


@dataclass
class ManifestConfigOption(BaseManifest):
    """Per-manifest options attached to a deployable unit."""

    resource_identifier: ResourceIdentifier = field(
        metadata=field_options(alias="resourceIdentifier")
    )
    feedback_rules: list[JsonPath] = field(
        metadata=field_options(alias="feedbackRules"), default_factory=list
    )
    update_strategy: UpdateStrategy | None = field(
        metadata=field_options(alias="updateStrategy"), default=None
    )


@dataclass
class ManifestCondition(BaseManifest):
    """Status of one manifest of a deployable unit, reported by the agent."""

    resource_meta: ResourceIdentifier = field(
        metadata=field_options(alias="resourceMeta")
    )
    conditions: list[Condition] = field(default_factory=list)
    status_feedback: dict[str, str] = field(
        metadata=field_options(alias="statusFeedback"), default_factory=dict
    )


@dataclass
class UnitSpec(BaseManifest):
    """Desired content of a deployable unit."""

    manifests: list[dict[str, Any]] = field(default_factory=list)
    manifest_configs: list[ManifestConfigOption] = field(
        metadata=field_options(alias="manifestConfigs"), default_factory=list
    )


@dataclass
class UnitStatus(BaseManifest):
    """Status of a deployable unit, reported by the agent running it."""

    conditions: list[Condition] = field(default_factory=list)
    resource_status: list[ManifestCondition] = field(
        metadata=field_options(alias="resourceStatus"), default_factory=list
    )


@dataclass
class DeployableUnit(KubeObject):
    """A size bounded bundle of raw manifests deployed as one ManifestWork."""

    kind: ClassVar[str] = UNIT_KIND
    api_version: ClassVar[str] = UNIT_API_VERSION

    spec: UnitSpec = field(default_factory=UnitSpec)
    status: UnitStatus = field(default_factory=UnitStatus)


class InstallMode(StrEnum):
    """Where the addon agent runs."""

    DEFAULT = "Default"
    HOSTED = "Hosted"


def is_pre_delete_hook_object(obj: dict[str, Any]) -> bool:
    """Return True if the raw object is a pre-delete hook workload."""
    metadata = obj.get("metadata") or {}
    return PRE_DELETE_HOOK_LABEL in (
        metadata.get("labels") or {}
    ) or PRE_DELETE_HOOK_LABEL in (metadata.get("annotations") or {})


@dataclass
class ManifestSet:
    """The manifests of an addon split into regular workloads and hooks."""

    deploy: list[dict[str, Any]] = field(default_factory=list)
    hook: list[dict[str, Any]] = field(default_factory=list)

    @classmethod
    def from_objects(cls, objects: list[dict[str, Any]]) -> "ManifestSet":
        """Split provider output into regular and pre-delete hook manifests."""
        result = cls()
        for obj in objects:
            if is_pre_delete_hook_object(obj):
                result.hook.append(obj)
            else:
                result.deploy.append(obj)
        return result


_KINDS: dict[str, type[KubeObject]] = {
    ADDON_KIND: AddonInstance,
    CLUSTER_KIND: ManagedCluster,
    UNIT_KIND: DeployableUnit,
}


def parse_object(doc: dict[str, Any]) -> KubeObject:
    """Parse a raw kubernetes document into a typed object."""
    if not (kind := doc.get("kind")):
        raise InputException(f"Invalid object missing kind: {doc}")
    if not (cls := _KINDS.get(kind)):
        raise InputException(f"Unsupported object kind {kind}: {doc}")
    if not (metadata := doc.get("metadata")) or not metadata.get("name"):
        raise InputException(f"Invalid object missing metadata.name: {doc}")
    body = {k: v for k, v in doc.items() if k not in ("apiVersion", "kind")}
    try:
        return cls.from_dict(body)
    except (MissingField, InvalidFieldValue, ValueError) as err:
        raise InputException(f"Invalid {kind} object: {err}") from err


async def read_state(state_path: Path) -> list[KubeObject]:
    """Return the objects contained in a multi-document YAML file."""
    async with aiofiles.open(str(state_path)) as state_file:
        content = await state_file.read()
    return [parse_object(doc) for doc in load_documents(content)]


async def read_manifests(manifests_path: Path) -> list[dict[str, Any]]:
    """Return the raw manifests contained in a multi-document YAML file."""
    async with aiofiles.open(str(manifests_path)) as manifests_file:
        content = await manifests_file.read()
    return load_documents(content)


def load_documents(content: str) -> list[dict[str, Any]]:
    """Parse YAML content into a list of mapping documents."""
    try:
        docs = list(yaml.safe_load_all(content))
    except yaml.YAMLError as err:
        raise InputException(f"Failed to parse YAML: {err}") from err
    result = []
    for doc in docs:
        if doc is None:
            continue
        if not isinstance(doc, dict):
            raise InputException(f"Expected a mapping document but was: {doc}")
        result.append(doc)
    return result
