"""
Addon deploy controller.

This controller deploys the agents of the registered addons onto their
managed clusters. Events on addons and on the deployable units the controller
owns are turned into `<cluster>/<addon>` keys on a work queue, and a pool of
workers syncs one key at a time.

Each sync runs a fixed sequence of syncers against a copy of the addon:

    - DefaultSyncer: deploy units in the managed cluster namespace.
    - HostedSyncer: deploy units in the hosting cluster namespace.
    - DefaultHookSyncer: pre-delete hook on the managed cluster.
    - HostedHookSyncer: pre-delete hook on the hosting cluster.
    - HealthCheckSyncer: health of the addon from its deployed units.

A failing syncer does not stop the ones after it. The outcome recorded on
the copy is persisted by the StatusReconciler before the failures are raised
so the key is retried.
"""

import asyncio
import functools
import logging

from addon_deploy.agent import AgentAddon, AgentAddonRegistry
from addon_deploy.config import AddonDeployControllerConfig
from addon_deploy.constants import (
    ADDON_LABEL,
    ADDON_NAMESPACE_LABEL,
    CONDITION_REGISTRATION_APPLIED,
    deploy_unit_name_prefix,
    pre_delete_hook_unit_name,
)
from addon_deploy.exceptions import QueueShutDownError, aggregate
from addon_deploy.manifest import (
    ADDON_KIND,
    CLUSTER_KIND,
    AddonInstance,
    DeployableUnit,
    KubeObject,
    ManagedCluster,
    NamedResource,
)
from addon_deploy.plugin import Controller
from addon_deploy.store import Indexer, Store, StoreEvent
from addon_deploy.workapplier import WorkApplier
from addon_deploy.workbuilder import WorkBuilder
from addon_deploy.workqueue import RateLimitingQueue

from .base import AddonDeploySyncer
from .builders import AddonUnitBuilder
from .default_hook_sync import DefaultHookSyncer
from .default_sync import DefaultSyncer
from .healthcheck_sync import HealthCheckSyncer
from .hosted_hook_sync import HostedHookSyncer
from .hosted_sync import HostedSyncer
from .status import StatusReconciler

__all__ = [
    "AddonDeployController",
    "addon_queue_key",
    "unit_queue_key",
]

_LOGGER = logging.getLogger(__name__)


def addon_queue_key(registry: AgentAddonRegistry, addon: AddonInstance) -> str | None:
    """Return the queue key of an addon served by a registered provider."""
    if addon.name not in registry:
        return None
    return f"{addon.cluster_name}/{addon.name}"


def unit_queue_key(registry: AgentAddonRegistry, unit: DeployableUnit) -> str | None:
    """Return the queue key of the addon owning a deploy or hook unit.

    Hosted units live in the hosting cluster namespace, so the addon
    namespace label takes precedence over the unit namespace.
    """
    labels = unit.metadata.labels
    if not (addon_name := labels.get(ADDON_LABEL)):
        return None
    if addon_name not in registry:
        return None
    if not (
        unit.name.startswith(deploy_unit_name_prefix(addon_name))
        or unit.name.startswith(pre_delete_hook_unit_name(addon_name))
    ):
        return None
    namespace = labels.get(ADDON_NAMESPACE_LABEL, unit.namespace)
    return f"{namespace}/{addon_name}"


class AddonDeployController(Controller):
    """Controller deploying the registered addons onto managed clusters."""

    def __init__(
        self,
        store: Store,
        registry: AgentAddonRegistry,
        config: AddonDeployControllerConfig | None = None,
    ) -> None:
        """Initialize the controller and start following the store.

        Args:
            store: The store holding addons, clusters and deployable units.
            registry: The providers of the addons this controller deploys.
            config: The configuration for the controller.
        """
        self._store = store
        self._registry = registry
        self._config = config or AddonDeployControllerConfig()
        self._indexer = Indexer(store)
        self._applier = WorkApplier(store)
        self._work_builder = WorkBuilder(manifests_limit=self._config.manifests_limit)
        self._status = StatusReconciler(store)
        self._queue = RateLimitingQueue(
            base_delay=self._config.base_retry_delay,
            max_delay=self._config.max_retry_delay,
        )
        self._tasks: list[asyncio.Task[None]] = []
        self._closing = False
        self._removers = [
            store.add_listener(StoreEvent.OBJECT_ADDED, self._on_event, flush=True),
            store.add_listener(StoreEvent.OBJECT_UPDATED, self._on_event),
            store.add_listener(StoreEvent.OBJECT_DELETED, self._on_event),
        ]

    @property
    def queue(self) -> RateLimitingQueue:
        return self._queue

    @property
    def workers(self) -> list[asyncio.Task[None]]:
        """Return the running worker tasks."""
        return list(self._tasks)

    def _on_event(self, resource_id: NamedResource, obj: KubeObject) -> None:
        key: str | None = None
        if isinstance(obj, AddonInstance):
            key = addon_queue_key(self._registry, obj)
        elif isinstance(obj, DeployableUnit):
            key = unit_queue_key(self._registry, obj)
        if key is not None:
            self._queue.add(key)

    def _syncers(self, agent_addon: AgentAddon) -> list[AddonDeploySyncer]:
        builder = AddonUnitBuilder(agent_addon, self._work_builder)
        return [
            DefaultSyncer(agent_addon, builder, self._applier, self._indexer),
            HostedSyncer(
                agent_addon, builder, self._applier, self._indexer, self._store
            ),
            DefaultHookSyncer(builder, self._applier),
            HostedHookSyncer(
                agent_addon, builder, self._applier, self._indexer, self._store
            ),
            HealthCheckSyncer(agent_addon, self._indexer),
        ]

    async def sync(self, key: str) -> None:
        """Reconcile the addon identified by a `<cluster>/<addon>` key.

        Raises:
            AggregateError: If any of the syncers failed. The outcome of the
                sync has been persisted by then.
        """
        parts = key.split("/")
        if len(parts) != 2 or not all(parts):
            _LOGGER.warning("Ignoring malformed key %s", key)
            return
        cluster_name, addon_name = parts

        if (agent_addon := self._registry.get(addon_name)) is None:
            return

        addon = self._store.get_object(
            NamedResource(ADDON_KIND, cluster_name, addon_name), AddonInstance
        )
        if addon is None:
            _LOGGER.debug("Addon %s not found", key)
            return

        # Deploy only once the addon has been registered
        if addon.find_condition(CONDITION_REGISTRATION_APPLIED) is None:
            _LOGGER.debug("Addon %s is not registered yet", key)
            return

        cluster = self._store.get_object(
            NamedResource(CLUSTER_KIND, None, cluster_name), ManagedCluster
        )
        if cluster is None:
            _LOGGER.debug("Cluster %s not found", cluster_name)
            return

        new_addon = addon.deep_copy()
        errors: list[Exception] = []
        for syncer in self._syncers(agent_addon):
            try:
                new_addon = await syncer.sync(cluster, new_addon)
            except Exception as err:
                _LOGGER.debug(
                    "Syncer %s failed for %s: %s", syncer.__class__.__name__, key, err
                )
                errors.append(err)

        await self._status.update(new_addon, addon)
        if (err := aggregate(errors)) is not None:
            raise err

    def start(self) -> None:
        """Start the workers draining the queue."""
        _LOGGER.info(
            "Starting AddonDeployController with %d workers", self._config.workers
        )
        for index in range(self._config.workers):
            self._start_worker(index)

    def _start_worker(self, index: int) -> None:
        task = asyncio.create_task(self._worker(), name=f"addon-deploy-worker-{index}")
        task.add_done_callback(functools.partial(self._worker_done, index))
        self._tasks.append(task)

    def _worker_done(self, index: int, task: asyncio.Task[None]) -> None:
        if self._closing or self._queue.shutting_down:
            return
        # Keep the pool at its configured size
        _LOGGER.warning("Worker %d stopped unexpectedly, starting a new one", index)
        if task in self._tasks:
            self._tasks.remove(task)
        self._start_worker(index)

    async def _worker(self) -> None:
        while True:
            try:
                key = await self._queue.get()
            except QueueShutDownError:
                return
            try:
                async with asyncio.timeout(self._config.sync_timeout):
                    await self.sync(key)
            except asyncio.CancelledError:
                self._queue.add_rate_limited(key)
                raise
            except Exception as err:
                _LOGGER.error(
                    "Failed to sync %s (requeues %d): %s",
                    key,
                    self._queue.num_requeues(key),
                    err,
                )
                self._queue.add_rate_limited(key)
            else:
                self._queue.forget(key)
            finally:
                self._queue.done(key)

    async def wait_idle(self) -> None:
        """Wait until no key is queued, waiting for a retry or being synced."""
        await self._queue.wait_idle()

    async def close(self) -> None:
        """Stop following the store and cancel the workers."""
        _LOGGER.info("Closing AddonDeployController, cancelling workers")
        self._closing = True
        for remove in self._removers:
            remove()
        self._removers.clear()
        self._indexer.close()
        self._queue.shut_down()
        for task in self._tasks:
            task.cancel()
        try:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        except asyncio.CancelledError:
            pass
        self._tasks.clear()
