"""Addon-deploy reconcile action."""

import asyncio
from argparse import (
    ArgumentParser,
    BooleanOptionalAction,
    _SubParsersAction as SubParsersAction,
)
import logging
import pathlib
from typing import Any, cast

from addon_deploy.agent import AgentAddonOptions, AgentAddonRegistry, StaticAgentAddon
from addon_deploy.config import DEFAULT_MANIFESTS_LIMIT, AddonDeployControllerConfig
from addon_deploy.controller import AddonDeployController
from addon_deploy.exceptions import InputException
from addon_deploy.manifest import (
    ADDON_KIND,
    UNIT_KIND,
    AddonInstance,
    DeployableUnit,
    read_state,
)
from addon_deploy.plugin import AgentFeature, Routine
from addon_deploy.store import InMemoryStore

from .format import PrintFormatter, YamlFormatter
from .work_agent import LocalWorkAgent

_LOGGER = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0
DEFAULT_WORKERS = 4
FEATURE_NAME = "addon-deploy"


def parse_addon_flag(value: str) -> tuple[str, pathlib.Path]:
    """Parse a `NAME=PATH` addon flag."""
    name, sep, path = value.partition("=")
    if not sep or not name or not path:
        raise InputException(f"Invalid addon {value}, expected NAME=PATH")
    return name, pathlib.Path(path)


def addon_rows(addons: list[AddonInstance]) -> list[dict[str, Any]]:
    """Summarize the status of each addon as a table row."""
    rows = []
    for addon in addons:
        rows.append(
            {
                "cluster": addon.cluster_name,
                "name": addon.name,
                "health": addon.status.health_check.mode or "",
                "conditions": ",".join(
                    f"{cond.type}={cond.status}" for cond in addon.conditions
                ),
            }
        )
    return rows


def unit_rows(units: list[DeployableUnit]) -> list[dict[str, Any]]:
    """Summarize each deployable unit as a table row."""
    return [
        {
            "namespace": unit.namespace,
            "name": unit.name,
            "manifests": len(unit.spec.manifests),
            "finalizers": ",".join(unit.metadata.finalizers),
        }
        for unit in units
    ]


async def _settle(controller: AddonDeployController, agent: LocalWorkAgent | None) -> None:
    """Wait until neither the controller nor the agent has work left."""
    while True:
        await controller.wait_idle()
        if agent is not None:
            await agent.wait_idle()
        # Let listeners of the last writes enqueue their keys
        await asyncio.sleep(0)
        if controller.queue.is_idle() and (agent is None or agent.idle()):
            return


class ReconcileAction:
    """Reconcile the addons of a cluster state file."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "reconcile",
                help="Deploy addons onto the clusters of a state file",
                description=(
                    "Load addons, clusters and deployable units from a state file, "
                    "run the addon deploy controller until it settles and print "
                    "the resulting addon status."
                ),
            ),
        )
        args.add_argument(
            "--state",
            type=pathlib.Path,
            required=True,
            help="Multi-document YAML file of addons, clusters and deployable units",
        )
        args.add_argument(
            "--addon",
            dest="addons",
            action="append",
            default=[],
            metavar="NAME=PATH",
            help="Serve the manifests in PATH for the addon NAME, may be repeated",
        )
        args.add_argument(
            "--hosted-addon",
            dest="hosted_addons",
            action="append",
            default=[],
            metavar="NAME",
            help="Name of an addon supporting hosted mode, may be repeated",
        )
        args.add_argument(
            "--workers",
            type=int,
            default=DEFAULT_WORKERS,
            help="Number of addons reconciled concurrently",
        )
        args.add_argument(
            "--manifests-limit",
            type=int,
            default=DEFAULT_MANIFESTS_LIMIT,
            help="Maximum summed JSON size in bytes of the manifests of one unit",
        )
        args.add_argument(
            "--timeout",
            type=float,
            default=DEFAULT_TIMEOUT,
            help="Seconds to wait for the controller to settle",
        )
        args.add_argument(
            "--simulate-agent",
            action=BooleanOptionalAction,
            default=False,
            help="Report deployable units as applied as if an agent ran them",
        )
        args.add_argument(
            "--output",
            "-o",
            choices=["table", "yaml"],
            default="table",
            help="Output format of the command",
        )
        args.set_defaults(cls=cls)
        return args

    async def run(  # type: ignore[no-untyped-def]
        self,
        state: pathlib.Path,
        addons: list[str],
        hosted_addons: list[str],
        workers: int,
        manifests_limit: int,
        timeout: float,
        simulate_agent: bool,
        output: str,
        **kwargs,  # pylint: disable=unused-argument
    ) -> None:
        """Async Action implementation."""
        store = InMemoryStore()
        for obj in await read_state(state):
            store.add_object(obj)

        registry = AgentAddonRegistry()
        for value in addons:
            name, path = parse_addon_flag(value)
            options = AgentAddonOptions(
                addon_name=name, hosted_mode_enabled=name in hosted_addons
            )
            registry.register(await StaticAgentAddon.from_file(options, path))

        config = AddonDeployControllerConfig(
            manifests_limit=manifests_limit, workers=workers
        )
        controller = AddonDeployController(store, registry, config)
        agent: LocalWorkAgent | None = None
        routines: list[Routine] = []
        if simulate_agent:
            agent = LocalWorkAgent(store)
            routines.append(agent.run)

        feature = AgentFeature(FEATURE_NAME, [controller], routines)
        feature.start()
        try:
            async with asyncio.timeout(timeout):
                await _settle(controller, agent)
        except TimeoutError:
            _LOGGER.warning("Timed out after %ss waiting for addons to settle", timeout)
        finally:
            await feature.close()

        result_addons = cast(list[AddonInstance], store.list_objects(ADDON_KIND))
        result_units = cast(list[DeployableUnit], store.list_objects(UNIT_KIND))
        if output == "yaml":
            YamlFormatter().print(
                [obj.to_object() for obj in [*result_addons, *result_units]]
            )
            return
        PrintFormatter(["cluster", "name", "health", "conditions"]).print(
            addon_rows(result_addons)
        )
        if result_units:
            print()
            PrintFormatter(["namespace", "name", "manifests", "finalizers"]).print(
                unit_rows(result_units)
            )
