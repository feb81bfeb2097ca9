"""Command line tool for reconciling addon deployments locally."""

import argparse
import asyncio
import logging
import sys
import traceback

from addon_deploy.exceptions import AddonDeployException

from . import reconcile

_LOGGER = logging.getLogger(__name__)


def _make_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Command line utility for deploying addons onto managed clusters.",
    )
    parser.add_argument(
        "--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
    )

    subparsers = parser.add_subparsers(dest="command", help="Command", required=True)

    reconcile.ReconcileAction.register(subparsers)
    return parser


def main(argv: list[str] | None = None) -> None:
    """Addon-deploy command line tool main entry point."""
    parser = _make_parser()
    args = parser.parse_args(argv)

    if args.log_level:
        logging.basicConfig(level=args.log_level)

    action = args.cls()
    try:
        asyncio.run(action.run(**vars(args)))
    except AddonDeployException as err:
        if args.log_level == "DEBUG":
            traceback.print_exc(file=sys.stderr)
        print("addon-deploy error: ", err, file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
