"""Command line entry point for running deployments without the API server."""

import argparse
import asyncio
import json
import sys

from automaker.core.config_store import get_config_store
from automaker.core.events import NullEventSink
from automaker.core.history import DeploymentHistory
from automaker.core.orchestrator import DeploymentOrchestrator
from automaker.models.deployment import DeploymentStatus
from automaker.utils.logging import configure_logging, get_logger


def _print_json(data: object) -> None:
    print(json.dumps(data, indent=2))


async def _run(args: argparse.Namespace) -> int:
    store = get_config_store()
    if not await store.has_config(args.project):
        print(f"Error: no deployment configuration found in {args.project}", file=sys.stderr)
        return 1

    orchestrator = DeploymentOrchestrator(
        config_store=store,
        events=NullEventSink(),
        history=DeploymentHistory(),
    )
    result = await orchestrator.deploy(args.project, feature_ids=args.feature or None)
    _print_json(result.to_json_dict())
    return 0 if result.status == DeploymentStatus.SUCCESS else 1


async def _config(args: argparse.Namespace) -> int:
    store = get_config_store()
    config = await store.get_config(args.project)
    exists = await store.has_config(args.project)
    _print_json({"exists": exists, "config": config.to_json_dict()})
    return 0


async def _history(args: argparse.Namespace) -> int:
    records = await DeploymentHistory().recent(args.project, args.limit)
    _print_json([record.to_json_dict() for record in records])
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="automaker-deploy",
        description="Run and inspect Automaker deployment pipelines",
    )
    parser.add_argument("--log-level", default="WARNING")
    sub = parser.add_subparsers(dest="cmd", required=True)

    run = sub.add_parser("run", help="run the deployment pipeline in the foreground")
    run.add_argument("project", help="project root containing .automaker/deployment.json")
    run.add_argument(
        "--feature",
        action="append",
        default=[],
        help="feature id included in this deployment (repeatable)",
    )
    run.set_defaults(handler=_run)

    config = sub.add_parser("config", help="print the effective deployment config")
    config.add_argument("project")
    config.set_defaults(handler=_config)

    history = sub.add_parser("history", help="print recent deployments")
    history.add_argument("project")
    history.add_argument("--limit", type=int, default=10)
    history.set_defaults(handler=_history)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level, log_to_file=False, stream=sys.stderr)

    try:
        return asyncio.run(args.handler(args))
    except KeyboardInterrupt:
        get_logger("cli").warning("cli.interrupted", command=args.cmd)
        return 130


if __name__ == "__main__":
    sys.exit(main())
