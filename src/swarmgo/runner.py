#!/usr/bin/env python3
"""Main entry point for swarmgo."""

import argparse
import asyncio
import getpass
import logging
import sys
from pathlib import Path

from .config import (
    CLUSTER_CONFIG_FILE,
    NODES_FILE,
    NodeRegistry,
    WorkingDir,
    load_cluster_config,
    load_plan,
)
from .errors import SwarmgoError
from .executor import HostOutcome, NodeStatus, Orchestrator
from .labels import Cardinality, check_label, format_labels, inspect_labels

# ANSI colors for different nodes
COLORS = [
    "\033[36m",  # Cyan
    "\033[33m",  # Yellow
    "\033[35m",  # Magenta
    "\033[32m",  # Green
    "\033[34m",  # Blue
    "\033[91m",  # Light Red
    "\033[96m",  # Light Cyan
    "\033[93m",  # Light Yellow
]
RESET = "\033[0m"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="swarmgo",
        description="Provision and inspect Docker swarm nodes over SSH",
    )
    parser.add_argument(
        "-C",
        "--directory",
        type=Path,
        default=Path.cwd(),
        help=f"Directory containing {CLUSTER_CONFIG_FILE} and {NODES_FILE}",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable debug logging"
    )
    parser.add_argument(
        "--no-logs",
        action="store_true",
        help="Disable logging to files",
    )
    parser.add_argument(
        "--ask-passphrase",
        action="store_true",
        help="Prompt for the private key passphrase",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    exec_parser = subparsers.add_parser("exec", help="Run one command on nodes")
    exec_parser.add_argument("shell_command", help="Command to run")
    exec_parser.add_argument("aliases", nargs="*", help="Target nodes (default: all)")

    run_parser = subparsers.add_parser("run", help="Run a YAML plan on nodes")
    run_parser.add_argument("plan", type=Path, help="Path to YAML plan file")
    run_parser.add_argument("aliases", nargs="*", help="Target nodes (default: plan targets)")

    labels_parser = subparsers.add_parser("labels", help="Inspect node labels")
    labels_sub = labels_parser.add_subparsers(dest="labels_command", required=True)
    labels_sub.add_parser("ls", help="List labels of the swarm nodes")
    check_parser = labels_sub.add_parser("check", help="Check a label precondition")
    check_parser.add_argument("label", help="Label that must be set to true")
    check_parser.add_argument(
        "--at-least-one",
        action="store_true",
        help="Allow more than one labeled node",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    working_dir = WorkingDir(args.directory.expanduser().resolve())
    try:
        config = load_cluster_config(working_dir.child(CLUSTER_CONFIG_FILE))
        registry = NodeRegistry.load(working_dir.child(NODES_FILE))
    except SwarmgoError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    if not len(registry):
        print(f"Error: No nodes found in {NODES_FILE}", file=sys.stderr)
        return 1

    if args.no_logs:
        config.log_dir = None
    elif config.log_dir is not None and not config.log_dir.is_absolute():
        config.log_dir = working_dir.resolve() / config.log_dir

    passphrase = getpass.getpass("Key password: ") if args.ask_passphrase else None

    node_colors = {
        node.alias: COLORS[i % len(COLORS)] for i, node in enumerate(registry)
    }

    def on_output(alias: str, line: str) -> None:
        color = node_colors.get(alias, "")
        print(f"{color}[{alias}]{RESET} {line}")

    def on_status(alias: str, status: NodeStatus) -> None:
        color = node_colors.get(alias, "")
        print(f"{color}[{alias}]{RESET} Status: {status.value}")

    orchestrator = Orchestrator.from_config(
        config, passphrase=passphrase, on_output=on_output, on_status=on_status
    )

    try:
        if args.command == "exec":
            nodes = registry.select(args.aliases)
            outcomes = asyncio.run(orchestrator.run_command(nodes, args.shell_command))
            return _report(outcomes)

        if args.command == "run":
            plan = load_plan(args.plan)
            nodes = registry.select(args.aliases or plan.targets)
            outcomes = asyncio.run(
                orchestrator.run_batch(nodes, plan.steps, source=plan.source_path)
            )
            return _report(outcomes)

        # Label queries print their own results, not the raw inspect output
        orchestrator.on_output = None
        orchestrator.on_status = None
        if args.labels_command == "ls":
            entries = asyncio.run(inspect_labels(orchestrator, registry))
            for row in format_labels(entries):
                print(row)
            return 0

        cardinality = (
            Cardinality.AT_LEAST_ONE if args.at_least_one else Cardinality.EXACTLY_ONE
        )
        node = asyncio.run(check_label(orchestrator, registry, args.label, cardinality))
        print(f"{args.label}=true on {node.alias} ({node.host})")
        return 0
    except SwarmgoError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def _report(outcomes: dict[str, HostOutcome]) -> int:
    """Print failed nodes; return the process exit status."""
    failed = [outcome for outcome in outcomes.values() if not outcome.succeeded]
    if failed:
        print(
            f"\nFailed nodes: {', '.join(outcome.alias for outcome in failed)}",
            file=sys.stderr,
        )
        for outcome in failed:
            print(f"  {outcome.alias}: {outcome.error_message}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
