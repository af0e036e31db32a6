"""Swarm node labels and label preconditions."""

from __future__ import annotations

import json
import logging
import shlex
from dataclasses import dataclass
from enum import Enum

from .config import Node, NodeRegistry
from .errors import (
    InspectError,
    LabelAmbiguousError,
    LabelMissingError,
)
from .executor import Orchestrator
from .session import RemoteSession

logger = logging.getLogger(__name__)


class Cardinality(Enum):
    """How many nodes may carry a gated label."""

    EXACTLY_ONE = "exactly-one"
    AT_LEAST_ONE = "at-least-one"


@dataclass(frozen=True)
class NodeLabels:
    """Labels Docker reports for one node."""

    alias: str
    hostname: str
    labels: dict[str, str]


def inspect_command(nodes: list[Node]) -> str:
    return "sudo docker node inspect " + " ".join(shlex.quote(n.alias) for n in nodes)


def parse_inspect_output(stdout: str, nodes: list[Node]) -> list[NodeLabels]:
    """Pair ``docker node inspect`` output with the nodes it was asked about.

    Docker answers in argument order, so entries are matched by position.
    """
    try:
        result = json.loads(stdout)
    except json.JSONDecodeError as e:
        raise InspectError(f"Cannot parse docker node inspect output: {e}") from e

    if not isinstance(result, list) or len(result) != len(nodes):
        count = len(result) if isinstance(result, list) else 0
        raise InspectError(
            f"Unexpected number of returned nodes: expected {len(nodes)}, got {count}"
        )

    parsed = []
    for node, entry in zip(nodes, result):
        if not isinstance(entry, dict):
            raise InspectError(f"Unexpected inspect entry for {node.alias}: {entry!r}")
        spec = entry.get("Spec") or {}
        description = entry.get("Description") or {}
        if not isinstance(spec, dict) or not isinstance(description, dict):
            raise InspectError(f"Unexpected inspect entry for {node.alias}: {entry!r}")
        labels = spec.get("Labels") or {}
        if not isinstance(labels, dict):
            raise InspectError(f"Unexpected labels for {node.alias}: {labels!r}")
        hostname = description.get("Hostname") or node.alias
        parsed.append(
            NodeLabels(
                alias=node.alias,
                hostname=str(hostname),
                labels={str(k): str(v) for k, v in labels.items()},
            )
        )
    return parsed


async def inspect_labels(
    orchestrator: Orchestrator, registry: NodeRegistry
) -> list[NodeLabels]:
    """Read every node's labels with one inspect call on the first node."""
    nodes = registry.nodes
    if not nodes:
        raise InspectError("No nodes found in registry")

    reference = nodes[0]
    command = inspect_command(nodes)

    async def work(session: RemoteSession) -> str:
        result = await session.execute(command)
        if not result.ok:
            raise InspectError(
                f"docker node inspect failed on {reference.alias} "
                f"with status {result.exit_code}: {result.stderr.strip()}"
            )
        return result.stdout

    outcome = await orchestrator.run_on(reference, work)
    if not outcome.succeeded:
        if isinstance(outcome.error, InspectError):
            raise outcome.error
        raise InspectError(
            f"Cannot inspect nodes via {reference.alias}: {outcome.error_message}"
        ) from outcome.error

    return parse_inspect_output(outcome.output, nodes)


async def query_labels(
    orchestrator: Orchestrator, registry: NodeRegistry
) -> dict[str, dict[str, str]]:
    return {
        entry.alias: entry.labels
        for entry in await inspect_labels(orchestrator, registry)
    }


def format_labels(entries: list[NodeLabels]) -> list[str]:
    """Render a NODE / LABELS table, one string per row."""
    rows = [f"{'NODE':<30}{'LABELS':<50}"]
    for entry in entries:
        labels = ", ".join(
            f"{key}={value}" if value else key for key, value in entry.labels.items()
        )
        rows.append(f"{entry.hostname:<30}{labels:<50}".rstrip())
    return rows


async def labeled_nodes(
    orchestrator: Orchestrator, registry: NodeRegistry, label: str
) -> list[Node]:
    """Nodes whose ``label`` is set to ``true``, in registry order."""
    if not len(registry):
        return []
    labels = await query_labels(orchestrator, registry)
    return [node for node in registry if labels.get(node.alias, {}).get(label) == "true"]


async def check_label(
    orchestrator: Orchestrator,
    registry: NodeRegistry,
    label: str,
    cardinality: Cardinality = Cardinality.EXACTLY_ONE,
) -> Node:
    """Ensure the right number of nodes carry ``label=true``.

    Must be awaited before the operation it guards changes anything.

    Returns:
        The labeled node, or the first one for AT_LEAST_ONE

    Raises:
        LabelMissingError: No node carries the label
        LabelAmbiguousError: Several nodes carry an EXACTLY_ONE label
        InspectError: Labels could not be read
    """
    matches = await labeled_nodes(orchestrator, registry, label)

    if not matches:
        raise LabelMissingError(label)
    if cardinality is Cardinality.EXACTLY_ONE and len(matches) > 1:
        raise LabelAmbiguousError(label, [node.alias for node in matches])

    logger.info("Label %s=true found on %s", label, ", ".join(n.alias for n in matches))
    return matches[0]
