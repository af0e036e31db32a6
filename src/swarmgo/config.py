"""Fleet, cluster and plan configuration for swarmgo."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Iterator

import yaml

from .batch import CommandStep
from .errors import ConfigError, NotFoundError

logger = logging.getLogger(__name__)

CLUSTER_CONFIG_FILE = "swarmgo-config.yml"
NODES_FILE = "nodes.yml"


@dataclass(frozen=True)
class Node:
    """A machine in the fleet."""

    alias: str
    host: str


@dataclass
class ClusterIdentity:
    """Cluster name and the SSH identity used to reach its nodes."""

    cluster_name: str
    cluster_user_name: str
    public_key: str | None = None
    private_key: str | None = None


@dataclass
class SessionOptions:
    """Connection settings shared by every session of a run."""

    port: int = 22
    # Permissive by default: unknown host keys are accepted.
    strict_host_key_checking: bool = False
    known_hosts: Path | None = None
    connect_timeout: float | None = 30
    command_timeout: float | None = None


@dataclass
class ClusterConfig:
    """Contents of swarmgo-config.yml."""

    identity: ClusterIdentity
    options: SessionOptions = field(default_factory=SessionOptions)
    max_concurrency: int | None = None
    log_dir: Path | None = None
    source_path: Path | None = None  # Path to the file this was loaded from


@dataclass
class Plan:
    """An ordered list of steps to run on a set of nodes."""

    steps: list[CommandStep]
    targets: list[str] = field(default_factory=list)
    source_path: Path | None = None


@dataclass
class WorkingDir:
    """Directory holding the cluster files, announced once per owner."""

    path: Path
    announced: bool = False

    def resolve(self) -> Path:
        if not self.announced:
            logger.info("Working directory: %s", self.path)
            self.announced = True
        return self.path

    def child(self, name: str) -> Path:
        return self.resolve() / name


class NodeRegistry:
    """Fleet definition keyed by alias."""

    def __init__(self, nodes: Iterable[Node] = ()):
        self._nodes: dict[str, Node] = {}
        for node in nodes:
            if not node.alias:
                raise ConfigError("Node must have an 'alias' field")
            if not node.host:
                raise ConfigError(f"Node '{node.alias}' must have a 'host' field")
            if node.alias in self._nodes:
                raise ConfigError(f"Duplicate node alias: {node.alias}")
            self._nodes[node.alias] = node

    @classmethod
    def load(cls, path: str | Path) -> NodeRegistry:
        """Load nodes from a YAML list. A missing file is an empty fleet."""
        path = Path(path)
        if not path.exists():
            return cls()

        raw = _read_yaml(path)
        if raw is None:
            return cls()
        if not isinstance(raw, list):
            raise ConfigError(f"{path}: expected a list of nodes")

        nodes = []
        for entry in raw:
            if not isinstance(entry, dict):
                raise ConfigError(f"{path}: node entries must be mappings")
            nodes.append(
                Node(alias=str(entry.get("alias") or ""), host=str(entry.get("host") or ""))
            )
        return cls(nodes)

    def save(self, path: str | Path) -> None:
        data = [{"alias": node.alias, "host": node.host} for node in self]
        Path(path).write_text(yaml.safe_dump(data, sort_keys=False))

    @property
    def nodes(self) -> list[Node]:
        return list(self._nodes.values())

    def resolve(self, alias: str) -> Node:
        try:
            return self._nodes[alias]
        except KeyError:
            raise NotFoundError(alias) from None

    def select(self, aliases: Iterable[str]) -> list[Node]:
        """Resolve target aliases; no aliases selects the whole fleet."""
        selected: list[Node] = []
        for alias in aliases:
            node = self.resolve(alias)
            if node not in selected:
                selected.append(node)
        return selected or self.nodes

    def __iter__(self) -> Iterator[Node]:
        return iter(self._nodes.values())

    def __len__(self) -> int:
        return len(self._nodes)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, NodeRegistry):
            return NotImplemented
        return self.nodes == other.nodes


def _read_yaml(path: Path) -> Any:
    try:
        with open(path) as f:
            return yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"{path}: invalid YAML: {e}") from e
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e


def load_cluster_config(config_path: str | Path) -> ClusterConfig:
    """Load and validate swarmgo-config.yml."""
    config_path = Path(config_path).resolve()

    if not config_path.exists():
        raise ConfigError(
            f"Config file not found: {config_path}. "
            f"You should create {CLUSTER_CONFIG_FILE}"
        )

    raw = _read_yaml(config_path)
    if not isinstance(raw, dict):
        raise ConfigError(f"{config_path}: expected a mapping")

    config = _parse_cluster_config(raw)
    config.source_path = config_path
    return config


def _get_number(
    raw: dict[str, Any], key: str, default: Any, integer: bool = False
) -> Any:
    """Read an optional numeric field, rejecting other types."""
    value = raw.get(key, default)
    if value is None:
        return None
    kinds = (int,) if integer else (int, float)
    if isinstance(value, bool) or not isinstance(value, kinds):
        kind = "an integer" if integer else "a number"
        raise ConfigError(f"'{key}' must be {kind}, got {value!r}")
    return value


def _get_string(raw: dict[str, Any], key: str, required: bool = False) -> str | None:
    value = raw.get(key)
    if value is None or value == "":
        if required:
            raise ConfigError(f"Cluster config must have a '{key}' field")
        return None
    if not isinstance(value, str):
        raise ConfigError(f"'{key}' must be a string, got {value!r}")
    return value


def _get_list(raw: dict[str, Any], key: str) -> list[Any]:
    value = raw.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise ConfigError(f"'{key}' must be a list, got {value!r}")
    return value


def _parse_options(raw: dict[str, Any]) -> tuple[SessionOptions, int | None]:
    """Parse the ssh section."""
    ssh_raw = raw.get("ssh") or {}
    if not isinstance(ssh_raw, dict):
        raise ConfigError("'ssh' section must be a mapping")

    strict = ssh_raw.get("strict_host_key_checking", False)
    if not isinstance(strict, bool):
        raise ConfigError(f"'strict_host_key_checking' must be a boolean, got {strict!r}")

    port = _get_number(ssh_raw, "port", 22, integer=True)
    if port is None:
        port = 22
    known_hosts = _get_string(ssh_raw, "known_hosts")
    options = SessionOptions(
        port=port,
        strict_host_key_checking=strict,
        known_hosts=Path(known_hosts).expanduser() if known_hosts else None,
        connect_timeout=_get_number(ssh_raw, "connect_timeout", 30),
        command_timeout=_get_number(ssh_raw, "command_timeout", None),
    )

    max_concurrency = _get_number(ssh_raw, "max_concurrency", None, integer=True)
    if max_concurrency is not None and max_concurrency <= 0:
        raise ConfigError(f"max_concurrency must be > 0, got {max_concurrency}")
    return options, max_concurrency


def _parse_cluster_config(raw: dict[str, Any]) -> ClusterConfig:
    """Parse raw YAML data into a ClusterConfig."""
    identity = ClusterIdentity(
        cluster_name=_get_string(raw, "cluster_name", required=True),
        cluster_user_name=_get_string(raw, "cluster_user_name", required=True),
        public_key=_get_string(raw, "public_key"),
        private_key=_get_string(raw, "private_key"),
    )
    options, max_concurrency = _parse_options(raw)

    log_dir = _get_string(raw, "log_dir")
    return ClusterConfig(
        identity=identity,
        options=options,
        max_concurrency=max_concurrency,
        log_dir=Path(log_dir).expanduser() if log_dir else None,
    )


def save_cluster_config(config: ClusterConfig, config_path: str | Path) -> None:
    identity = config.identity
    data: dict[str, Any] = {
        "cluster_name": identity.cluster_name,
        "cluster_user_name": identity.cluster_user_name,
    }
    if identity.public_key:
        data["public_key"] = identity.public_key
    if identity.private_key:
        data["private_key"] = identity.private_key

    options = config.options
    data["ssh"] = {
        "port": options.port,
        "strict_host_key_checking": options.strict_host_key_checking,
        "known_hosts": str(options.known_hosts) if options.known_hosts else None,
        "connect_timeout": options.connect_timeout,
        "command_timeout": options.command_timeout,
        "max_concurrency": config.max_concurrency,
    }
    if config.log_dir:
        data["log_dir"] = str(config.log_dir)

    Path(config_path).write_text(yaml.safe_dump(data, sort_keys=False))


def load_plan(plan_path: str | Path) -> Plan:
    """Load a command plan from a YAML file."""
    plan_path = Path(plan_path).resolve()

    if not plan_path.exists():
        raise ConfigError(f"Plan file not found: {plan_path}")

    raw = _read_yaml(plan_path)
    if not isinstance(raw, dict):
        raise ConfigError(f"{plan_path}: expected a mapping")

    # Parse command groups
    groups_raw = raw.get("command_groups") or {}
    if not isinstance(groups_raw, dict):
        raise ConfigError(f"{plan_path}: 'command_groups' must be a mapping")
    command_groups = {
        name: [_parse_step(step) for step in _get_list(groups_raw, name)]
        for name in groups_raw
    }

    steps = _resolve_steps(_get_list(raw, "steps"), command_groups)
    if not steps:
        raise ConfigError(f"{plan_path}: plan must have at least one step")

    targets = [str(alias) for alias in _get_list(raw, "targets")]
    return Plan(steps=steps, targets=targets, source_path=plan_path)


def _parse_step(step_raw: Any) -> CommandStep:
    if isinstance(step_raw, str):
        return CommandStep(title=step_raw, command=step_raw)
    if isinstance(step_raw, dict) and step_raw.get("command"):
        command = str(step_raw["command"])
        return CommandStep(title=str(step_raw.get("title") or command), command=command)
    raise ConfigError(f"Invalid step: {step_raw!r}")


def _resolve_steps(
    steps_raw: list[Any], command_groups: dict[str, list[CommandStep]]
) -> list[CommandStep]:
    """Resolve group references to actual steps."""
    steps: list[CommandStep] = []

    for step in steps_raw:
        if isinstance(step, str) and step in command_groups:
            # It's a group reference, expand it
            steps.extend(command_groups[step])
        else:
            steps.append(_parse_step(step))

    return steps
