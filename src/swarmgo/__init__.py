"""swarmgo: Provision and inspect Docker swarm nodes over SSH."""

from .batch import BatchResult, BatchStatus, CommandBatch, CommandStep
from .config import (
    ClusterConfig,
    ClusterIdentity,
    Node,
    NodeRegistry,
    Plan,
    SessionOptions,
    WorkingDir,
    load_cluster_config,
    load_plan,
    save_cluster_config,
)
from .credentials import CredentialResolver
from .errors import (
    AuthError,
    CommandFailure,
    CommandTimeout,
    ConfigError,
    ConnectError,
    GateError,
    InspectError,
    LabelAmbiguousError,
    LabelMissingError,
    NotFoundError,
    SwarmgoError,
)
from .executor import HostOutcome, NodeStatus, Orchestrator
from .labels import Cardinality, NodeLabels, check_label, query_labels
from .session import CommandResult, RemoteSession

__all__ = [
    "AuthError",
    "BatchResult",
    "BatchStatus",
    "Cardinality",
    "ClusterConfig",
    "ClusterIdentity",
    "CommandBatch",
    "CommandFailure",
    "CommandResult",
    "CommandStep",
    "CommandTimeout",
    "ConfigError",
    "ConnectError",
    "CredentialResolver",
    "GateError",
    "HostOutcome",
    "InspectError",
    "LabelAmbiguousError",
    "LabelMissingError",
    "Node",
    "NodeLabels",
    "NodeRegistry",
    "NodeStatus",
    "NotFoundError",
    "Orchestrator",
    "Plan",
    "RemoteSession",
    "SessionOptions",
    "SwarmgoError",
    "WorkingDir",
    "check_label",
    "load_cluster_config",
    "load_plan",
    "query_labels",
    "save_cluster_config",
]
