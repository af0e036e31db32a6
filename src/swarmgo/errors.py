"""Exception types raised by swarmgo."""

from __future__ import annotations


class SwarmgoError(Exception):
    """Base class for all swarmgo errors."""


class ConfigError(SwarmgoError):
    """Persisted fleet or cluster state is missing or malformed."""


class NotFoundError(SwarmgoError):
    """No node has the requested alias."""

    def __init__(self, alias: str):
        self.alias = alias
        super().__init__(f"Node not found: {alias}")


class AuthError(SwarmgoError):
    """Credentials were rejected or the private key could not be used."""

    def __init__(self, host: str, reason: str):
        self.host = host
        self.reason = reason
        super().__init__(f"Authentication to {host} failed: {reason}")


class ConnectError(SwarmgoError):
    """Network, handshake or transport failure talking to a host."""

    def __init__(self, host: str, reason: str):
        self.host = host
        self.reason = reason
        super().__init__(f"Cannot connect to {host}: {reason}")


class CommandTimeout(ConnectError):
    """A command exceeded its deadline and the connection was closed."""

    def __init__(self, host: str, command: str, timeout: float):
        self.command = command
        self.timeout = timeout
        super().__init__(host, f"command timed out after {timeout}s: {command}")


class CommandFailure(SwarmgoError):
    """A remote command exited with a non-zero status."""

    def __init__(self, step_index: int, title: str, output: str, exit_code: int):
        self.step_index = step_index
        self.title = title
        self.output = output
        self.exit_code = exit_code
        super().__init__(
            f"Step {step_index} ({title}) exited with status {exit_code}"
        )


class InspectError(SwarmgoError):
    """Label state could not be read from the swarm."""


class GateError(SwarmgoError):
    """A label precondition was not satisfied."""

    def __init__(self, label: str, message: str):
        self.label = label
        super().__init__(message)


class LabelMissingError(GateError):
    """No node carries the label."""

    def __init__(self, label: str):
        super().__init__(label, f"No node is labeled {label}=true")


class LabelAmbiguousError(GateError):
    """More than one node carries a label that must be unique."""

    def __init__(self, label: str, aliases: list[str]):
        self.aliases = aliases
        super().__init__(
            label,
            f"Exactly one node must be labeled {label}=true, "
            f"found {len(aliases)}: {', '.join(aliases)}",
        )
