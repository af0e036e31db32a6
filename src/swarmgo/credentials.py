"""SSH key-pair path resolution."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Callable

from .config import ClusterIdentity


def _home_dir() -> Path | None:
    try:
        return Path.home()
    # RuntimeError on 3.12+, KeyError before when no passwd entry exists
    except (RuntimeError, KeyError):
        return None


def _executable_dir() -> Path:
    return Path(sys.argv[0]).resolve().parent


class CredentialResolver:
    """Derives the key pair used to reach a cluster's nodes.

    Explicit paths on the identity win. Otherwise the pair is
    ``.ssh/<cluster_name>`` and ``.ssh/<cluster_name>.pub`` under the home
    directory, or under the executable's directory when there is no home.
    Nothing is checked on disk here; a missing key surfaces at connect time.
    """

    def __init__(
        self,
        home_dir: Callable[[], Path | None] = _home_dir,
        executable_dir: Callable[[], Path] = _executable_dir,
    ):
        self._home_dir = home_dir
        self._executable_dir = executable_dir

    def resolve(self, identity: ClusterIdentity) -> tuple[Path, Path]:
        """Return (public_key_path, private_key_path)."""
        if identity.public_key and identity.private_key:
            return (
                Path(identity.public_key).expanduser(),
                Path(identity.private_key).expanduser(),
            )

        relative = Path(".ssh") / identity.cluster_name
        base = self._home_dir() or self._executable_dir()
        private_key = base / relative
        public_key = private_key.with_name(private_key.name + ".pub")
        return public_key, private_key
