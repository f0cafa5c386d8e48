"""Distribution client protocol and entry-point discovery.

The curator does not talk to the network itself.  A distribution client
decides whether a newer database exists and downloads it; implementations are
registered under the ``vulndb.distribution`` entry-point group.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from importlib import metadata
from pathlib import Path
from typing import Dict, Optional, Protocol

from .errors import ConfigError
from .progress import Progress
from .schema import Descriptor

__all__ = [
    "ENTRY_POINT_GROUP",
    "UpdateCandidate",
    "DistributionClient",
    "list_distribution_clients",
    "load_distribution_client",
]

ENTRY_POINT_GROUP = "vulndb.distribution"

logger = logging.getLogger("VulnDB.Installation.distribution")


@dataclass(frozen=True)
class UpdateCandidate:
    """A remote database that is newer than the one installed."""

    description: Descriptor
    location: str


class DistributionClient(Protocol):
    """Protocol describing the collaborator that finds and fetches updates."""

    def is_update_available(self, current: Optional[Descriptor]) -> Optional[UpdateCandidate]:
        """Return a candidate newer than ``current``, or ``None`` when up to date."""

    def download(
        self,
        candidate: UpdateCandidate,
        destination_parent: Path,
        progress: Progress,
    ) -> Path:
        """Download and unpack ``candidate`` beneath ``destination_parent``.

        Returns the directory holding the unpacked description and payload.
        ``progress`` may be advanced from any thread.
        """


def _entry_points() -> Dict[str, metadata.EntryPoint]:
    return {entry.name: entry for entry in metadata.entry_points().select(group=ENTRY_POINT_GROUP)}


def list_distribution_clients() -> list[str]:
    """Return the names of registered distribution clients."""

    return sorted(_entry_points())


def load_distribution_client(name: Optional[str] = None) -> DistributionClient:
    """Instantiate the registered distribution client called ``name``.

    When ``name`` is omitted and exactly one client is registered, that client
    is used.

    Raises:
        ConfigError: If no matching client is registered or it cannot be loaded.
    """

    entries = _entry_points()
    if name is None:
        if len(entries) != 1:
            available = ", ".join(sorted(entries)) or "none"
            raise ConfigError(
                f"a distribution client must be selected (registered clients: {available})"
            )
        name = next(iter(entries))

    entry = entries.get(name)
    if entry is None:
        raise ConfigError(f"unknown distribution client '{name}'")
    try:
        candidate = entry.load()
        client = candidate() if isinstance(candidate, type) else candidate
    except Exception as exc:
        raise ConfigError(f"failed to load distribution client '{name}': {exc}") from exc
    if not hasattr(client, "is_update_available") or not hasattr(client, "download"):
        raise ConfigError(f"distribution client '{name}' does not implement the client protocol")
    logger.debug("distribution client loaded", extra={"stage": "init", "client": name})
    return client
