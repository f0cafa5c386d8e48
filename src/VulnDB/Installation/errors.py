# === NAVMAP v1 ===
# {
#   "module": "VulnDB.Installation.errors",
#   "purpose": "Define the exception hierarchy used across descriptor reads, validation, and activation",
#   "sections": [
#     {"id": "base", "name": "Base Exceptions", "anchor": "BAS", "kind": "api"},
#     {"id": "integrity", "name": "Integrity & Staleness Errors", "anchor": "INT", "kind": "api"},
#     {"id": "lifecycle", "name": "Import, Activation & Update Errors", "anchor": "LIF", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Exception hierarchy shared across the vulnerability database installation.

The curator reads descriptors, verifies checksums and schema models, checks
freshness, unpacks archives, and swaps directories into place.  This module
groups those failure modes so callers can react to high-level categories (for
example, a stale but intact database vs. a corrupt one) while still having
access to the offending paths and values for field diagnosis.
"""

from __future__ import annotations

from datetime import timedelta
from pathlib import Path
from typing import Optional, Union

__all__ = [
    "VulnDBError",
    "ConfigError",
    "DescriptionDecodeError",
    "IntegrityError",
    "ChecksumMismatchError",
    "UnsupportedSchemaError",
    "StaleDatabaseError",
    "ArchiveError",
    "ActivationError",
    "UpdateError",
]

PathLike = Union[str, Path]


class VulnDBError(RuntimeError):
    """Base exception for vulnerability database installation failures."""


class ConfigError(VulnDBError):
    """Raised when curator configuration inputs are invalid."""


class DescriptionDecodeError(VulnDBError):
    """Raised when a database description file exists but cannot be decoded."""

    def __init__(self, message: str, *, path: Optional[PathLike] = None) -> None:
        super().__init__(message)
        self.path = Path(path) if path is not None else None


class IntegrityError(VulnDBError):
    """Raised when a database directory fails its integrity checks."""

    def __init__(self, message: str, *, directory: Optional[PathLike] = None) -> None:
        super().__init__(message)
        self.directory = Path(directory) if directory is not None else None


class ChecksumMismatchError(IntegrityError):
    """Raised when the payload digest differs from the recorded checksum."""

    def __init__(self, path: PathLike, expected: str, actual: str) -> None:
        super().__init__(
            f"bad db checksum ({path}): {expected!r} vs {actual!r}",
            directory=Path(path).parent,
        )
        self.path = Path(path)
        self.expected = expected
        self.actual = actual


class UnsupportedSchemaError(IntegrityError):
    """Raised when the database schema model is not the one this build reads."""

    def __init__(
        self,
        have: Optional[int],
        want: int,
        *,
        schema_version: str = "",
        directory: Optional[PathLike] = None,
    ) -> None:
        shown = have if have is not None else 0
        super().__init__(
            f"unsupported database version: have={shown} want={want}",
            directory=directory,
        )
        self.have = have
        self.want = want
        self.schema_version = schema_version


class StaleDatabaseError(VulnDBError):
    """Raised when an intact database is older than the configured maximum age."""

    def __init__(self, message: str, *, age: timedelta, max_age: timedelta) -> None:
        super().__init__(message)
        self.age = age
        self.max_age = max_age


class ArchiveError(VulnDBError):
    """Raised when a database archive cannot be read or contains unsafe members."""


class ActivationError(VulnDBError):
    """Raised when a validated staging directory cannot be promoted."""


class UpdateError(VulnDBError):
    """Raised when a downloaded update cannot be fetched or activated."""
