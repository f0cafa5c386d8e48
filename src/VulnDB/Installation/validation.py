# === NAVMAP v1 ===
# {
#   "module": "VulnDB.Installation.validation",
#   "purpose": "Integrity and staleness checks for database directories",
#   "sections": [
#     {"id": "durations", "name": "Duration Formatting", "anchor": "DUR", "kind": "helpers"},
#     {"id": "integrity", "name": "validate_integrity", "anchor": "INT", "kind": "api"},
#     {"id": "staleness", "name": "ensure_not_stale", "anchor": "STL", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Validation of database directories before they are read or activated.

Integrity covers the description, the payload checksum, and the schema model.
Staleness is a separate check on the build time so callers can tell a corrupt
database apart from an intact but old one.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List, Optional

from .descriptions import read_description
from .errors import (
    ChecksumMismatchError,
    DescriptionDecodeError,
    IntegrityError,
    StaleDatabaseError,
    UnsupportedSchemaError,
)
from .filesystem import Filesystem, validate_by_hash
from .schema import MODEL_VERSION, VULNERABILITY_DB_FILE_NAME, Descriptor

__all__ = ["format_duration", "validate_integrity", "ensure_not_stale"]

_UNITS = (
    ("day", 86400),
    ("hour", 3600),
    ("minute", 60),
    ("second", 1),
)


def format_duration(value: timedelta, *, max_units: int = 2) -> str:
    """Return a short human-readable rendering such as ``"5 days"``."""

    remaining = int(abs(value.total_seconds()))
    parts: List[str] = []
    for name, seconds in _UNITS:
        count, remaining = divmod(remaining, seconds)
        if count:
            parts.append(f"{count} {name}" + ("" if count == 1 else "s"))
        if len(parts) == max_units:
            break
    if not parts:
        return "0 seconds"
    return " ".join(parts)


def validate_integrity(
    fs: Filesystem,
    directory: Path,
    *,
    validate_checksum: bool = True,
) -> Descriptor:
    """Check that ``directory`` holds a usable database and return its description.

    Raises:
        IntegrityError: If the description is missing or unreadable, the payload
            checksum does not match, or the schema model is not supported.
    """

    directory = Path(directory)
    try:
        description = read_description(fs, directory)
    except DescriptionDecodeError as exc:
        raise IntegrityError(
            f"failed to parse database metadata ({directory}): {exc}", directory=directory
        ) from exc
    if description is None:
        raise IntegrityError(f"database metadata not found: {directory}", directory=directory)

    if validate_checksum:
        db_path = directory / VULNERABILITY_DB_FILE_NAME
        try:
            valid, actual = validate_by_hash(fs, db_path, description.checksum)
        except (OSError, ValueError) as exc:
            raise IntegrityError(
                f"unable to validate db checksum ({db_path}): {exc}", directory=directory
            ) from exc
        if not valid:
            raise ChecksumMismatchError(db_path, description.checksum, actual)

    got_model = description.model()
    if got_model is None or got_model != MODEL_VERSION:
        raise UnsupportedSchemaError(
            got_model,
            MODEL_VERSION,
            schema_version=description.schema_version,
            directory=directory,
        )

    return description


def ensure_not_stale(
    description: Descriptor,
    *,
    max_age: timedelta,
    validate_age: bool = True,
    now: Optional[datetime] = None,
) -> None:
    """Raise :class:`StaleDatabaseError` when ``description`` is older than ``max_age``.

    Build times are defined in UTC, so the comparison is made in UTC too.
    """

    if not validate_age:
        return

    current = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
    age = current - description.built
    if age > max_age:
        raise StaleDatabaseError(
            f"the vulnerability database was built {format_duration(age)} ago "
            f"(max allowed age is {format_duration(max_age)})",
            age=age,
            max_age=max_age,
        )
