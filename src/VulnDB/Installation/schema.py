# === NAVMAP v1 ===
# {
#   "module": "VulnDB.Installation.schema",
#   "purpose": "Database description model, schema version parsing, and status records",
#   "sections": [
#     {"id": "constants", "name": "Layout Constants", "anchor": "CON", "kind": "constants"},
#     {"id": "schema-version", "name": "SchemaVersion", "anchor": "VER", "kind": "api"},
#     {"id": "descriptor", "name": "Descriptor", "anchor": "DSC", "kind": "api"},
#     {"id": "status", "name": "Status", "anchor": "STA", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Data model for installed vulnerability databases.

A database directory carries a small JSON sidecar (the *description*) next to
the payload file.  The description records when the database was built, which
schema generation it follows, and the checksum of the payload.  The curator
never writes descriptions; they arrive pre-populated with every archive.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

__all__ = [
    "MODEL_VERSION",
    "DESCRIPTION_FILE_NAME",
    "VULNERABILITY_DB_FILE_NAME",
    "LAST_UPDATE_CHECK_FILE_NAME",
    "SchemaVersion",
    "Descriptor",
    "Status",
]

# Schema generation this build of the application can read.
MODEL_VERSION = 6
DESCRIPTION_FILE_NAME = "import.json"
VULNERABILITY_DB_FILE_NAME = "vulnerability.db"
LAST_UPDATE_CHECK_FILE_NAME = "last_update_check"

_SCHEMA_VERSION_PATTERN = re.compile(r"^v?(\d+)\.(\d+)(?:\.(\d+))?$")


@dataclass(frozen=True)
class SchemaVersion:
    """Structured ``v<model>.<revision>.<addition>`` schema version."""

    model: int
    revision: int
    addition: int = 0

    @classmethod
    def parse(cls, value: str) -> "SchemaVersion":
        match = _SCHEMA_VERSION_PATTERN.match(value.strip())
        if not match:
            raise ValueError(f"invalid schema version {value!r}")
        model, revision, addition = match.groups()
        return cls(int(model), int(revision), int(addition or 0))

    def __str__(self) -> str:
        return f"v{self.model}.{self.revision}.{self.addition}"


class Descriptor(BaseModel):
    """Description of a single database directory (``import.json``)."""

    built: datetime
    schema_version: str = Field(
        validation_alias=AliasChoices("schemaVersion", "schema_version"),
        serialization_alias="schemaVersion",
    )
    checksum: str

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    @field_validator("built")
    @classmethod
    def _normalize_built(cls, value: datetime) -> datetime:
        # Build times are defined in UTC; naive values are taken as UTC.
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    @field_validator("checksum")
    @classmethod
    def _strip_checksum(cls, value: str) -> str:
        return value.strip()

    def parsed_schema_version(self) -> Optional[SchemaVersion]:
        """Return the structured schema version, or ``None`` when malformed."""

        try:
            return SchemaVersion.parse(self.schema_version)
        except ValueError:
            return None

    def model(self) -> Optional[int]:
        """Return the schema model number, or ``None`` when it cannot be mapped."""

        parsed = self.parsed_schema_version()
        return parsed.model if parsed is not None else None

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


@dataclass
class Status:
    """Read-only report on the active database directory."""

    location: str
    built: Optional[datetime] = None
    schema_version: Optional[str] = None
    checksum: Optional[str] = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_mapping(self) -> Dict[str, Any]:
        return {
            "location": self.location,
            "built": self.built.isoformat().replace("+00:00", "Z") if self.built else None,
            "schemaVersion": self.schema_version,
            "checksum": self.checksum,
            "valid": self.ok,
            "error": str(self.error) if self.error is not None else None,
        }
