# === NAVMAP v1 ===
# {
#   "module": "VulnDB.Installation",
#   "purpose": "Package initialization for VulnDB.Installation",
#   "sections": []
# }
# === /NAVMAP ===

"""Public API for installing and curating the local vulnerability database.

The :class:`Curator` owns the database root directory: it reports status,
hands out validated read handles, runs throttled update checks through a
pluggable distribution client, imports local archives, and promotes validated
candidates onto the active path with renames only.
"""

from __future__ import annotations

from importlib import metadata as importlib_metadata

from .curator import STAGING_PREFIX, Curator, DatabaseReader, new_curator
from .distribution import (
    DistributionClient,
    UpdateCandidate,
    list_distribution_clients,
    load_distribution_client,
)
from .errors import (
    ActivationError,
    ArchiveError,
    ChecksumMismatchError,
    ConfigError,
    DescriptionDecodeError,
    IntegrityError,
    StaleDatabaseError,
    UnsupportedSchemaError,
    UpdateError,
    VulnDBError,
)
from .filesystem import Filesystem, LocalFilesystem
from .progress import Monitor, Progress, ProgressListener, StagedProgress
from .schema import (
    DESCRIPTION_FILE_NAME,
    LAST_UPDATE_CHECK_FILE_NAME,
    MODEL_VERSION,
    VULNERABILITY_DB_FILE_NAME,
    Descriptor,
    SchemaVersion,
    Status,
)
from .settings import CuratorConfig, load_config

try:  # pragma: no cover - metadata may be unavailable during development
    __version__ = importlib_metadata.version("vulndb")
except importlib_metadata.PackageNotFoundError:  # pragma: no cover - local source tree
    __version__ = "0.0.0"

__all__ = [
    "__version__",
    "ActivationError",
    "ArchiveError",
    "ChecksumMismatchError",
    "ConfigError",
    "Curator",
    "CuratorConfig",
    "DESCRIPTION_FILE_NAME",
    "DatabaseReader",
    "DescriptionDecodeError",
    "Descriptor",
    "DistributionClient",
    "Filesystem",
    "IntegrityError",
    "LAST_UPDATE_CHECK_FILE_NAME",
    "LocalFilesystem",
    "MODEL_VERSION",
    "Monitor",
    "Progress",
    "ProgressListener",
    "STAGING_PREFIX",
    "SchemaVersion",
    "StagedProgress",
    "StaleDatabaseError",
    "Status",
    "UnsupportedSchemaError",
    "UpdateCandidate",
    "UpdateError",
    "VULNERABILITY_DB_FILE_NAME",
    "VulnDBError",
    "list_distribution_clients",
    "load_config",
    "load_distribution_client",
    "new_curator",
]
