# === NAVMAP v1 ===
# {
#   "module": "VulnDB.Installation.curator",
#   "purpose": "Own the database root: status, reads, updates, imports, and atomic activation",
#   "sections": [
#     {"id": "reader", "name": "DatabaseReader", "anchor": "RDR", "kind": "api"},
#     {"id": "curator", "name": "Curator", "anchor": "CUR", "kind": "api"},
#     {"id": "activation", "name": "Activation & Staging", "anchor": "ACT", "kind": "internal"},
#     {"id": "factory", "name": "new_curator", "anchor": "NEW", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Curator for the on-disk vulnerability database.

The curator owns ``<root>/<model>/``, the single active database directory.
Candidates are always unpacked into sibling staging directories named
``tmp-v<model>-<kind>-*`` and validated there; only a validated candidate is
renamed onto the active path.  The previous database is first parked under a
sibling name, so the active path is only ever changed by renames and a failed
swap can move the previous database back.

Failed staging directories are kept for investigation and pruned at the start
of a later update or import once they are older than
``CuratorConfig.failed_staging_retention`` (immediately when it is zero).

Callers must serialise operations against one root; the curator does not lock.
"""

from __future__ import annotations

import logging
import sqlite3
import time
import uuid
from pathlib import Path
from typing import IO, Optional, Union

from .descriptions import read_description
from .distribution import DistributionClient, UpdateCandidate
from .errors import (
    ActivationError,
    ConfigError,
    DescriptionDecodeError,
    IntegrityError,
    UpdateError,
    VulnDBError,
)
from .filesystem import Filesystem, LocalFilesystem, extract_archive_safe
from .progress import Monitor, ProgressListener
from .schema import MODEL_VERSION, VULNERABILITY_DB_FILE_NAME, Descriptor, Status
from .settings import CuratorConfig
from .throttle import UpdateCheckThrottle
from .validation import ensure_not_stale, validate_integrity

__all__ = ["STAGING_PREFIX", "DatabaseReader", "Curator", "new_curator"]

STAGING_PREFIX = f"tmp-v{MODEL_VERSION}-"

logger = logging.getLogger("VulnDB.Installation")


class DatabaseReader:
    """Read handle on a validated, active database directory."""

    def __init__(self, fs: Filesystem, directory: Path, description: Descriptor) -> None:
        self._fs = fs
        self.directory = Path(directory)
        self.description = description

    @property
    def path(self) -> Path:
        return self.directory / VULNERABILITY_DB_FILE_NAME

    def open(self) -> IO[bytes]:
        """Open the database payload for binary reading."""

        return self._fs.open(self.path, "rb")

    def connect(self) -> sqlite3.Connection:
        """Open a read-only SQLite connection to the database payload."""

        return sqlite3.connect(f"{self.path.resolve().as_uri()}?mode=ro", uri=True)


class Curator:
    """Manage the lifecycle of the installed vulnerability database."""

    def __init__(
        self,
        config: CuratorConfig,
        client: Optional[DistributionClient] = None,
        *,
        fs: Optional[Filesystem] = None,
        progress_listener: Optional[ProgressListener] = None,
    ) -> None:
        self.config = config
        self.client = client
        self.fs: Filesystem = fs or LocalFilesystem()
        self.progress_listener = progress_listener

    @property
    def db_dir(self) -> Path:
        return self.config.db_directory_path

    @property
    def throttle(self) -> UpdateCheckThrottle:
        return UpdateCheckThrottle(self.fs, self.db_dir)

    # ------------------------------------------------------------------
    # Read-only operations
    # ------------------------------------------------------------------

    def validate(self) -> Descriptor:
        """Check the active database for integrity and freshness.

        Raises:
            IntegrityError: If the database is missing, corrupt, or unsupported.
            StaleDatabaseError: If the database is older than the allowed age.
        """

        description = validate_integrity(
            self.fs, self.db_dir, validate_checksum=self.config.validate_checksum
        )
        ensure_not_stale(
            description,
            max_age=self.config.max_allowed_built_age,
            validate_age=self.config.validate_age,
        )
        return description

    def status(self) -> Status:
        """Report on the active database without modifying anything."""

        location = str(self.db_dir)
        try:
            description = read_description(self.fs, self.db_dir)
        except DescriptionDecodeError as exc:
            return Status(location=location, error=exc)
        if description is None:
            return Status(
                location=location,
                error=IntegrityError(
                    f"database metadata not found at {location!r}", directory=self.db_dir
                ),
            )

        error: Optional[Exception] = None
        try:
            self.validate()
        except VulnDBError as exc:
            error = exc

        return Status(
            location=location,
            built=description.built,
            schema_version=description.schema_version,
            checksum=description.checksum,
            error=error,
        )

    def reader(self) -> DatabaseReader:
        """Return a read handle on the active database once it validates."""

        description = self.validate()
        return DatabaseReader(self.fs, self.db_dir, description)

    def delete(self) -> None:
        """Remove the active database directory; a missing directory is not an error."""

        self.fs.remove_all(self.db_dir)
        logger.info("deleted vulnerability DB", extra={"stage": "delete", "path": str(self.db_dir)})

    def check_for_update(self) -> Optional[UpdateCandidate]:
        """Ask the distribution client for a newer database, ignoring the throttle.

        Unlike :meth:`update`, client failures propagate to the caller.
        """

        client = self._require_client()
        current = read_description(self.fs, self.db_dir)
        return client.is_update_available(current)

    # ------------------------------------------------------------------
    # Mutating operations
    # ------------------------------------------------------------------

    def update(self, on_progress: Optional[ProgressListener] = None) -> bool:
        """Update the active database, returning whether a new one was activated."""

        client = self._require_client()
        if not self.throttle.is_check_allowed(self.config.update_check_max_frequency):
            # Inside the throttle window this looks exactly like "no update".
            return False

        self._prune_stale_staging()
        with self._monitor(on_progress) as mon:
            try:
                current = read_description(self.fs, self.db_dir)
            except DescriptionDecodeError as exc:
                raise UpdateError(f"unable to read current database metadata: {exc}") from exc

            mon.set("checking for update")
            candidate: Optional[UpdateCandidate] = None
            check_failed = False
            try:
                candidate = client.is_update_available(current)
            except Exception as exc:  # a flaky check must not block an existing database
                check_failed = True
                logger.warning(
                    "unable to check for vulnerability database update",
                    extra={"stage": "check"},
                )
                logger.debug(
                    "check for vulnerability update failed: %s",
                    exc,
                    exc_info=True,
                    extra={"stage": "check"},
                )

            if candidate is None:
                if not check_failed:
                    self.throttle.record_check()
                mon.set("no update available")
                return False

            logger.info("downloading new vulnerability DB", extra={"stage": "download"})
            mon.set("downloading")
            staging = self._new_staging_dir("download")
            try:
                staged = Path(client.download(candidate, staging, mon.download_progress))
            except Exception as exc:
                self._discard_failed_staging(staging)
                raise UpdateError(f"unable to update vulnerability database: {exc}") from exc
            mon.download_progress.set_completed()

            try:
                self._activate(staged, mon)
            except VulnDBError as exc:
                self._discard_failed_staging(staging)
                raise UpdateError(
                    f"unable to activate new vulnerability database: {exc}"
                ) from exc
            self._remove_all_or_log(staging)

        self.throttle.record_check()

        new = candidate.description
        if current is not None:
            logger.info(
                "updated vulnerability DB",
                extra={
                    "stage": "update",
                    "from": current.built.isoformat(),
                    "to": new.built.isoformat(),
                    "version": new.schema_version,
                },
            )
        else:
            logger.info(
                "downloaded new vulnerability DB",
                extra={
                    "stage": "update",
                    "version": new.schema_version,
                    "built": new.built.isoformat(),
                },
            )
        return True

    def import_archive(
        self,
        archive_path: Union[str, Path],
        on_progress: Optional[ProgressListener] = None,
    ) -> None:
        """Unpack a local database archive and activate it.

        No distribution client is involved, so the download phase is marked
        complete as soon as the archive has been extracted.
        """

        self._prune_stale_staging()
        with self._monitor(on_progress) as mon:
            mon.set("unarchiving")
            staging = self._new_staging_dir("import")
            try:
                extract_archive_safe(Path(archive_path), staging, logger=logger)
                mon.download_progress.set_completed()
                self._activate(staging, mon)
            except Exception:
                self._discard_failed_staging(staging)
                raise

        logger.info(
            "imported vulnerability DB",
            extra={"stage": "import", "archive": str(archive_path)},
        )

    # ------------------------------------------------------------------
    # Activation and staging helpers
    # ------------------------------------------------------------------

    def _activate(self, staged_dir: Path, monitor: Monitor) -> None:
        """Validate ``staged_dir`` and swap it onto the active path."""

        try:
            monitor.set("validating DB integrity")
            validate_integrity(
                self.fs, staged_dir, validate_checksum=self.config.validate_checksum
            )
            monitor.set("activating")
            self._promote(staged_dir)
        finally:
            monitor.import_progress.set_completed()

    def _promote(self, staged_dir: Path) -> None:
        db_dir = self.db_dir
        parked: Optional[Path] = None
        if self.fs.exists(db_dir):
            parked = self.config.root_dir / f"{STAGING_PREFIX}retired-{uuid.uuid4().hex[:12]}"
            try:
                self.fs.rename(db_dir, parked)
            except OSError as exc:
                raise ActivationError(
                    f"failed to move existing database aside ({db_dir}): {exc}"
                ) from exc

        try:
            self.fs.rename(staged_dir, db_dir)
        except OSError as exc:
            if parked is not None:
                try:
                    self.fs.rename(parked, db_dir)
                except OSError as restore_exc:
                    logger.error(
                        "failed to restore previous database",
                        extra={
                            "stage": "activate",
                            "path": str(parked),
                            "error": str(restore_exc),
                        },
                    )
            raise ActivationError(
                f"failed to activate database ({staged_dir} -> {db_dir}): {exc}"
            ) from exc

        if parked is not None:
            self._remove_all_or_log(parked)

    def _new_staging_dir(self, kind: str) -> Path:
        root = self.config.root_dir
        try:
            self.fs.makedirs(root)
            return self.fs.make_temp_dir(root, f"{STAGING_PREFIX}{kind}-")
        except OSError as exc:
            raise VulnDBError(f"unable to create db temp dir under {root}: {exc}") from exc

    def _discard_failed_staging(self, staging: Path) -> None:
        if self.config.failed_staging_retention.total_seconds() == 0:
            self._remove_all_or_log(staging)
            return
        logger.warning(
            "retaining failed staging directory for investigation",
            extra={"stage": "cleanup", "path": str(staging)},
        )

    def _prune_stale_staging(self) -> None:
        """Remove staging directories older than the retention window."""

        root = self.config.root_dir
        cutoff = time.time() - self.config.failed_staging_retention.total_seconds()
        try:
            entries = self.fs.list_dir(root)
        except OSError as exc:
            logger.debug(
                "unable to list staging directories",
                extra={"stage": "cleanup", "path": str(root), "error": str(exc)},
            )
            return
        for entry in entries:
            if not entry.name.startswith(STAGING_PREFIX):
                continue
            try:
                expired = self.fs.mtime(entry) < cutoff
            except OSError:
                continue
            if expired:
                logger.debug(
                    "pruning stale staging directory",
                    extra={"stage": "cleanup", "path": str(entry)},
                )
                self._remove_all_or_log(entry)

    def _remove_all_or_log(self, path: Path) -> None:
        try:
            self.fs.remove_all(path)
        except OSError as exc:
            logger.warning(
                "failed to remove path %r",
                str(path),
                extra={"stage": "cleanup", "error": str(exc)},
            )

    def _monitor(self, on_progress: Optional[ProgressListener]) -> Monitor:
        return Monitor(on_progress or self.progress_listener)

    def _require_client(self) -> DistributionClient:
        if self.client is None:
            raise ConfigError("no distribution client configured for database updates")
        return self.client


def new_curator(
    config: Optional[CuratorConfig] = None,
    client: Optional[DistributionClient] = None,
    **kwargs,
) -> Curator:
    """Return a :class:`Curator` for ``config`` (defaults when omitted)."""

    return Curator(config or CuratorConfig(), client, **kwargs)
