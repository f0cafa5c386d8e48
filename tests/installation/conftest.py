"""Shared fixtures for the installation test suite."""

from __future__ import annotations

import hashlib
import json
import logging
import tarfile
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Iterator, List, Optional

import pytest

from VulnDB.Installation.distribution import UpdateCandidate
from VulnDB.Installation.progress import Progress
from VulnDB.Installation.schema import (
    DESCRIPTION_FILE_NAME,
    VULNERABILITY_DB_FILE_NAME,
    Descriptor,
)
from VulnDB.Installation.settings import CuratorConfig

WriteDatabase = Callable[..., Descriptor]


def _write_database(
    directory: Path,
    *,
    built: Optional[datetime] = None,
    schema_version: str = "v6.0.2",
    payload: bytes = b"vulnerability payload",
    checksum: Optional[str] = None,
) -> Descriptor:
    directory.mkdir(parents=True, exist_ok=True)
    (directory / VULNERABILITY_DB_FILE_NAME).write_bytes(payload)
    document = {
        "built": (built or datetime.now(timezone.utc)).isoformat(),
        "schemaVersion": schema_version,
        "checksum": checksum or "sha256:" + hashlib.sha256(payload).hexdigest(),
    }
    (directory / DESCRIPTION_FILE_NAME).write_text(json.dumps(document), encoding="utf-8")
    return Descriptor.model_validate(document)


@pytest.fixture(autouse=True)
def _reset_installation_logger() -> Iterator[None]:
    """Undo handlers installed by CLI invocations so caplog keeps working."""

    yield
    logger = logging.getLogger("VulnDB.Installation")
    for handler in list(logger.handlers):
        if getattr(handler, "_vulndb_managed", False):
            logger.removeHandler(handler)
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def write_database() -> WriteDatabase:
    """Return a helper that materialises a database directory with a description."""

    return _write_database


@pytest.fixture
def curator_config(tmp_path: Path) -> CuratorConfig:
    return CuratorConfig(root_dir=tmp_path / "db")


@pytest.fixture
def make_archive(tmp_path: Path) -> Callable[..., Path]:
    """Return a helper building a ``.tar.gz`` database archive."""

    counter = {"n": 0}

    def _make(**kwargs) -> Path:
        counter["n"] += 1
        source = tmp_path / f"archive-src-{counter['n']}"
        _write_database(source, **kwargs)
        archive = tmp_path / f"vulnerability-db-{counter['n']}.tar.gz"
        with tarfile.open(archive, "w:gz") as tar:
            for name in (VULNERABILITY_DB_FILE_NAME, DESCRIPTION_FILE_NAME):
                tar.add(source / name, arcname=name)
        return archive

    return _make


class FakeDistributionClient:
    """In-process distribution client recording every call."""

    def __init__(
        self,
        candidate: Optional[UpdateCandidate] = None,
        *,
        check_error: Optional[Exception] = None,
        download_error: Optional[Exception] = None,
        payload: bytes = b"new vulnerability payload",
        checksum: Optional[str] = None,
        on_download: Optional[Callable[[], None]] = None,
    ) -> None:
        self.candidate = candidate
        self.check_error = check_error
        self.download_error = download_error
        self.payload = payload
        self.checksum = checksum
        self.on_download = on_download
        self.seen_current: List[Optional[Descriptor]] = []
        self.download_calls = 0

    @property
    def check_calls(self) -> int:
        return len(self.seen_current)

    def is_update_available(self, current: Optional[Descriptor]) -> Optional[UpdateCandidate]:
        self.seen_current.append(current)
        if self.check_error is not None:
            raise self.check_error
        return self.candidate

    def download(
        self, candidate: UpdateCandidate, destination_parent: Path, progress: Progress
    ) -> Path:
        self.download_calls += 1
        if self.download_error is not None:
            raise self.download_error
        target = destination_parent / "unpacked"
        description = candidate.description
        _write_database(
            target,
            built=description.built,
            schema_version=description.schema_version,
            payload=self.payload,
            checksum=self.checksum,
        )
        progress.set_size(len(self.payload))
        progress.set(len(self.payload))
        if self.on_download is not None:
            self.on_download()
        return target


@pytest.fixture
def make_candidate() -> Callable[..., UpdateCandidate]:
    def _make(
        *,
        built: Optional[datetime] = None,
        schema_version: str = "v6.0.3",
        payload: bytes = b"new vulnerability payload",
    ) -> UpdateCandidate:
        description = Descriptor(
            built=built or datetime.now(timezone.utc),
            schema_version=schema_version,
            checksum="sha256:" + hashlib.sha256(payload).hexdigest(),
        )
        return UpdateCandidate(description=description, location="https://example.org/db.tar.gz")

    return _make


@pytest.fixture
def fake_client() -> Callable[..., FakeDistributionClient]:
    return FakeDistributionClient


@pytest.fixture
def days_ago() -> Callable[[float], datetime]:
    return lambda days: datetime.now(timezone.utc) - timedelta(days=days)
