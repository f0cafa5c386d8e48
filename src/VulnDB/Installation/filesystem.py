# === NAVMAP v1 ===
# {
#   "module": "VulnDB.Installation.filesystem",
#   "purpose": "Filesystem capability protocol, hashing helpers, and safe archive extraction",
#   "sections": [
#     {"id": "protocol", "name": "Filesystem Protocol", "anchor": "FSP", "kind": "api"},
#     {"id": "local", "name": "LocalFilesystem", "anchor": "LOC", "kind": "api"},
#     {"id": "hashing", "name": "Hashing Utilities", "anchor": "HAS", "kind": "helpers"},
#     {"id": "archives", "name": "Archive Extraction", "anchor": "ARC", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Filesystem helpers for the database curator.

Every directory and file operation the curator performs goes through the
:class:`Filesystem` protocol so tests can substitute wrappers (for example, one
that fails renames) without touching the curator itself.  The module also
hosts the streaming checksum helpers and the tar and ZIP extractor used by
manual imports.
"""

from __future__ import annotations

import hashlib
import logging
import os
import shutil
import stat
import tarfile
import tempfile
import zipfile
from pathlib import Path, PurePosixPath
from typing import IO, List, Optional, Protocol, Tuple

import xxhash

from .errors import ArchiveError

__all__ = [
    "Filesystem",
    "LocalFilesystem",
    "SUPPORTED_HASH_ALGORITHMS",
    "parse_checksum",
    "compute_file_hash",
    "validate_by_hash",
    "extract_archive_safe",
]

SUPPORTED_HASH_ALGORITHMS = ("sha256", "sha512", "sha1", "md5", "xxh64")
_HASH_CHUNK_SIZE = 1 << 20


class Filesystem(Protocol):
    """Operations the curator needs from the filesystem holding the database root."""

    def exists(self, path: Path) -> bool:
        """Return ``True`` when ``path`` exists."""

    def is_dir(self, path: Path) -> bool:
        """Return ``True`` when ``path`` is a directory."""

    def open(self, path: Path, mode: str = "rb") -> IO:
        """Open ``path`` with ``mode``."""

    def read_text(self, path: Path) -> str:
        """Return the text contents of ``path``."""

    def write_text(self, path: Path, data: str) -> None:
        """Replace the contents of ``path`` with ``data``."""

    def list_dir(self, path: Path) -> List[Path]:
        """Return the entries directly under ``path``."""

    def mtime(self, path: Path) -> float:
        """Return the modification time of ``path`` as a POSIX timestamp."""

    def makedirs(self, path: Path) -> None:
        """Create ``path`` and any missing parents."""

    def make_temp_dir(self, parent: Path, prefix: str) -> Path:
        """Create a fresh uniquely-named directory under ``parent``."""

    def rename(self, source: Path, destination: Path) -> None:
        """Atomically rename ``source`` to ``destination``."""

    def remove_all(self, path: Path) -> None:
        """Remove ``path`` recursively; a missing path is not an error."""


class LocalFilesystem:
    """:class:`Filesystem` backed by the operating system."""

    def exists(self, path: Path) -> bool:
        return Path(path).exists()

    def is_dir(self, path: Path) -> bool:
        return Path(path).is_dir()

    def open(self, path: Path, mode: str = "rb") -> IO:
        return Path(path).open(mode)

    def read_text(self, path: Path) -> str:
        return Path(path).read_text(encoding="utf-8")

    def write_text(self, path: Path, data: str) -> None:
        Path(path).write_text(data, encoding="utf-8")

    def list_dir(self, path: Path) -> List[Path]:
        target = Path(path)
        if not target.is_dir():
            return []
        return sorted(target.iterdir())

    def mtime(self, path: Path) -> float:
        return Path(path).stat().st_mtime

    def makedirs(self, path: Path) -> None:
        Path(path).mkdir(parents=True, exist_ok=True)

    def make_temp_dir(self, parent: Path, prefix: str) -> Path:
        return Path(tempfile.mkdtemp(prefix=prefix, dir=str(parent)))

    def rename(self, source: Path, destination: Path) -> None:
        os.rename(source, destination)

    def remove_all(self, path: Path) -> None:
        target = Path(path)
        if target.is_symlink() or target.is_file():
            target.unlink(missing_ok=True)
            return
        if not target.exists():
            return
        shutil.rmtree(target)


def parse_checksum(value: str) -> Tuple[str, str]:
    """Split ``algorithm:digest`` into its parts; a bare digest means sha256."""

    algorithm, sep, digest = value.strip().partition(":")
    if not sep:
        algorithm, digest = "sha256", algorithm
    algorithm = algorithm.strip().lower()
    if algorithm not in SUPPORTED_HASH_ALGORITHMS:
        raise ValueError(f"unsupported checksum algorithm '{algorithm}'")
    return algorithm, digest.strip().lower()


def compute_file_hash(fs: Filesystem, path: Path, algorithm: str) -> str:
    """Compute the ``algorithm`` digest for ``path`` by streaming its contents."""

    hasher = xxhash.xxh64() if algorithm == "xxh64" else hashlib.new(algorithm)
    with fs.open(path, "rb") as stream:
        for chunk in iter(lambda: stream.read(_HASH_CHUNK_SIZE), b""):
            hasher.update(chunk)
    return hasher.hexdigest()


def validate_by_hash(fs: Filesystem, path: Path, expected: str) -> Tuple[bool, str]:
    """Return whether ``path`` matches ``expected`` and the actual checksum string.

    The actual value is rendered in the same ``algorithm:digest`` form as the
    expectation so both can be shown side by side in error messages.
    """

    algorithm, digest = parse_checksum(expected)
    actual = compute_file_hash(fs, path, algorithm)
    return actual == digest, f"{algorithm}:{actual}"


def _validate_member_path(member_name: str) -> Path:
    """Validate archive member paths to prevent traversal attacks."""

    normalized = member_name.replace("\\", "/")
    relative = PurePosixPath(normalized)
    if relative.is_absolute():
        raise ArchiveError(f"Unsafe absolute path detected in archive: {member_name}")
    parts = [part for part in relative.parts if part != "."]
    if not parts:
        raise ArchiveError(f"Empty path detected in archive: {member_name}")
    if any(part in {"", ".."} for part in parts):
        raise ArchiveError(f"Unsafe path detected in archive: {member_name}")
    return Path(*parts)


def _extract_zip(archive_path: Path, destination: Path) -> List[Path]:
    extracted: List[Path] = []
    with zipfile.ZipFile(archive_path) as archive:
        safe_members: List[tuple[zipfile.ZipInfo, Path]] = []
        for member in archive.infolist():
            member_path = _validate_member_path(member.filename)
            mode = (member.external_attr >> 16) & 0xFFFF
            if stat.S_IFMT(mode) == stat.S_IFLNK:
                raise ArchiveError(f"Links are not allowed in archive: {member.filename}")
            safe_members.append((member, member_path))
        for member, member_path in safe_members:
            target = destination / member_path
            if member.is_dir():
                target.mkdir(parents=True, exist_ok=True)
                continue
            target.parent.mkdir(parents=True, exist_ok=True)
            with archive.open(member, "r") as source, target.open("wb") as handle:
                shutil.copyfileobj(source, handle)
            extracted.append(target)
    return extracted


def _extract_tar(archive_path: Path, destination: Path) -> List[Path]:
    extracted: List[Path] = []
    with tarfile.open(archive_path, mode="r:*") as archive:
        safe_members: List[tuple[tarfile.TarInfo, Path]] = []
        for member in archive.getmembers():
            member_path = _validate_member_path(member.name)
            if member.islnk() or member.issym():
                raise ArchiveError(f"Links are not allowed in archive: {member.name}")
            if not (member.isdir() or member.isfile()):
                raise ArchiveError(f"Unsupported entry type in archive: {member.name}")
            safe_members.append((member, member_path))
        for member, member_path in safe_members:
            target = destination / member_path
            if member.isdir():
                target.mkdir(parents=True, exist_ok=True)
                continue
            target.parent.mkdir(parents=True, exist_ok=True)
            source = archive.extractfile(member)
            if source is None:
                raise ArchiveError(f"Failed to extract member: {member.name}")
            with source, target.open("wb") as handle:
                shutil.copyfileobj(source, handle)
            extracted.append(target)
    return extracted


def extract_archive_safe(
    archive_path: Path,
    destination: Path,
    *,
    logger: Optional[logging.Logger] = None,
) -> List[Path]:
    """Extract a ZIP or tar archive (plain, gzip, bzip2, or xz) into ``destination``.

    Format and compression are detected from the archive contents rather than
    the file name.  Members are validated before anything is written: absolute
    paths, ``..`` components, links, and special files are rejected.  Returns the
    regular files written, in member order.

    Raises:
        ArchiveError: If the archive is missing, unreadable, or unsafe.
    """

    if not archive_path.exists():
        raise ArchiveError(f"Archive not found: {archive_path}")
    destination.mkdir(parents=True, exist_ok=True)

    try:
        if zipfile.is_zipfile(archive_path):
            extracted = _extract_zip(archive_path, destination)
        else:
            extracted = _extract_tar(archive_path, destination)
    except (tarfile.TarError, zipfile.BadZipFile, EOFError, OSError) as exc:
        raise ArchiveError(f"Failed to extract archive {archive_path}: {exc}") from exc

    if logger:
        logger.info(
            "extracted archive",
            extra={"stage": "extract", "archive": str(archive_path), "files": len(extracted)},
        )
    return extracted
