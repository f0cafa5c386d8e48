"""Filesystem capability, checksum helpers, and archive extraction coverage."""

from __future__ import annotations

import hashlib
import io
import tarfile
import zipfile
from pathlib import Path

import pytest
import xxhash

from VulnDB.Installation.errors import ArchiveError
from VulnDB.Installation.filesystem import (
    LocalFilesystem,
    extract_archive_safe,
    parse_checksum,
    validate_by_hash,
)


def _tar_with_member(path: Path, name: str, data: bytes = b"x") -> Path:
    with tarfile.open(path, "w") as tar:
        info = tarfile.TarInfo(name)
        info.size = len(data)
        tar.addfile(info, io.BytesIO(data))
    return path


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("sha256:ABC", ("sha256", "abc")),
        ("SHA512:def", ("sha512", "def")),
        ("0123abcd", ("sha256", "0123abcd")),
    ],
)
def test_parse_checksum(value: str, expected) -> None:
    assert parse_checksum(value) == expected


def test_parse_checksum_rejects_unknown_algorithm() -> None:
    with pytest.raises(ValueError, match="unsupported checksum algorithm"):
        parse_checksum("crc32:1234")


def test_validate_by_hash_reports_actual(tmp_path: Path) -> None:
    target = tmp_path / "payload"
    target.write_bytes(b"content")
    digest = hashlib.md5(b"content").hexdigest()

    assert validate_by_hash(LocalFilesystem(), target, f"md5:{digest}") == (True, f"md5:{digest}")
    valid, actual = validate_by_hash(LocalFilesystem(), target, "md5:" + "0" * 32)
    assert not valid
    assert actual == f"md5:{digest}"


def test_validate_by_hash_supports_xxh64(tmp_path: Path) -> None:
    target = tmp_path / "vulnerability.db"
    target.write_bytes(b"grype bundle payload")
    digest = xxhash.xxh64(b"grype bundle payload").hexdigest()

    valid, actual = validate_by_hash(LocalFilesystem(), target, f"xxh64:{digest}")
    assert valid
    assert actual == f"xxh64:{digest}"
    assert not validate_by_hash(LocalFilesystem(), target, "xxh64:" + "0" * 16)[0]


def test_remove_all_is_idempotent(tmp_path: Path) -> None:
    fs = LocalFilesystem()
    nested = tmp_path / "a" / "b"
    nested.mkdir(parents=True)
    (nested / "file").write_text("x")

    fs.remove_all(tmp_path / "a")
    fs.remove_all(tmp_path / "a")

    assert not (tmp_path / "a").exists()


def test_make_temp_dir_is_unique(tmp_path: Path) -> None:
    fs = LocalFilesystem()

    first = fs.make_temp_dir(tmp_path, "tmp-v6-import-")
    second = fs.make_temp_dir(tmp_path, "tmp-v6-import-")

    assert first != second
    assert first.name.startswith("tmp-v6-import-")
    assert fs.list_dir(tmp_path) == sorted([first, second])


def test_extract_archive_safe_writes_members(tmp_path: Path) -> None:
    archive = _tar_with_member(tmp_path / "ok.tar", "nested/file.txt", b"hello")

    extracted = extract_archive_safe(archive, tmp_path / "out")

    assert extracted == [tmp_path / "out" / "nested" / "file.txt"]
    assert extracted[0].read_bytes() == b"hello"


@pytest.mark.parametrize("member", ["../escape.txt", "/etc/passwd-copy", "a/../../b"])
def test_extract_archive_safe_rejects_traversal(tmp_path: Path, member: str) -> None:
    archive = _tar_with_member(tmp_path / "bad.tar", member)

    with pytest.raises(ArchiveError):
        extract_archive_safe(archive, tmp_path / "out")

    assert not (tmp_path / "escape.txt").exists()


def test_extract_archive_safe_rejects_symlinks(tmp_path: Path) -> None:
    archive = tmp_path / "link.tar"
    with tarfile.open(archive, "w") as tar:
        info = tarfile.TarInfo("link")
        info.type = tarfile.SYMTYPE
        info.linkname = "/etc/passwd"
        tar.addfile(info)

    with pytest.raises(ArchiveError, match="Links are not allowed"):
        extract_archive_safe(archive, tmp_path / "out")


def test_extract_archive_safe_rejects_garbage(tmp_path: Path) -> None:
    archive = tmp_path / "garbage.tar.gz"
    archive.write_bytes(b"this is not an archive at all")

    with pytest.raises(ArchiveError):
        extract_archive_safe(archive, tmp_path / "out")


def test_extract_archive_safe_detects_zip_by_content(tmp_path: Path) -> None:
    archive = tmp_path / "database.bin"
    with zipfile.ZipFile(archive, "w") as bundle:
        bundle.writestr("metadata/import.json", "{}")
        bundle.writestr("vulnerability.db", b"payload")

    extracted = extract_archive_safe(archive, tmp_path / "out")

    assert sorted(path.relative_to(tmp_path / "out").as_posix() for path in extracted) == [
        "metadata/import.json",
        "vulnerability.db",
    ]


def test_extract_archive_safe_rejects_zip_traversal(tmp_path: Path) -> None:
    archive = tmp_path / "bad.zip"
    with zipfile.ZipFile(archive, "w") as bundle:
        bundle.writestr("../outside.txt", "x")

    with pytest.raises(ArchiveError, match="Unsafe path"):
        extract_archive_safe(archive, tmp_path / "out")

    assert not (tmp_path / "outside.txt").exists()


def test_extract_archive_safe_missing_archive(tmp_path: Path) -> None:
    with pytest.raises(ArchiveError, match="Archive not found"):
        extract_archive_safe(tmp_path / "absent.tar.gz", tmp_path / "out")


def test_extract_archive_safe_wraps_os_errors(tmp_path: Path) -> None:
    not_an_archive = tmp_path / "not-an-archive"
    not_an_archive.mkdir()

    with pytest.raises(ArchiveError, match="Failed to extract archive"):
        extract_archive_safe(not_an_archive, tmp_path / "out")
