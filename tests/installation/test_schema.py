"""Description model, schema version parsing, and description store coverage."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from VulnDB.Installation.descriptions import read_description
from VulnDB.Installation.errors import DescriptionDecodeError
from VulnDB.Installation.filesystem import LocalFilesystem
from VulnDB.Installation.schema import DESCRIPTION_FILE_NAME, Descriptor, SchemaVersion, Status


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("v6.0.2", SchemaVersion(6, 0, 2)),
        ("6.1.0", SchemaVersion(6, 1, 0)),
        ("v5.3", SchemaVersion(5, 3, 0)),
    ],
)
def test_schema_version_parse(raw: str, expected: SchemaVersion) -> None:
    assert SchemaVersion.parse(raw) == expected


@pytest.mark.parametrize("raw", ["", "v6", "six.0.0", "v6.0.0-beta"])
def test_schema_version_rejects_malformed(raw: str) -> None:
    with pytest.raises(ValueError):
        SchemaVersion.parse(raw)


def test_schema_version_str_round_trip() -> None:
    assert str(SchemaVersion.parse("6.0.2")) == "v6.0.2"


def test_descriptor_reads_camel_case_and_normalises_to_utc() -> None:
    description = Descriptor.model_validate(
        {
            "built": "2024-06-01T14:00:00+02:00",
            "schemaVersion": "v6.0.2",
            "checksum": " sha256:abc ",
        }
    )

    assert description.built == datetime(2024, 6, 1, 12, tzinfo=timezone.utc)
    assert description.built.utcoffset() == timedelta(0)
    assert description.checksum == "sha256:abc"
    assert description.model() == 6
    assert json.loads(description.to_json())["schemaVersion"] == "v6.0.2"


def test_descriptor_naive_built_is_utc() -> None:
    description = Descriptor(built=datetime(2024, 6, 1), schema_version="v6.0.0", checksum="x")

    assert description.built.tzinfo == timezone.utc


def test_descriptor_unmappable_model() -> None:
    description = Descriptor(built=datetime(2024, 6, 1), schema_version="latest", checksum="x")

    assert description.model() is None


def test_read_description_absent_returns_none(tmp_path: Path) -> None:
    assert read_description(LocalFilesystem(), tmp_path) is None


def test_read_description_decode_error_names_file(tmp_path: Path) -> None:
    (tmp_path / DESCRIPTION_FILE_NAME).write_text("[1, 2", encoding="utf-8")

    with pytest.raises(DescriptionDecodeError) as excinfo:
        read_description(LocalFilesystem(), tmp_path)

    assert excinfo.value.path == tmp_path / DESCRIPTION_FILE_NAME
    assert str(tmp_path / DESCRIPTION_FILE_NAME) in str(excinfo.value)


def test_read_description_round_trip(tmp_path: Path, write_database) -> None:
    expected = write_database(tmp_path)

    assert read_description(LocalFilesystem(), tmp_path) == expected


def test_status_mapping() -> None:
    status = Status(
        location="/db/6",
        built=datetime(2024, 6, 1, tzinfo=timezone.utc),
        schema_version="v6.0.2",
        checksum="sha256:abc",
    )

    mapping = status.to_mapping()
    assert mapping["built"] == "2024-06-01T00:00:00Z"
    assert mapping["valid"] is True
    assert mapping["error"] is None
