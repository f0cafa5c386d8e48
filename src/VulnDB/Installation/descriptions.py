"""Read database description sidecars from database directories."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

from pydantic import ValidationError as PydanticValidationError

from .errors import DescriptionDecodeError
from .filesystem import Filesystem
from .schema import DESCRIPTION_FILE_NAME, Descriptor

__all__ = ["description_path", "read_description"]


def description_path(directory: Path) -> Path:
    return Path(directory) / DESCRIPTION_FILE_NAME


def read_description(fs: Filesystem, directory: Path) -> Optional[Descriptor]:
    """Return the description stored in ``directory``.

    ``None`` means no description exists, which is a valid state (nothing is
    installed yet).  A description that exists but cannot be read or decoded
    raises :class:`DescriptionDecodeError` naming the file.
    """

    path = description_path(directory)
    try:
        exists = fs.exists(path)
    except OSError as exc:
        raise DescriptionDecodeError(
            f"unable to check if DB metadata path exists ({path}): {exc}", path=path
        ) from exc
    if not exists:
        return None

    try:
        with fs.open(path, "rb") as handle:
            payload = json.load(handle)
    except OSError as exc:
        raise DescriptionDecodeError(
            f"unable to open DB metadata path ({path}): {exc}", path=path
        ) from exc
    except ValueError as exc:
        raise DescriptionDecodeError(
            f"unable to parse DB metadata ({path}): {exc}", path=path
        ) from exc

    try:
        return Descriptor.model_validate(payload)
    except PydanticValidationError as exc:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in exc.errors())
        raise DescriptionDecodeError(
            f"unable to parse DB metadata ({path}): invalid fields: {fields}", path=path
        ) from exc
