# === NAVMAP v1 ===
# {
#   "module": "VulnDB.Installation.throttle",
#   "purpose": "Persist the last update check and decide whether a new remote check may run",
#   "sections": [
#     {"id": "format", "name": "Timestamp Format", "anchor": "FMT", "kind": "helpers"},
#     {"id": "throttle", "name": "UpdateCheckThrottle", "anchor": "THR", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Low-pass filter for remote update checks.

The timestamp of the last successful check lives in a plain-text RFC 3339 file
inside the active database directory.  The throttle fails open: a missing,
unreadable, or corrupt marker never blocks a check.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

from .filesystem import Filesystem
from .schema import LAST_UPDATE_CHECK_FILE_NAME

__all__ = ["UpdateCheckThrottle", "format_rfc3339", "parse_rfc3339"]

logger = logging.getLogger("VulnDB.Installation.throttle")

_ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)


def format_rfc3339(moment: datetime) -> str:
    """Render ``moment`` as an RFC 3339 UTC timestamp with second precision."""

    return moment.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def parse_rfc3339(value: str) -> datetime:
    """Parse an RFC 3339 timestamp; an explicit offset is required."""

    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        raise ValueError(f"timestamp {value!r} has no UTC offset")
    return parsed.astimezone(timezone.utc)


class UpdateCheckThrottle:
    """Track and gate remote update checks for one database directory."""

    def __init__(self, fs: Filesystem, directory: Path) -> None:
        self.fs = fs
        self.directory = Path(directory)

    @property
    def marker_path(self) -> Path:
        return self.directory / LAST_UPDATE_CHECK_FILE_NAME

    def last_checked(self) -> Optional[datetime]:
        """Return the recorded check time, ``None`` on first run.

        Raises:
            OSError: If the marker exists but cannot be read.
            ValueError: If the marker does not hold a usable timestamp.
        """

        if not self.fs.exists(self.marker_path):
            logger.debug("first-run of DB update", extra={"stage": "throttle"})
            return None

        raw = self.fs.read_text(self.marker_path)
        tokens = raw.split()
        if not tokens:
            raise ValueError("empty update check timestamp")
        checked = parse_rfc3339(tokens[0])
        if checked == _ZERO_TIME:
            raise ValueError("empty update check timestamp")
        return checked

    def duration_since_check(self, now: Optional[datetime] = None) -> Optional[timedelta]:
        checked = self.last_checked()
        if checked is None:
            return None
        current = now or datetime.now(timezone.utc)
        return current - checked

    def is_check_allowed(self, max_frequency: timedelta, now: Optional[datetime] = None) -> bool:
        """Return whether a remote update check may run now."""

        if max_frequency == timedelta(0):
            logger.debug("no max-frequency set for update check", extra={"stage": "throttle"})
            return True

        try:
            elapsed = self.duration_since_check(now)
        except (OSError, ValueError) as exc:
            logger.debug(
                "unable to determine if update check is allowed",
                extra={"stage": "throttle", "error": str(exc)},
            )
            return True
        if elapsed is None:
            return True
        return elapsed > max_frequency

    def record_check(self, now: Optional[datetime] = None) -> None:
        """Persist ``now`` as the last successful check.

        The marker never moves backward.  Failures are logged, not raised: an
        installed database directory is a prerequisite for recording a check.
        """

        current = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
        try:
            previous = self.last_checked()
        except (OSError, ValueError):
            previous = None
        if previous is not None and previous > current:
            logger.debug(
                "keeping newer update check timestamp",
                extra={"stage": "throttle", "recorded": format_rfc3339(previous)},
            )
            return

        try:
            self.fs.write_text(self.marker_path, format_rfc3339(current))
        except OSError as exc:
            logger.debug(
                "unable to write last update check timestamp",
                extra={"stage": "throttle", "error": str(exc)},
            )
