# === NAVMAP v1 ===
# {
#   "module": "VulnDB.Installation.settings",
#   "purpose": "Curator configuration model, defaults, and environment overrides",
#   "sections": [
#     {"id": "defaults", "name": "Defaults", "anchor": "DEF", "kind": "constants"},
#     {"id": "config", "name": "CuratorConfig", "anchor": "CFG", "kind": "api"},
#     {"id": "env", "name": "Environment Overrides", "anchor": "ENV", "kind": "api"},
#     {"id": "load", "name": "load_config", "anchor": "LOAD", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Configuration for the vulnerability database curator.

Defaults mirror the behaviour users expect from a scanner cache: databases live
under the platform cache directory, checksums and age are both enforced, a
database older than five days is considered stale, and the remote update check
runs at most every two hours.  Every field can be overridden through
``VULNDB_*`` environment variables or explicit keyword arguments.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, Optional

import platformdirs
from pydantic import BaseModel, Field, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigError
from .schema import MODEL_VERSION, VULNERABILITY_DB_FILE_NAME

__all__ = [
    "DEFAULT_ROOT_DIR",
    "DEFAULT_MAX_ALLOWED_BUILT_AGE",
    "DEFAULT_UPDATE_CHECK_MAX_FREQUENCY",
    "DEFAULT_FAILED_STAGING_RETENTION",
    "CuratorConfig",
    "CuratorEnvironment",
    "get_env_overrides",
    "load_config",
]

DEFAULT_ROOT_DIR = Path(platformdirs.user_cache_dir("vulndb")) / "db"
DEFAULT_MAX_ALLOWED_BUILT_AGE = timedelta(days=5)
DEFAULT_UPDATE_CHECK_MAX_FREQUENCY = timedelta(hours=2)
DEFAULT_FAILED_STAGING_RETENTION = timedelta(days=7)


class CuratorConfig(BaseModel):
    """Settings controlling where databases live and how strictly they are checked."""

    root_dir: Path = Field(default_factory=lambda: DEFAULT_ROOT_DIR)
    validate_checksum: bool = Field(default=True, description="Verify payload checksum")
    validate_age: bool = Field(default=True, description="Reject databases older than the max age")
    max_allowed_built_age: timedelta = Field(default=DEFAULT_MAX_ALLOWED_BUILT_AGE)
    update_check_max_frequency: timedelta = Field(
        default=DEFAULT_UPDATE_CHECK_MAX_FREQUENCY,
        description="Minimum interval between remote update checks (zero disables throttling)",
    )
    failed_staging_retention: timedelta = Field(
        default=DEFAULT_FAILED_STAGING_RETENTION,
        description="How long failed staging directories are kept for investigation",
    )

    model_config = {"validate_assignment": True}

    @field_validator("root_dir")
    @classmethod
    def _expand_root(cls, value: Path) -> Path:
        return Path(value).expanduser()

    @field_validator(
        "max_allowed_built_age", "update_check_max_frequency", "failed_staging_retention"
    )
    @classmethod
    def _non_negative(cls, value: timedelta) -> timedelta:
        if value < timedelta(0):
            raise ValueError("duration must not be negative")
        return value

    @property
    def db_directory_path(self) -> Path:
        """Return the active database directory for the supported schema model."""

        return self.root_dir / str(MODEL_VERSION)

    @property
    def db_file_path(self) -> Path:
        return self.db_directory_path / VULNERABILITY_DB_FILE_NAME


class CuratorEnvironment(BaseSettings):
    """Environment-derived overrides for :class:`CuratorConfig`."""

    root_dir: Optional[Path] = Field(default=None, alias="VULNDB_ROOT_DIR")
    validate_checksum: Optional[bool] = Field(default=None, alias="VULNDB_VALIDATE_CHECKSUM")
    validate_age: Optional[bool] = Field(default=None, alias="VULNDB_VALIDATE_AGE")
    max_allowed_built_age: Optional[timedelta] = Field(
        default=None, alias="VULNDB_MAX_ALLOWED_BUILT_AGE"
    )
    update_check_max_frequency: Optional[timedelta] = Field(
        default=None, alias="VULNDB_UPDATE_CHECK_MAX_FREQUENCY"
    )
    failed_staging_retention: Optional[timedelta] = Field(
        default=None, alias="VULNDB_FAILED_STAGING_RETENTION"
    )

    model_config = SettingsConfigDict(env_prefix="VULNDB_", case_sensitive=False, extra="ignore")


def get_env_overrides() -> Dict[str, Any]:
    """Return the overrides currently set in the environment."""

    env = CuratorEnvironment()
    return env.model_dump(by_alias=False, exclude_none=True)


def _format_validation_error(exc: PydanticValidationError) -> str:
    messages = []
    for error in exc.errors():
        location = " -> ".join(str(part) for part in error["loc"])
        messages.append(f"{location}: {error['msg']}")
    return "Configuration validation failed:\n  " + "\n  ".join(messages)


def load_config(**overrides: Any) -> CuratorConfig:
    """Build a :class:`CuratorConfig` from defaults, environment, and ``overrides``.

    Keyword overrides whose value is ``None`` are ignored so CLI options can be
    passed through unconditionally.
    """

    logger = logging.getLogger("VulnDB.Installation")
    try:
        env_values = get_env_overrides()
    except PydanticValidationError as exc:
        raise ConfigError(_format_validation_error(exc)) from exc

    for key, value in env_values.items():
        logger.info("Config overridden: %s=%s", key, value, extra={"stage": "config"})

    values: Dict[str, Any] = dict(env_values)
    values.update({key: value for key, value in overrides.items() if value is not None})
    try:
        return CuratorConfig.model_validate(values)
    except PydanticValidationError as exc:
        raise ConfigError(_format_validation_error(exc)) from exc
