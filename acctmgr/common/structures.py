"""Configuration structures of the tool.

The YAML configuration file is validated with pydantic models defined here.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, HttpUrl, ValidationError, field_validator

from acctmgr.backends import BackendType


class WCKeyFetchPolicy(Enum):
    """What to do when existing WCKeys cannot be fetched."""

    # Log and carry on with an empty set; the caller may lack coordinator rights
    SOFT = "soft"
    STRICT = "strict"


class AcctmgrConfiguration(BaseModel):
    """Complete configuration of the tool.

    YAML Configuration Fields:
        backend_type: Storage implementation, file or slurm
        backend_settings: Settings passed to the storage client
        track_wckey: Whether WCKeys are tracked by the accounting database
        wckey_fetch_policy: Reaction to a failed WCKey lookup
        notice_delay_seconds: Delay before the "database is busy" notice
        immediate: Answer yes to every confirmation question
        with_associations: List users with their associations by default
        log_level: Level of the tool logger
        sentry_dsn: Sentry DSN URL for error reporting (optional)

    Runtime Fields (set from CLI arguments, not from YAML):
        parsable: Output delimiter mode of listings, 0, 1 or 2
        no_header: Skip headers of listings
        config_file_path: Path to the loaded configuration file
    """

    backend_type: BackendType = Field(default=BackendType.FILE, description="Storage type")
    backend_settings: dict[str, Any] = Field(
        default_factory=dict, description="Backend-specific settings"
    )
    track_wckey: bool = Field(default=False, description="Track WCKeys")
    wckey_fetch_policy: WCKeyFetchPolicy = Field(
        default=WCKeyFetchPolicy.SOFT, description="Reaction to a failed WCKey lookup"
    )
    notice_delay_seconds: float = Field(
        default=5.0, ge=0, description="Delay before the busy database notice"
    )
    immediate: bool = Field(default=False, description="Answer yes to every question")
    with_associations: bool = Field(default=False, description="List users with associations")
    log_level: str = Field(default="WARNING", description="Logging level")
    sentry_dsn: Optional[str] = Field(
        default=None, description="Sentry DSN for error reporting (URL)"
    )

    # Runtime fields
    parsable: int = 0
    no_header: bool = False
    config_file_path: str = ""

    @field_validator("backend_type", mode="before")
    @classmethod
    def validate_backend_type(cls, v: Any) -> Any:
        """Convert backend_type to lowercase for consistency."""
        if isinstance(v, str):
            return v.lower()
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate that log_level is a known logging level name."""
        v = v.upper()
        if v not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            msg = f"log_level has invalid value: {v}"
            raise ValueError(msg)
        return v

    @field_validator("sentry_dsn")
    @classmethod
    def validate_sentry_dsn(cls, v: Optional[str]) -> Optional[str]:
        """Validate that sentry_dsn is a valid URL when provided."""
        if v is None or v == "":
            return None
        try:
            HttpUrl(v)
            return v
        except ValidationError as e:
            msg = f"sentry_dsn must be a valid URL: {e}"
            raise ValueError(msg) from e
