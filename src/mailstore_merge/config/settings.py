"""Configuration and environment settings for the merge tool."""

from __future__ import annotations

import json
from collections.abc import Mapping
from pathlib import Path
from typing import Annotated, Any, Self

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from mailstore_merge.models.types import Scope


class PreconditionError(ValueError):
    """Raised when configuration makes a run impossible before any store is touched."""


def _store_path_key(value: str | Path) -> Path:
    """Return a comparable absolute form of a store path."""
    return Path(value).expanduser().resolve()


class MergeSettings(BaseSettings):
    """Which stores to merge and how."""

    model_config = SettingsConfigDict(extra="forbid")

    sources: Annotated[list[str], NoDecode]
    destination: Path | None = None
    use_default_store: bool = False

    scope: Scope = Scope.all
    preview: bool = False
    detach_sources: bool = False
    skip_duplicates: bool = False

    @field_validator("sources", mode="before")
    @classmethod
    def _parse_sources(cls, value: object) -> object:
        """Parse sources from JSON or comma-separated values.

        Args:
            value: Raw env or CLI value.

        Returns:
            Parsed value (list or original).
        """
        if value is None:
            return []
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped:
                return []
            if stripped.startswith("["):
                return json.loads(stripped)
            return [part.strip() for part in stripped.split(",") if part.strip()]
        return value

    @field_validator("sources")
    @classmethod
    def _normalize_sources(cls, value: list[str]) -> list[str]:
        """Trim and de-duplicate sources by resolved path, keeping first occurrences.

        Args:
            value: Raw source list.

        Returns:
            Normalized source list.

        Raises:
            ValueError: If no source remains.
        """
        seen: set[Path] = set()
        result: list[str] = []
        for raw in value:
            source = raw.strip()
            if not source:
                continue
            marker = _store_path_key(source)
            if marker in seen:
                continue
            seen.add(marker)
            result.append(source)
        if not result:
            raise ValueError("at least one source store is required")
        return result

    @field_validator("destination")
    @classmethod
    def _destination_to_absolute(cls, value: Path | None) -> Path | None:
        """Resolve the destination path to an absolute path."""
        return _store_path_key(value) if value is not None else None

    @model_validator(mode="after")
    def _check_destination(self) -> Self:
        """Require exactly one destination form and keep it out of the sources.

        Raises:
            ValueError: If the destination is missing, doubly specified, or
                also listed as a source.
        """
        if (self.destination is None) == (not self.use_default_store):
            raise ValueError("specify exactly one of destination or use_default_store")
        if self.destination is not None:
            for source in self.sources:
                if _store_path_key(source) == self.destination:
                    raise ValueError(f"source {source!r} is also the destination")
        return self

    @property
    def destination_label(self) -> str:
        """Return a human-readable destination description."""
        return str(self.destination) if self.destination is not None else "<default store>"


class GovernorSettings(BaseSettings):
    """Cadences for reclamation, memory reports, and progress lines."""

    model_config = SettingsConfigDict(extra="forbid")

    reclaim_every: Annotated[int, Field(ge=0)] = 500
    monitor: bool = False
    monitor_every: Annotated[int, Field(ge=1)] = 5000
    progress_every: Annotated[int, Field(ge=1)] = 100


class LoggingSettings(BaseSettings):
    """Logging configuration settings."""

    model_config = SettingsConfigDict(extra="forbid")

    level: Annotated[str, Field(min_length=1)] = "INFO"
    verbose: bool = False
    json_logs: bool = False
    file: Path | None = None
    append: bool = True

    @field_validator("file")
    @classmethod
    def _file_to_absolute(cls, value: Path | None) -> Path | None:
        """Resolve the log file path to an absolute path."""
        return value.expanduser().resolve() if value is not None else None


class AppSettings(BaseSettings):
    """Top-level application settings."""

    model_config = SettingsConfigDict(
        env_prefix="MERGE_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="forbid",
    )

    merge: MergeSettings | None = None
    governor: GovernorSettings = Field(default_factory=GovernorSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


def load_settings(*, env_file: Path | None, overrides: Mapping[str, Any] | None = None) -> AppSettings:
    """Load validated settings from environment, optional file, and overrides.

    Override values take precedence; nested groups are merged with the
    environment rather than replacing it.

    Args:
        env_file: Optional .env file path.
        overrides: Values supplied on the command line.

    Returns:
        Validated AppSettings instance.
    """
    kwargs: dict[str, Any] = dict(overrides or {})
    if env_file is not None:
        kwargs["_env_file"] = env_file
    return AppSettings(**kwargs)
