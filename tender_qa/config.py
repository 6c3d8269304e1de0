"""
config.py - Central configuration for TenderQA.

Everything tunable lives here: where the JSON record document sits, where
uploaded PDFs are cached, how many files we keep, and which Anthropic
model answers the questions. Defaults suit a laptop; deployments override
them through environment variables (the CLI loads a .env.local first).

The retention limit of 3 files is low on purpose. Every submission costs
files x questions API calls, and the UI table only shows a handful of
tenders anyway.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Optional, Tuple

logger = logging.getLogger(__name__)


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_tuple(name: str, default: Tuple[str, ...]) -> Tuple[str, ...]:
    raw = os.getenv(name)
    if not raw:
        return default
    return tuple(part.strip() for part in raw.split(",") if part.strip())


def _env_int(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


def _env_optional_int(name: str) -> Optional[int]:
    raw = os.getenv(name)
    return int(raw) if raw else None


# Fields read the environment when a Config is built, not at import, so a
# .env.local loaded by the entry point before Config() still takes effect.

@dataclass
class StorageConfig:
    """
    Record document and upload cache.

    The record document is rewritten in full on every mutation, so keep it
    on a local disk. Network mounts make the atomic rename unreliable.
    """
    db_path: str = field(default_factory=lambda: os.getenv("DB_PATH", "data/db.json"))
    upload_dir: str = field(default_factory=lambda: os.getenv("UPLOAD_DIR", "uploads"))
    max_files: int = field(default_factory=lambda: _env_int("MAX_FILES", 3))
    max_file_size_mb: int = field(default_factory=lambda: _env_int("MAX_FILE_SIZE_MB", 50))
    # Ask the document service to drop evicted files. Turn off when several
    # environments share one API key and you want to inspect uploads.
    release_evicted_files: bool = field(
        default_factory=lambda: _env_bool("RELEASE_EVICTED_FILES", True)
    )


@dataclass
class AnthropicConfig:
    """Anthropic Messages + Files API settings."""
    api_key: str = field(default_factory=lambda: os.getenv("ANTHROPIC_API_KEY", ""))
    model: str = field(
        default_factory=lambda: os.getenv("ANTHROPIC_MODEL", "claude-sonnet-4-20250514")
    )
    max_tokens: int = field(default_factory=lambda: _env_int("ANTHROPIC_MAX_TOKENS", 1024))
    files_beta: str = "files-api-2025-04-14"
    # None keeps the SDK default (2 retries with its own backoff).
    max_retries: Optional[int] = field(
        default_factory=lambda: _env_optional_int("ANTHROPIC_MAX_RETRIES")
    )


@dataclass
class ServerConfig:
    host: str = field(default_factory=lambda: os.getenv("HOST", "0.0.0.0"))
    port: int = field(default_factory=lambda: _env_int("PORT", 3001))
    cors_origins: Tuple[str, ...] = field(
        default_factory=lambda: _env_tuple("CORS_ORIGINS", ("http://localhost:3000",))
    )


@dataclass
class LoggingConfig:
    level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))
    environment: str = field(default_factory=lambda: os.getenv("APP_ENV", "development"))
    log_dir: str = field(default_factory=lambda: os.getenv("LOG_DIR", "."))


@dataclass
class Config:
    """Master config, instantiated once and passed around explicitly."""
    storage: StorageConfig = field(default_factory=StorageConfig)
    anthropic: AnthropicConfig = field(default_factory=AnthropicConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def __post_init__(self):
        """Fail fast on settings that would only blow up mid-request."""
        if self.storage.max_files < 1:
            raise ValueError(f"MAX_FILES must be >= 1, got {self.storage.max_files}")
        if self.storage.max_file_size_mb <= 0:
            raise ValueError(
                f"MAX_FILE_SIZE_MB must be positive, got {self.storage.max_file_size_mb}"
            )
        if self.anthropic.max_tokens <= 0:
            raise ValueError(
                f"ANTHROPIC_MAX_TOKENS must be positive, got {self.anthropic.max_tokens}"
            )
        if not self.anthropic.api_key:
            logger.warning(
                "ANTHROPIC_API_KEY is not set. Uploads and submissions "
                "will fail until it is configured."
            )


# Default instance for the CLI and the ASGI entry point. Library code takes
# a Config argument instead of importing this.
config = Config()
