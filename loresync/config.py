"""Application configuration loaded from environment variables."""

from __future__ import annotations

from pathlib import Path
from urllib.parse import urlparse

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

SOURCES_FILENAME = "sync-sources.toml"
STATUS_FILENAME = "status.json"
DATABASE_FILENAME = "loresync.db"


class Settings(BaseSettings):
    """loresync settings."""

    model_config = SettingsConfigDict(
        env_prefix="LORESYNC_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Core
    debug: bool = False

    # Paths
    data_dir: Path = Path("~/.loresync/data")
    config_dir: Path = Path("~/.config/loresync")

    # Database (derived from config_dir when empty)
    database_url: str = ""

    # Watch scheduler
    debounce_seconds: float = Field(default=2.0, gt=0)
    pull_interval_seconds: float = Field(default=300.0, gt=0)
    force_polling: bool = False

    # Embedding endpoint (OpenAI-compatible /embeddings)
    embedding_url: str = "http://localhost:8080/v1/embeddings"
    embedding_model: str = "text-embedding-3-small"
    embedding_api_key: str = ""
    embedding_timeout_seconds: float = Field(default=30.0, gt=0)

    # Ingestion
    summary_max_chars: int = Field(default=500, ge=50)

    # Control API
    host: str = "127.0.0.1"
    port: int = Field(default=8765, ge=1, le=65535)

    @field_validator("data_dir", "config_dir", mode="after")
    @classmethod
    def _expand_home(cls, value: Path) -> Path:
        return value.expanduser()

    @model_validator(mode="after")
    def _derive_database_url(self) -> Settings:
        if not self.database_url:
            self.database_url = f"sqlite+aiosqlite:///{self.config_dir / DATABASE_FILENAME}"
        return self

    @property
    def sources_file(self) -> Path:
        return self.config_dir / SOURCES_FILENAME

    @property
    def status_file(self) -> Path:
        return self.config_dir / STATUS_FILENAME

    @property
    def database_path(self) -> Path | None:
        """Filesystem path of the SQLite database, or None for other backends."""
        if not self.database_url.startswith("sqlite") or "///" not in self.database_url:
            return None
        return Path(self.database_url.split("///", 1)[-1])

    def validate_runtime(self) -> None:
        """Validate settings that would otherwise fail deep inside a sync run."""
        violations: list[str] = []
        if self.data_dir.resolve() == self.config_dir.resolve():
            violations.append("DATA_DIR and CONFIG_DIR must be different directories")
        parsed = urlparse(self.embedding_url)
        if parsed.scheme not in {"http", "https"} or not parsed.netloc:
            violations.append("EMBEDDING_URL must include scheme and host")

        if violations:
            joined = "; ".join(violations)
            raise ValueError(f"Invalid configuration: {joined}")
