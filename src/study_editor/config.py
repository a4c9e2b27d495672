"""Environment-driven configuration for the mutation engine and its stores."""

from __future__ import annotations

import os
from dataclasses import dataclass, field

_TRUTHY = {"1", "true", "yes", "on"}


def _env(key: str, default: str = "") -> str:
    """Return an environment variable or the given default."""
    return os.environ.get(key, default)


def _env_int(key: str, default: int) -> int:
    raw = _env(key)
    return int(raw) if raw else default


def _env_float(key: str, default: float) -> float:
    raw = _env(key)
    return float(raw) if raw else default


def _env_bool(key: str, *, default: bool) -> bool:
    raw = _env(key)
    return raw.lower() in _TRUTHY if raw else default


@dataclass(frozen=True)
class AppConfig:
    env: str = field(default_factory=lambda: _env("APP_ENV", "development"))
    log_level: str = field(default_factory=lambda: _env("LOG_LEVEL", "INFO"))

    @property
    def is_development(self) -> bool:
        return self.env == "development"


@dataclass(frozen=True)
class StorageConfig:
    backend: str = field(default_factory=lambda: _env("STORAGE_BACKEND", "filesystem"))
    data_dir: str = field(
        default_factory=lambda: _env("STORAGE_DATA_DIR", "./data/study-materials")
    )
    history_limit: int = field(
        default_factory=lambda: _env_int("STORAGE_HISTORY_LIMIT", 100)
    )


@dataclass(frozen=True)
class CosmosConfig:
    endpoint: str = field(default_factory=lambda: _env("AZURE_COSMOS_ENDPOINT"))
    key: str = field(default_factory=lambda: _env("AZURE_COSMOS_KEY"))
    database: str = field(
        default_factory=lambda: _env("AZURE_COSMOS_DATABASE", "study-editor")
    )
    provision: bool = field(
        default_factory=lambda: _env_bool("AZURE_COSMOS_PROVISION", default=False)
    )


@dataclass(frozen=True)
class EngineConfig:
    """Limits enforced by the validator and the recovery handler."""

    max_sections: int = field(default_factory=lambda: _env_int("ENGINE_MAX_SECTIONS", 100))
    large_content_chars: int = field(
        default_factory=lambda: _env_int("ENGINE_LARGE_CONTENT_CHARS", 10_000)
    )
    max_attempts: int = field(default_factory=lambda: _env_int("ENGINE_MAX_ATTEMPTS", 3))
    retry_base_delay: float = field(
        default_factory=lambda: _env_float("ENGINE_RETRY_BASE_DELAY", 0.05)
    )
    detect_cycles: bool = field(
        default_factory=lambda: _env_bool("ENGINE_DETECT_CYCLES", default=True)
    )


@dataclass(frozen=True)
class Settings:
    app: AppConfig = field(default_factory=AppConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    cosmos: CosmosConfig = field(default_factory=CosmosConfig)
    engine: EngineConfig = field(default_factory=EngineConfig)


def load_settings() -> Settings:
    """Build settings from the current process environment."""
    return Settings()
