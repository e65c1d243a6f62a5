"""Runtime settings read from environment variables."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional


DEFAULT_CORS_ORIGINS = "http://localhost:8080,http://127.0.0.1:8080"


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


@dataclass
class Settings:
    data_dir: Path = Path("/data")
    presets_file: Optional[Path] = None
    max_copies: int = 99
    max_upload_mb: int = 200
    cors_origins: List[str] = field(default_factory=lambda: DEFAULT_CORS_ORIGINS.split(","))
    log_level: str = "INFO"

    @property
    def presets_path(self) -> Path:
        return self.presets_file or (self.data_dir / "presets.json")

    @property
    def max_upload_bytes(self) -> int:
        return self.max_upload_mb * 1024 * 1024


def load_settings() -> Settings:
    """Build settings from PLATERUNNER_* environment variables."""
    data_dir = Path(os.getenv("PLATERUNNER_DATA_DIR", "/data"))
    presets_file = os.getenv("PLATERUNNER_PRESETS_FILE")
    origins = os.getenv("PLATERUNNER_CORS_ORIGINS", DEFAULT_CORS_ORIGINS)

    return Settings(
        data_dir=data_dir,
        presets_file=Path(presets_file) if presets_file else None,
        max_copies=max(1, _env_int("PLATERUNNER_MAX_COPIES", 99)),
        max_upload_mb=max(1, _env_int("PLATERUNNER_MAX_UPLOAD_MB", 200)),
        cors_origins=[o.strip() for o in origins.split(",") if o.strip()],
        log_level=os.getenv("PLATERUNNER_LOG_LEVEL", "INFO").upper(),
    )


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get settings, loading them from the environment on first use."""
    global _settings

    if _settings is None:
        _settings = load_settings()
    return _settings


def reset_settings():
    """Drop cached settings so the next get_settings() re-reads the environment."""
    global _settings
    _settings = None
