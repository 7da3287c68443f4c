"""Centralized configuration for the capability broker.

This module provides typed, validated configuration loaded from
environment variables and .env files.
"""

import os
from datetime import timedelta
from pathlib import Path
from dataclasses import dataclass, field
from typing import Optional
from dotenv import load_dotenv

# Load .env file if it exists
load_dotenv()


def _env_list(name: str, default: list[str]) -> list[str]:
    raw = os.getenv(name)
    if not raw:
        return list(default)
    return [part for part in raw.split(os.pathsep) if part]


@dataclass
class APIConfig:
    """Generation service configuration."""
    gemini_api_key: str = ""
    gemini_model: str = "gemini-2.0-flash"

    def __post_init__(self):
        if not self.gemini_api_key:
            self.gemini_api_key = os.getenv("GEMINI_API_KEY", "")
        self.gemini_model = os.getenv("CAPBROKER_GEMINI_MODEL", self.gemini_model)


@dataclass
class ExecutionConfig:
    """External interpreter configuration."""
    interpreter_timeout: float = 30.0
    max_concurrency: int = 8

    def __post_init__(self):
        self.interpreter_timeout = float(os.getenv("CAPBROKER_TIMEOUT", self.interpreter_timeout))
        self.max_concurrency = int(os.getenv("CAPBROKER_MAX_PROCESSES", self.max_concurrency))


@dataclass
class ScanConfig:
    """Capability scanning configuration."""
    item_timeout: float = 15.0
    scan_timeout: float = 120.0
    concurrency: int = 8
    application_dirs: list[str] = field(
        default_factory=lambda: ["/Applications", "/System/Applications"]
    )
    max_com_objects: int = 50
    max_cmdlets: int = 100

    def __post_init__(self):
        self.item_timeout = float(os.getenv("CAPBROKER_SCAN_ITEM_TIMEOUT", self.item_timeout))
        self.scan_timeout = float(os.getenv("CAPBROKER_SCAN_TIMEOUT", self.scan_timeout))
        self.concurrency = int(os.getenv("CAPBROKER_SCAN_CONCURRENCY", self.concurrency))
        self.application_dirs = _env_list("CAPBROKER_APPLICATION_DIRS", self.application_dirs)
        self.max_com_objects = int(os.getenv("CAPBROKER_MAX_COM_OBJECTS", self.max_com_objects))
        self.max_cmdlets = int(os.getenv("CAPBROKER_MAX_CMDLETS", self.max_cmdlets))


@dataclass
class CacheConfig:
    """Script cache eviction thresholds."""
    max_age_days: float = 30.0
    max_failure_rate: float = 0.8
    min_samples: int = 3

    def __post_init__(self):
        self.max_age_days = float(os.getenv("CAPBROKER_CACHE_MAX_AGE_DAYS", self.max_age_days))
        self.max_failure_rate = float(os.getenv("CAPBROKER_CACHE_MAX_FAILURE_RATE", self.max_failure_rate))
        self.min_samples = int(os.getenv("CAPBROKER_CACHE_MIN_SAMPLES", self.min_samples))

    @property
    def max_age(self) -> timedelta:
        return timedelta(days=self.max_age_days)


@dataclass
class PathConfig:
    """Path configuration."""
    data_dir: Path = field(default_factory=lambda: Path.home() / ".capbroker")
    cache_db: Optional[Path] = None
    logs_dir: Optional[Path] = None

    def __post_init__(self):
        base = os.getenv("CAPBROKER_DATA_DIR")
        if base:
            self.data_dir = Path(base)
        self.cache_db = self.cache_db or self.data_dir / "script_cache.db"
        self.logs_dir = self.logs_dir or self.data_dir / "logs"

        # Ensure directories exist
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.logs_dir.mkdir(parents=True, exist_ok=True)


@dataclass
class LogConfig:
    """Logging configuration."""
    level: str = "INFO"
    format: str = "text"  # "json" or "text"
    file_enabled: bool = True
    console_enabled: bool = True

    def __post_init__(self):
        self.level = os.getenv("CAPBROKER_LOG_LEVEL", self.level).upper()
        self.format = os.getenv("CAPBROKER_LOG_FORMAT", self.format).lower()
        self.file_enabled = os.getenv("CAPBROKER_LOG_FILE", "true").lower() == "true"
        self.console_enabled = os.getenv("CAPBROKER_LOG_CONSOLE", "true").lower() == "true"


@dataclass
class Config:
    """Main configuration container."""
    api: APIConfig = field(default_factory=APIConfig)
    execution: ExecutionConfig = field(default_factory=ExecutionConfig)
    scan: ScanConfig = field(default_factory=ScanConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    paths: PathConfig = field(default_factory=PathConfig)
    log: LogConfig = field(default_factory=LogConfig)

    def validate(self) -> list[str]:
        """Validate configuration and return list of issues."""
        issues = []

        if self.execution.interpreter_timeout <= 0:
            issues.append("interpreter_timeout must be positive")

        if self.execution.max_concurrency < 1:
            issues.append("max_concurrency must be at least 1")

        if self.scan.item_timeout <= 0 or self.scan.scan_timeout <= 0:
            issues.append("scan timeouts must be positive")

        if self.scan.concurrency < 1:
            issues.append("scan concurrency must be at least 1")

        if not 0.0 <= self.cache.max_failure_rate <= 1.0:
            issues.append("max_failure_rate must be between 0 and 1")

        if self.cache.max_age_days <= 0:
            issues.append("max_age_days must be positive")

        if self.cache.min_samples < 1:
            issues.append("min_samples must be at least 1")

        if self.log.format not in ("json", "text"):
            issues.append(f"Unknown log format: {self.log.format}")

        return issues

    def is_valid(self) -> bool:
        """Check if configuration is valid."""
        return len(self.validate()) == 0


# Global configuration instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = Config()
    return _config


def reset_config() -> None:
    """Reset the global configuration (useful for testing)."""
    global _config
    _config = None
