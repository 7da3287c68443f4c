"""Core package - errors, logging and the generation client."""

from .errors import (
    BrokerError,
    CacheStoreError,
    ConfigError,
    ExecutionFailure,
    ResolutionMiss,
    ScanError,
    SynthesisFailure,
)
from .logging import get_logger, setup_logging
from .gemini_client import GeminiClient

__all__ = [
    "BrokerError",
    "CacheStoreError",
    "ConfigError",
    "ExecutionFailure",
    "ResolutionMiss",
    "ScanError",
    "SynthesisFailure",
    "get_logger",
    "setup_logging",
    "GeminiClient",
]
