"""Execution context and result models."""

import sys
from enum import Enum
from typing import Any
from pydantic import BaseModel, ConfigDict, Field


class Platform(str, Enum):
    """Host platforms the broker knows how to automate."""
    MACOS = "macos"
    WINDOWS = "windows"
    LINUX = "linux"


def detect_platform(name: str | None = None) -> Platform:
    """Map a `sys.platform` value to a Platform."""
    name = name or sys.platform
    if name == "darwin":
        return Platform.MACOS
    if name.startswith("win"):
        return Platform.WINDOWS
    return Platform.LINUX


class ExecutionContext(BaseModel):
    """Read-only per-call context. Never persisted."""
    model_config = ConfigDict(frozen=True)

    platform: Platform = Field(default_factory=detect_platform)
    front_app: str | None = None
    clipboard: str | None = None
    screen_text: str | None = None
    user_request: str | None = None


class ExecutionResult(BaseModel):
    """Result of running a tool. Always a value, never an exception."""
    success: bool
    output: str = ""
    error: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def ok(cls, output: str, **metadata: Any) -> "ExecutionResult":
        return cls(success=True, output=output, metadata=metadata)

    @classmethod
    def fail(cls, error: str, output: str = "", **metadata: Any) -> "ExecutionResult":
        return cls(success=False, output=output, error=error, metadata=metadata)
