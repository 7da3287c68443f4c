"""Data models for the capability broker."""

from .tool import (
    AppleScriptCommand,
    ComObject,
    ExecDescriptor,
    ExecKind,
    GeneratedScript,
    ParameterSpec,
    PowerShellCmdlet,
    ScriptLanguage,
    Shortcut,
    Tool,
    UIAction,
)
from .script import CachedScript, ScriptProvenance
from .execution import ExecutionContext, ExecutionResult, Platform, detect_platform

__all__ = [
    "AppleScriptCommand",
    "ComObject",
    "ExecDescriptor",
    "ExecKind",
    "GeneratedScript",
    "ParameterSpec",
    "PowerShellCmdlet",
    "ScriptLanguage",
    "Shortcut",
    "Tool",
    "UIAction",
    "CachedScript",
    "ScriptProvenance",
    "ExecutionContext",
    "ExecutionResult",
    "Platform",
    "detect_platform",
]
