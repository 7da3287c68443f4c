"""Capability scanners - enumerate the automation surface of this machine."""

from capbroker.config import ScanConfig
from capbroker.models.execution import Platform
from capbroker.runtime.interpreter import InterpreterRunner
from .base import BaseScanner
from .macos import ScriptingDictionaryScanner, ShortcutScanner, parse_sdef
from .windows import CmdletScanner, ComObjectScanner


def default_scanners(
    platform: Platform,
    runner: InterpreterRunner,
    config: ScanConfig | None = None,
) -> list[BaseScanner]:
    """Build the scanner set for a platform.

    Platforms without a scriptable automation surface get no scanners; the
    UI automation tools are still available there.
    """
    config = config or ScanConfig()
    common = {
        "item_timeout": config.item_timeout,
        "scan_timeout": config.scan_timeout,
        "concurrency": config.concurrency,
    }

    if platform == Platform.MACOS:
        return [
            ScriptingDictionaryScanner(runner, application_dirs=config.application_dirs, **common),
            ShortcutScanner(runner, **common),
        ]
    if platform == Platform.WINDOWS:
        return [
            ComObjectScanner(runner, max_objects=config.max_com_objects, **common),
            CmdletScanner(runner, max_cmdlets=config.max_cmdlets, **common),
        ]
    return []


__all__ = [
    "BaseScanner",
    "ScriptingDictionaryScanner",
    "ShortcutScanner",
    "ComObjectScanner",
    "CmdletScanner",
    "default_scanners",
    "parse_sdef",
]
