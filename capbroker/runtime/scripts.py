"""Running cached scripts through the interpreter that matches their language."""

import json
from typing import Any

from capbroker.models.execution import ExecutionResult, Platform
from capbroker.models.script import CachedScript
from capbroker.models.tool import ScriptLanguage
from .interpreter import (
    InterpreterRunner,
    ProcessOutcome,
    applescript_argv,
    jxa_argv,
    posix_shell_argv,
    powershell_argv,
)
from .literals import powershell_arguments


def positional_arguments(script: CachedScript, arguments: dict[str, Any]) -> list[str]:
    """Order arguments by the script's parameter schema for `argv`-style scripts.

    Missing parameters become empty strings so positions stay stable.
    """
    names = list(script.parameters) or list(arguments)
    return [_as_text(arguments.get(name, "")) for name in names]


def _as_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return ""
    if isinstance(value, (int, float)):
        return str(value)
    return json.dumps(value)


class ScriptExecutor:
    """Runs a CachedScript with arguments.

    - appleScript: osascript, arguments reach `on run argv` in schema order
    - powerShell: the script as a script block, arguments as named parameters
    - genericScript: JavaScript for Automation on macOS, PowerShell on
      Windows, POSIX sh elsewhere
    """

    def __init__(self, runner: InterpreterRunner, platform: Platform):
        self._runner = runner
        self._platform = platform

    def command_for(self, script: CachedScript, arguments: dict[str, Any]) -> tuple[list[str], str | None]:
        """Build (argv, stdin) for a script."""
        language = script.language
        if language == ScriptLanguage.GENERIC:
            if self._platform == Platform.MACOS:
                return jxa_argv(*positional_arguments(script, arguments)), script.script
            if self._platform == Platform.WINDOWS:
                language = ScriptLanguage.POWERSHELL
            else:
                return posix_shell_argv(*positional_arguments(script, arguments)), script.script

        if language == ScriptLanguage.APPLESCRIPT:
            return applescript_argv(*positional_arguments(script, arguments)), script.script

        named = powershell_arguments(arguments)
        block = f"& {{\n{script.script}\n}} {named}".rstrip()
        return powershell_argv(block), None

    async def execute(self, script: CachedScript, arguments: dict[str, Any]) -> ExecutionResult:
        argv, stdin = self.command_for(script, arguments)
        outcome = await self._runner.run(argv, input_text=stdin)
        return outcome_to_result(
            outcome,
            backend="generatedScript",
            script_id=script.id,
            language=script.language.value,
        )


def outcome_to_result(outcome: ProcessOutcome, **metadata: Any) -> ExecutionResult:
    """Convert an interpreter outcome into an ExecutionResult."""
    metadata["exit_code"] = outcome.returncode
    metadata["duration_ms"] = round(outcome.duration_ms, 1)
    if outcome.ok:
        return ExecutionResult.ok(outcome.stdout.strip(), **metadata)
    if outcome.timed_out:
        metadata["timed_out"] = True
    return ExecutionResult.fail(outcome.error_text, output=outcome.stdout.strip(), **metadata)
