"""Backend dispatch - turns a Tool plus arguments into an interpreter call.

There is exactly one handler per ExecKind. The dispatcher refuses to
construct if a kind has no handler, so adding a backend without wiring it
fails immediately instead of falling through at run time.
"""

import os
import re
import tempfile
import time
from typing import Any, Awaitable, Callable

from capbroker.adapters.base import BaseUIAdapter, UIElement
from capbroker.cache.store import ScriptCacheStore
from capbroker.core.errors import BrokerError, CacheStoreError, ExecutionFailure
from capbroker.core.logging import get_logger
from capbroker.models.execution import ExecutionContext, ExecutionResult
from capbroker.models.tool import (
    AppleScriptCommand,
    ComObject,
    ExecKind,
    GeneratedScript,
    PowerShellCmdlet,
    Shortcut,
    Tool,
    UIAction,
)
from .interpreter import SHORTCUTS, InterpreterRunner, applescript_argv, powershell_argv
from .literals import applescript_literal, applescript_string, powershell_arguments, powershell_literal, powershell_string
from .scripts import ScriptExecutor, outcome_to_result

logger = get_logger("dispatch")

Handler = Callable[[Tool, Any, dict[str, Any], ExecutionContext], Awaitable[ExecutionResult]]

DIRECT_PARAMETER = "direct"

_BUNDLE_ID = re.compile(r"^[A-Za-z0-9-]+(\.[A-Za-z0-9-]+)+$")
_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_PARAMETER_LABEL = re.compile(r"[A-Za-z][A-Za-z ]*")


def build_applescript_command(descriptor: AppleScriptCommand, arguments: dict[str, Any]) -> str:
    """Build a minimal script invoking an app's verb.

    The direct parameter goes right after the verb; every other argument
    becomes a labeled parameter. Labels must be plain words.
    """
    target = descriptor.app_or_bundle
    if _BUNDLE_ID.match(target):
        app_ref = f"application id {applescript_string(target)}"
    else:
        app_ref = f"application {applescript_string(target)}"

    parts = [descriptor.verb]
    if arguments.get(DIRECT_PARAMETER) is not None:
        parts.append(applescript_literal(arguments[DIRECT_PARAMETER]))
    for label, value in arguments.items():
        if label == DIRECT_PARAMETER or value is None:
            continue
        if not _PARAMETER_LABEL.fullmatch(label):
            raise ExecutionFailure(f"Invalid parameter label: {label!r}", backend="appleScriptCommand")
        parts.append(f"{label} {applescript_literal(value)}")

    return f"tell {app_ref}\n    {' '.join(parts)}\nend tell"


def build_com_script(descriptor: ComObject, arguments: dict[str, Any]) -> str:
    """Build a host script that instantiates a COM object and calls one method."""
    if not _IDENTIFIER.match(descriptor.method):
        raise ExecutionFailure(f"Invalid COM method name: {descriptor.method}", backend="comObject")

    call_args = arguments.get("args")
    if call_args is None:
        call_args = list(arguments.values())
    elif not isinstance(call_args, (list, tuple)):
        call_args = [call_args]

    rendered = ", ".join(powershell_literal(a) for a in call_args)
    return (
        "$ErrorActionPreference = 'Stop'\n"
        f"$obj = New-Object -ComObject {powershell_string(descriptor.prog_id)}\n"
        f"$result = $obj.{descriptor.method}({rendered})\n"
        "if ($null -ne $result) { $result | Out-String -Width 4096 }"
    )


def build_cmdlet_command(descriptor: PowerShellCmdlet, arguments: dict[str, Any]) -> str:
    """Invoke a cmdlet with flag-style arguments.

    Arguments are taken from a `parameters` object when present, otherwise
    every argument is passed as a flag.
    """
    params = arguments.get("parameters")
    if not isinstance(params, dict):
        params = arguments
    if not _IDENTIFIER.match(descriptor.name.replace("-", "_")):
        raise ExecutionFailure(f"Invalid cmdlet name: {descriptor.name}", backend="powerShellCmdlet")

    command = f"{descriptor.name} {powershell_arguments(params)}".rstrip()
    return f"$ErrorActionPreference = 'Stop'\n{command} | Out-String -Width 4096"


class BackendDispatcher:
    """Runs a Tool on the backend its exec descriptor names."""

    def __init__(
        self,
        runner: InterpreterRunner,
        ui_adapter: BaseUIAdapter,
        cache: ScriptCacheStore,
        script_executor: ScriptExecutor,
    ):
        self._runner = runner
        self._ui = ui_adapter
        self._cache = cache
        self._scripts = script_executor

        self._handlers: dict[ExecKind, Handler] = {
            ExecKind.APPLESCRIPT_COMMAND: self._run_applescript_command,
            ExecKind.SHORTCUT: self._run_shortcut,
            ExecKind.COM_OBJECT: self._run_com_object,
            ExecKind.POWERSHELL_CMDLET: self._run_cmdlet,
            ExecKind.UI_ACTION: self._run_ui_action,
            ExecKind.GENERATED_SCRIPT: self._run_generated_script,
        }
        missing = set(ExecKind) - set(self._handlers)
        if missing:
            raise NotImplementedError(f"No dispatch handler for: {sorted(k.value for k in missing)}")

    @property
    def handled_kinds(self) -> set[ExecKind]:
        return set(self._handlers)

    async def dispatch(
        self,
        tool: Tool,
        arguments: dict[str, Any],
        context: ExecutionContext,
    ) -> ExecutionResult:
        """Execute `tool`. Backend failures come back as failed results."""
        handler = self._handlers[tool.kind]
        start = time.monotonic()

        try:
            result = await handler(tool, tool.exec_descriptor, arguments, context)
        except BrokerError as e:
            result = ExecutionResult.fail(e.message, backend=tool.kind.value)
        except Exception as e:
            logger.error(f"Backend crashed running {tool.name}: {type(e).__name__}: {e}",
                         component="dispatch", tool=tool.name, backend=tool.kind.value)
            result = ExecutionResult.fail(f"{type(e).__name__}: {e}", backend=tool.kind.value)

        duration = (time.monotonic() - start) * 1000
        result.metadata.setdefault("backend", tool.kind.value)
        result.metadata.setdefault("tool", tool.name)
        logger.tool_executed(tool.name, tool.kind.value, result.success, duration)
        return result

    async def _run_applescript_command(
        self, tool: Tool, descriptor: AppleScriptCommand, arguments: dict[str, Any], context: ExecutionContext
    ) -> ExecutionResult:
        script = build_applescript_command(descriptor, arguments)
        outcome = await self._runner.run(applescript_argv(), input_text=script)
        return outcome_to_result(outcome, app=descriptor.app_or_bundle, verb=descriptor.verb)

    async def _run_shortcut(
        self, tool: Tool, descriptor: Shortcut, arguments: dict[str, Any], context: ExecutionContext
    ) -> ExecutionResult:
        argv = [SHORTCUTS, "run", descriptor.name]
        text = arguments.get("input")
        input_path = None

        if text is not None and text != "":
            fd, input_path = tempfile.mkstemp(prefix="capbroker-", suffix=".txt")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(str(text))
            argv += ["--input-path", input_path]

        try:
            outcome = await self._runner.run(argv)
        finally:
            if input_path:
                os.unlink(input_path)
        return outcome_to_result(outcome, shortcut=descriptor.name)

    async def _run_com_object(
        self, tool: Tool, descriptor: ComObject, arguments: dict[str, Any], context: ExecutionContext
    ) -> ExecutionResult:
        script = build_com_script(descriptor, arguments)
        outcome = await self._runner.run(powershell_argv(script))
        return outcome_to_result(outcome, prog_id=descriptor.prog_id, method=descriptor.method)

    async def _run_cmdlet(
        self, tool: Tool, descriptor: PowerShellCmdlet, arguments: dict[str, Any], context: ExecutionContext
    ) -> ExecutionResult:
        script = build_cmdlet_command(descriptor, arguments)
        outcome = await self._runner.run(powershell_argv(script))
        return outcome_to_result(outcome, cmdlet=descriptor.name)

    async def _run_ui_action(
        self, tool: Tool, descriptor: UIAction, arguments: dict[str, Any], context: ExecutionContext
    ) -> ExecutionResult:
        if descriptor.action == "click":
            clicked = await self._ui.click(UIElement.from_arguments(arguments))
            if clicked.success:
                return ExecutionResult.ok(clicked.message, element_found=clicked.element_found)
            return ExecutionResult.fail(clicked.message, element_found=clicked.element_found)

        text = str(arguments.get("text", ""))
        element = UIElement.from_arguments(arguments) if arguments.get("title") else None
        typed = await self._ui.type_text(text, element)
        if typed.success:
            return ExecutionResult.ok(typed.message, characters_typed=typed.characters_typed)
        return ExecutionResult.fail(typed.message, characters_typed=typed.characters_typed)

    async def _run_generated_script(
        self, tool: Tool, descriptor: GeneratedScript, arguments: dict[str, Any], context: ExecutionContext
    ) -> ExecutionResult:
        script = await self._cache.get(descriptor.cache_id)
        if script is None:
            return ExecutionResult.fail(
                f"Cached script {descriptor.cache_id} no longer exists",
                script_id=descriptor.cache_id,
            )

        result = await self._scripts.execute(script, arguments)
        try:
            if result.success:
                await self._cache.record_success(script.id)
            else:
                await self._cache.record_failure(script.id)
        except CacheStoreError as e:
            logger.error(f"Could not record execution of {script.id}: {e.message}",
                         component="dispatch", cache_id=script.id)
        return result
