"""Windows scanners: registered COM classes and PowerShell cmdlets."""

from capbroker.core.errors import ScanError
from capbroker.core.logging import get_logger
from capbroker.models.tool import ComObject, ParameterSpec, PowerShellCmdlet, Tool
from capbroker.runtime.interpreter import InterpreterRunner, powershell_argv
from capbroker.runtime.literals import powershell_string, slugify
from .base import BaseScanner

logger = get_logger("scanner.windows")


def _output_lines(text: str) -> list[str]:
    return [line.strip() for line in text.splitlines() if line.strip()]


class ComObjectScanner(BaseScanner):
    """Enumerates registered ProgIDs and reflects over their methods.

    Most classes cannot be instantiated outside their native host; those
    fail individually and contribute nothing.
    """

    name = "com"

    LIST_PROG_IDS = (
        "Get-ChildItem -Path 'Registry::HKEY_CLASSES_ROOT' -ErrorAction SilentlyContinue | "
        "Where-Object {{ $_.PSChildName -match '^[A-Za-z][A-Za-z0-9_]*\\.[A-Za-z0-9_.]+$' -and "
        "(Test-Path -LiteralPath (Join-Path $_.PSPath 'CLSID')) }} | "
        "Select-Object -First {limit} | "
        "ForEach-Object {{ $_.PSChildName }}"
    )

    LIST_METHODS = (
        "$ErrorActionPreference = 'Stop'; "
        "$obj = New-Object -ComObject {prog_id}; "
        "$obj | Get-Member -MemberType Method | "
        "Where-Object {{ $_.Name -notmatch '^_' }} | "
        "ForEach-Object {{ $_.Name }}"
    )

    def __init__(self, runner: InterpreterRunner, max_objects: int = 50, **kwargs):
        super().__init__(runner, **kwargs)
        self._max_objects = max_objects

    async def list_prog_ids(self) -> list[str]:
        script = self.LIST_PROG_IDS.format(limit=self._max_objects)
        outcome = await self._runner.run(powershell_argv(script), timeout=self._item_timeout)
        if not outcome.ok:
            raise ScanError(f"ProgID query failed: {outcome.error_text}", scanner=self.name)
        return _output_lines(outcome.stdout)[: self._max_objects]

    async def discover(self) -> list[Tool]:
        prog_ids = await self.list_prog_ids()
        return await self._gather_items(prog_ids, self._reflect)

    async def _reflect(self, prog_id: str) -> list[Tool]:
        script = self.LIST_METHODS.format(prog_id=powershell_string(prog_id))
        outcome = await self._runner.run(powershell_argv(script), timeout=self._item_timeout)
        if not outcome.ok:
            raise ScanError(outcome.error_text, scanner=self.name, item=prog_id)

        tools = []
        for method in dict.fromkeys(_output_lines(outcome.stdout)):
            tools.append(Tool(
                name=f"com_{slugify(prog_id)}_{slugify(method)}",
                description=f"COM method {method} on {prog_id}",
                parameter_schema={
                    "args": ParameterSpec(
                        type="array",
                        description="Arguments to pass to the COM method",
                        required=False,
                    )
                },
                exec_descriptor=ComObject(prog_id=prog_id, method=method),
            ))
        return tools


class CmdletScanner(BaseScanner):
    """Enumerates the cmdlets available to the PowerShell host."""

    name = "powershell"

    LIST_CMDLETS = (
        "Get-Command -CommandType Cmdlet | "
        "Where-Object {{ $_.Name -notmatch '^_' }} | "
        "Select-Object -First {limit} | "
        "ForEach-Object {{ $_.Name }}"
    )

    def __init__(self, runner: InterpreterRunner, max_cmdlets: int = 100, **kwargs):
        super().__init__(runner, **kwargs)
        self._max_cmdlets = max_cmdlets

    async def discover(self) -> list[Tool]:
        script = self.LIST_CMDLETS.format(limit=self._max_cmdlets)
        outcome = await self._runner.run(powershell_argv(script), timeout=self._item_timeout)
        if not outcome.ok:
            logger.debug(f"Cmdlet listing failed: {outcome.error_text}", component="scanner")
            return []

        tools = []
        for cmdlet in dict.fromkeys(_output_lines(outcome.stdout)[: self._max_cmdlets]):
            tools.append(Tool(
                name=f"ps_{slugify(cmdlet)}",
                description=f"PowerShell cmdlet: {cmdlet}",
                parameter_schema={
                    "parameters": ParameterSpec(
                        type="object",
                        description="Parameters to pass to the cmdlet",
                        required=False,
                    )
                },
                exec_descriptor=PowerShellCmdlet(name=cmdlet),
            ))
        return tools
