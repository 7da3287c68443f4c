"""Interpreter runner - every external process the broker spawns goes through here.

This module handles:
- Bounding the number of concurrent interpreter processes
- Enforcing a deadline on every call
- Killing and reaping hung interpreters
- Turning launch failures into outcomes instead of exceptions
"""

import asyncio
import time
from dataclasses import dataclass, field

from capbroker.core.logging import get_logger

logger = get_logger("interpreter")

# Exit code reported when the executable itself could not be started
EXIT_NOT_FOUND = 127


@dataclass
class ProcessOutcome:
    """What happened when an interpreter was invoked."""
    argv: list[str]
    returncode: int | None
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False
    duration_ms: float = 0
    extra: dict = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and not self.timed_out

    @property
    def error_text(self) -> str:
        if self.timed_out:
            return f"{self.argv[0]} timed out after {self.duration_ms / 1000:.1f}s"
        text = self.stderr.strip() or self.stdout.strip()
        return text or f"{self.argv[0]} exited with code {self.returncode}"


class InterpreterRunner:
    """Runs short-lived interpreter processes with a deadline.

    Calls never raise for process-level problems; the caller inspects the
    returned ProcessOutcome. At most `max_concurrency` processes run at once.
    """

    def __init__(self, default_timeout: float = 30.0, max_concurrency: int = 8):
        self._default_timeout = default_timeout
        self._semaphore = asyncio.Semaphore(max_concurrency)

    @property
    def default_timeout(self) -> float:
        return self._default_timeout

    async def run(
        self,
        argv: list[str],
        input_text: str | None = None,
        timeout: float | None = None,
    ) -> ProcessOutcome:
        """Run `argv` and wait at most `timeout` seconds for it to finish.

        Args:
            argv: Executable followed by its arguments (no shell involved)
            input_text: Text written to the process's stdin, if any
            timeout: Deadline in seconds (default: runner's default)
        """
        deadline = timeout if timeout is not None else self._default_timeout

        async with self._semaphore:
            start = time.monotonic()
            try:
                process = await asyncio.create_subprocess_exec(
                    *argv,
                    stdin=asyncio.subprocess.PIPE if input_text is not None else asyncio.subprocess.DEVNULL,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                )
            except (FileNotFoundError, PermissionError, OSError) as e:
                logger.debug(f"Could not start {argv[0]}: {e}", component="interpreter")
                return ProcessOutcome(
                    argv=list(argv),
                    returncode=EXIT_NOT_FOUND,
                    stderr=f"Could not start {argv[0]}: {e}",
                )

            payload = input_text.encode("utf-8") if input_text is not None else None
            try:
                stdout, stderr = await asyncio.wait_for(
                    process.communicate(payload),
                    timeout=deadline
                )
            except asyncio.TimeoutError:
                await self._kill(process)
                duration = (time.monotonic() - start) * 1000
                logger.warning(
                    f"Interpreter timed out: {argv[0]}",
                    component="interpreter",
                    duration_ms=duration,
                )
                return ProcessOutcome(
                    argv=list(argv),
                    returncode=None,
                    timed_out=True,
                    duration_ms=duration,
                )
            except asyncio.CancelledError:
                await self._kill(process)
                raise

            duration = (time.monotonic() - start) * 1000
            return ProcessOutcome(
                argv=list(argv),
                returncode=process.returncode,
                stdout=stdout.decode("utf-8", errors="replace"),
                stderr=stderr.decode("utf-8", errors="replace"),
                duration_ms=duration,
            )

    @staticmethod
    async def _kill(process: asyncio.subprocess.Process) -> None:
        """Kill a child and reap it so no zombie is left behind."""
        if process.returncode is not None:
            return
        try:
            process.kill()
        except ProcessLookupError:
            return
        try:
            await asyncio.wait_for(process.wait(), timeout=1.0)
        except asyncio.TimeoutError:
            logger.error(f"Interpreter {process.pid} did not exit after kill", component="interpreter")


# Command lines for the platform interpreters. Scripts are passed on stdin
# (osascript, sh) or as a single -Command argument (PowerShell) so no shell
# quoting is ever involved.

OSASCRIPT = "osascript"
POWERSHELL = "powershell"
SHORTCUTS = "shortcuts"


def applescript_argv(*script_args: str) -> list[str]:
    """osascript reading the script from stdin; extra args reach `on run argv`."""
    return [OSASCRIPT, "-", *script_args]


def jxa_argv(*script_args: str) -> list[str]:
    return [OSASCRIPT, "-l", "JavaScript", "-", *script_args]


def powershell_argv(script: str) -> list[str]:
    return [POWERSHELL, "-NoProfile", "-NonInteractive", "-Command", script]


def posix_shell_argv(*script_args: str) -> list[str]:
    return ["/bin/sh", "-s", "--", *script_args]
