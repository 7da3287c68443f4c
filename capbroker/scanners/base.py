"""Base scanner interface.

Scanners enumerate the automation surface that exists on this machine right
now and translate it into Tool descriptors. They are:
- Tolerant: one bad item is logged and skipped, never fatal
- Bounded: every interpreter call carries a deadline, and so does the scan
- Deterministic: the same machine state always yields the same tool names
"""

import asyncio
import time
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Iterable, TypeVar

from capbroker.core.errors import ScanError
from capbroker.core.logging import get_logger
from capbroker.models.tool import Tool
from capbroker.runtime.interpreter import InterpreterRunner

T = TypeVar("T")

logger = get_logger("scanner")


class BaseScanner(ABC):
    """Abstract base class for capability scanners."""

    name: str = "scanner"

    def __init__(
        self,
        runner: InterpreterRunner,
        item_timeout: float = 15.0,
        scan_timeout: float = 120.0,
        concurrency: int = 8,
    ):
        self._runner = runner
        self._item_timeout = item_timeout
        self._scan_timeout = scan_timeout
        self._concurrency = concurrency

    @abstractmethod
    async def discover(self) -> list[Tool]:
        """Enumerate tools. May raise; `scan()` absorbs the error."""
        pass

    async def scan(self) -> list[Tool]:
        """Run discovery and never raise.

        Returns:
            Discovered tools (an empty list is a valid outcome)
        """
        start = time.monotonic()
        try:
            tools = await self.discover()
        except Exception as e:
            logger.warning(f"Scanner {self.name} failed: {e}", component="scanner")
            tools = []
        self._log_completed(tools, start)
        return tools

    def _log_completed(self, tools: list[Tool], start: float) -> None:
        duration = (time.monotonic() - start) * 1000
        logger.scan_completed(self.name, len(tools), duration)

    async def _gather_items(
        self,
        items: Iterable[T],
        worker: Callable[[T], Awaitable[list[Tool]]],
    ) -> list[Tool]:
        """Run `worker` over `items` concurrently and join with a bounded wait.

        Per-item failures are logged and skipped. Items still running when
        the scan deadline passes are cancelled and contribute nothing.
        Results keep the input order.
        """
        semaphore = asyncio.Semaphore(self._concurrency)
        items = list(items)

        async def guarded(item: T) -> list[Tool]:
            async with semaphore:
                try:
                    return await worker(item)
                except ScanError as e:
                    logger.debug(f"Skipping {e.item or item}: {e.message}", component="scanner")
                except Exception as e:
                    logger.debug(f"Skipping {item}: {type(e).__name__}: {e}", component="scanner")
                return []

        tasks = [asyncio.create_task(guarded(item)) for item in items]
        if not tasks:
            return []

        done, pending = await asyncio.wait(tasks, timeout=self._scan_timeout)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
            logger.warning(
                f"Scanner {self.name} abandoned {len(pending)} of {len(tasks)} items at the scan deadline",
                component="scanner",
            )

        tools: list[Tool] = []
        for task in tasks:
            if task in done:
                tools.extend(task.result())
        return tools
