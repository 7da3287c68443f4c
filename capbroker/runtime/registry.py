"""Dynamic capability registry - the broker's orchestrator.

Owns the live catalog (scanner output + UI automation tools + trusted
cached scripts), resolves requests by name, dispatches hits to their
backend and sends misses to the synthesizer, then the negotiator.

Resolution blocks until the initial scan has settled. A refresh builds
the new catalog off to the side and swaps it in at once, so requests
arriving during a refresh are served from the previous catalog.
"""

import asyncio
import time
from collections import Counter
from typing import Any, Optional

from capbroker.adapters.base import BaseUIAdapter, ui_tools
from capbroker.adapters.uia import create_ui_adapter
from capbroker.cache.store import ScriptCacheStore
from capbroker.config import CacheConfig, Config, get_config
from capbroker.core.errors import CacheStoreError, ResolutionMiss, SynthesisFailure
from capbroker.core.logging import get_logger
from capbroker.models.execution import ExecutionContext, ExecutionResult, Platform, detect_platform
from capbroker.models.tool import Tool
from capbroker.scanners import default_scanners
from capbroker.scanners.base import BaseScanner
from capbroker.synthesis.synthesizer import ScriptSynthesizer, SynthesisRequest, TextGenerator
from .dispatch import BackendDispatcher
from .interpreter import InterpreterRunner
from .negotiator import FallbackNegotiator, NegotiationRequest
from .scripts import ScriptExecutor

logger = get_logger("registry")


class DynamicCapabilityRegistry:
    """Resolves and executes named capabilities.

    Construct with `create()` for a fully wired instance, or pass the
    collaborators explicitly.
    """

    def __init__(
        self,
        platform: Platform,
        scanners: list[BaseScanner],
        ui_adapter: BaseUIAdapter,
        cache: ScriptCacheStore,
        synthesizer: ScriptSynthesizer,
        negotiator: FallbackNegotiator,
        dispatcher: BackendDispatcher,
        cache_config: Optional[CacheConfig] = None,
    ):
        self._platform = platform
        self._scanners = scanners
        self._ui = ui_adapter
        self._cache = cache
        self._synthesizer = synthesizer
        self._negotiator = negotiator
        self._dispatcher = dispatcher
        self._cache_config = cache_config or CacheConfig()

        self._catalog: dict[str, Tool] = {}
        self._scan_lock = asyncio.Lock()
        self._initialized = False

    @classmethod
    def create(
        cls,
        config: Optional[Config] = None,
        generator: Optional[TextGenerator] = None,
        platform: Optional[Platform] = None,
        runner: Optional[InterpreterRunner] = None,
        scanners: Optional[list[BaseScanner]] = None,
    ) -> "DynamicCapabilityRegistry":
        """Wire a registry from configuration.

        Args:
            config: Configuration (default: global config)
            generator: Text generation collaborator; None means templates only
            platform: Host platform (default: detected)
            runner: Interpreter runner (default: one built from config)
            scanners: Scanner set (default: the platform's scanners)
        """
        config = config or get_config()
        platform = platform or detect_platform()
        runner = runner or InterpreterRunner(
            default_timeout=config.execution.interpreter_timeout,
            max_concurrency=config.execution.max_concurrency,
        )

        cache = ScriptCacheStore(config.paths.cache_db, min_samples=config.cache.min_samples)
        ui_adapter = create_ui_adapter(platform, runner)
        executor = ScriptExecutor(runner, platform)

        if scanners is None:
            scanners = default_scanners(platform, runner, config.scan)

        return cls(
            platform=platform,
            scanners=scanners,
            ui_adapter=ui_adapter,
            cache=cache,
            synthesizer=ScriptSynthesizer(cache, executor, generator),
            negotiator=FallbackNegotiator(),
            dispatcher=BackendDispatcher(runner, ui_adapter, cache, executor),
            cache_config=config.cache,
        )

    @property
    def platform(self) -> Platform:
        return self._platform

    @property
    def cache(self) -> ScriptCacheStore:
        return self._cache

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        """Open the cache, run the scanners once and build the live catalog.

        Safe to call repeatedly and concurrently; only the first call scans.

        Raises:
            CacheStoreError: If the script cache cannot be opened
        """
        if self._initialized:
            return

        async with self._scan_lock:
            if self._initialized:
                return
            await self._cache.open()
            self._catalog = await self._build_catalog()
            self._initialized = True

    async def refresh(self) -> None:
        """Discard and rebuild the live catalog, e.g. after installing apps."""
        if not self._initialized:
            await self.initialize()
            return

        async with self._scan_lock:
            logger.info("Refreshing tool catalog", component="registry")
            catalog = await self._build_catalog()
            self._catalog = catalog

    async def _build_catalog(self) -> dict[str, Tool]:
        start = time.monotonic()
        await self._cleanup_cache()

        catalog: dict[str, Tool] = {}
        for scanner in self._scanners:
            for tool in await scanner.scan():
                existing = catalog.get(tool.name)
                if existing is not None and existing.exec_descriptor != tool.exec_descriptor:
                    logger.warning(
                        f"Tool name collision: {tool.name} replaces an earlier tool with a different target",
                        component="registry",
                        tool=tool.name,
                    )
                catalog[tool.name] = tool

        for tool in ui_tools():
            catalog[tool.name] = tool

        for tool in self._cache.export_as_tools():
            catalog[tool.name] = tool

        duration = (time.monotonic() - start) * 1000
        logger.info(
            f"Catalog built with {len(catalog)} tools",
            component="registry",
            duration_ms=duration,
        )
        return catalog

    async def _cleanup_cache(self) -> None:
        try:
            await self._cache.cleanup(self._cache_config.max_age, self._cache_config.max_failure_rate)
        except CacheStoreError as e:
            logger.error(f"Cache cleanup failed: {e.message}", component="registry")

    def get_catalog(self) -> list[Tool]:
        """The live catalog as it stands now."""
        return list(self._catalog.values())

    def get_tool(self, name: str) -> Optional[Tool]:
        return self._catalog.get(name)

    def register(self, tool: Tool) -> None:
        """Add a tool to the live catalog, replacing any tool of the same name."""
        self._catalog[tool.name] = tool

    def get_function_declarations(self) -> list[dict[str, Any]]:
        """The catalog as JSON-schema function declarations for the intent classifier."""
        return [tool.to_function_declaration() for tool in self._catalog.values()]

    def get_stats(self) -> dict[str, Any]:
        """Get registry statistics."""
        by_kind = Counter(tool.kind.value for tool in self._catalog.values())
        return {
            "total_tools": len(self._catalog),
            "by_kind": dict(sorted(by_kind.items())),
            "platform": self._platform.value,
            "initialized": self._initialized,
            "cache": self._cache.stats(),
        }

    async def run(
        self,
        name: str,
        arguments: Optional[dict[str, Any]] = None,
        context: Optional[ExecutionContext] = None,
    ) -> ExecutionResult:
        """Resolve `name` and execute it. Never raises.

        Args:
            name: Tool name chosen by the intent classifier
            arguments: Tool arguments, trusted as given
            context: Per-call execution context

        Returns:
            The backend's result, the synthesized script's first result, or
            a negotiation response (success=False)
        """
        arguments = arguments or {}
        context = context or ExecutionContext(platform=self._platform)

        try:
            await self.initialize()
        except CacheStoreError as e:
            logger.error(f"Registry unavailable: {e.message}", component="registry")
            return ExecutionResult.fail(e.format_user_friendly(), backend="registry")

        try:
            tool = self._catalog.get(name)
            if tool is not None:
                return await self._dispatcher.dispatch(tool, arguments, context)
            return await self._resolve_miss(name, arguments, context)
        except Exception as e:
            logger.error(f"Unexpected error running {name}: {type(e).__name__}: {e}",
                         component="registry", tool=name)
            return ExecutionResult.fail(f"{type(e).__name__}: {e}", backend="registry")

    async def _resolve_miss(
        self,
        name: str,
        arguments: dict[str, Any],
        context: ExecutionContext,
    ) -> ExecutionResult:
        miss = ResolutionMiss(name)
        logger.info(miss.message, component="registry", tool=name)

        failure: Optional[SynthesisFailure] = None
        if name.strip():
            request = SynthesisRequest(action=name, arguments=arguments, context=context)
            try:
                outcome = await self._synthesizer.synthesize(request)
            except SynthesisFailure as e:
                logger.info(f"Synthesis failed for {name}: {e.message}", component="registry", tool=name)
                failure = e
            except CacheStoreError as e:
                logger.error(f"Synthesized script could not be cached: {e.message}", component="registry", tool=name)
            else:
                self.register(outcome.tool)
                result = outcome.trial_result
                result.metadata.update(
                    tool=outcome.tool.name,
                    backend=outcome.tool.kind.value,
                    synthesized=True,
                    generated_by=outcome.script.provenance.generated_by,
                )
                return result

        response = self._negotiator.negotiate(
            NegotiationRequest.from_failure(name, context.platform, failure)
        )
        return response.to_result(name)
