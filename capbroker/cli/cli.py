"""capbroker CLI - inspect and exercise the capability registry.

Usage:
    capbroker scan                     - Scan this machine and list the catalog
    capbroker scan --json --stats      - Machine-readable catalog plus statistics
    capbroker catalog                  - Function declarations for the intent classifier
    capbroker run NAME -a key=value    - Resolve and run a capability
    capbroker cache list [QUERY]       - List cached scripts
    capbroker cache cleanup            - Evict stale or failing scripts
"""

import asyncio
import json
import sys

import click

from capbroker import __version__
from capbroker.cache.store import ScriptCacheStore
from capbroker.config import get_config
from capbroker.core.errors import BrokerError, format_exception_chain
from capbroker.core.logging import setup_logging
from capbroker.models.execution import ExecutionContext
from capbroker.runtime.registry import DynamicCapabilityRegistry


def _build_registry() -> DynamicCapabilityRegistry:
    """Wire a registry from configuration, with Gemini if a key is set."""
    config = get_config()
    generator = None
    if config.api.gemini_api_key:
        from capbroker.core.gemini_client import GeminiClient
        generator = GeminiClient(config.api.gemini_api_key, model=config.api.gemini_model)
    return DynamicCapabilityRegistry.create(config, generator)


def _open_cache() -> ScriptCacheStore:
    config = get_config()
    return ScriptCacheStore(config.paths.cache_db, min_samples=config.cache.min_samples)


def _parse_arguments(pairs: tuple[str, ...]) -> dict:
    """Turn `key=value` pairs into arguments; JSON values are decoded."""
    arguments = {}
    for pair in pairs:
        if "=" not in pair:
            raise click.BadParameter(f"Expected key=value, got: {pair}", param_hint="--arg")
        key, raw = pair.split("=", 1)
        try:
            arguments[key] = json.loads(raw)
        except json.JSONDecodeError:
            arguments[key] = raw
    return arguments


@click.group()
@click.version_option(version=__version__, prog_name="capbroker")
@click.option("--log-level", default=None, help="Log level (DEBUG, INFO, WARNING, ERROR)")
def cli(log_level: str | None):
    """capbroker - Dynamic Capability Registry.

    Discovers, synthesizes, caches and executes desktop automation
    capabilities by name.
    """
    config = get_config()
    setup_logging(
        level=log_level or config.log.level,
        format_type=config.log.format,
        log_dir=config.paths.logs_dir,
        file_enabled=config.log.file_enabled,
        console_enabled=config.log.console_enabled,
    )


@cli.command()
@click.option("--json", "as_json", is_flag=True, help="Print the catalog as JSON")
@click.option("--stats", is_flag=True, help="Print registry statistics")
def scan(as_json: bool, stats: bool):
    """Scan this machine and list the discovered tools."""
    registry = _build_registry()

    try:
        asyncio.run(registry.initialize())
    except BrokerError as e:
        click.echo(format_exception_chain(e), err=True)
        sys.exit(1)

    tools = sorted(registry.get_catalog(), key=lambda t: t.name)

    if as_json:
        payload = {"tools": [tool.model_dump(mode="json") for tool in tools]}
        if stats:
            payload["stats"] = registry.get_stats()
        click.echo(json.dumps(payload, indent=2))
        return

    for tool in tools:
        click.echo(f"{tool.name:50} [{tool.kind.value}] {tool.description}")

    click.echo(f"\n{len(tools)} tools")
    if stats:
        click.echo(json.dumps(registry.get_stats(), indent=2))


@cli.command()
def catalog():
    """Print the catalog as function declarations."""
    registry = _build_registry()

    try:
        asyncio.run(registry.initialize())
    except BrokerError as e:
        click.echo(format_exception_chain(e), err=True)
        sys.exit(1)

    click.echo(json.dumps(registry.get_function_declarations(), indent=2))


@cli.command()
@click.argument("name")
@click.option("--arg", "-a", "pairs", multiple=True, help="Argument as key=value (repeatable)")
@click.option("--request", "-r", default=None, help="Free text of the originating request")
@click.option("--json", "as_json", is_flag=True, help="Print the full result as JSON")
def run(name: str, pairs: tuple[str, ...], request: str | None, as_json: bool):
    """Resolve NAME and run it.

    Examples:
        capbroker run uia_type -a text="hello"
        capbroker run "create a calendar event" -a title=Standup
    """
    arguments = _parse_arguments(pairs)
    registry = _build_registry()
    context = ExecutionContext(platform=registry.platform, user_request=request)

    result = asyncio.run(registry.run(name, arguments, context))

    if as_json:
        click.echo(json.dumps(result.model_dump(mode="json"), indent=2, default=str))
    elif result.success:
        click.echo(result.output or "Done")
    else:
        click.echo(f"Failed: {result.error}", err=True)
        for step in result.metadata.get("next_steps", []):
            click.echo(f"  - {step}", err=True)

    if not result.success:
        sys.exit(1)


@cli.group()
def cache():
    """Inspect the script cache."""
    pass


@cache.command("list")
@click.argument("query", required=False, default="")
def cache_list(query: str):
    """List cached scripts, most recently used first."""
    store = _open_cache()

    try:
        asyncio.run(store.open())
    except BrokerError as e:
        click.echo(format_exception_chain(e), err=True)
        sys.exit(1)

    scripts = store.find(query)
    if not scripts:
        click.echo("No cached scripts.")
        return

    for script in scripts:
        click.echo(
            f"{script.id}  {script.name:40} {script.language.value:12} "
            f"{script.success_count}/{script.total_executions} ok  "
            f"last used {script.last_used:%Y-%m-%d %H:%M}"
        )


@cache.command("cleanup")
def cache_cleanup():
    """Evict scripts that are too old or fail too often."""
    config = get_config()
    store = _open_cache()

    async def _cleanup() -> list[str]:
        await store.open()
        return await store.cleanup(config.cache.max_age, config.cache.max_failure_rate)

    try:
        evicted = asyncio.run(_cleanup())
    except BrokerError as e:
        click.echo(format_exception_chain(e), err=True)
        sys.exit(1)

    click.echo(f"Evicted {len(evicted)} scripts.")


def main():
    """Entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
