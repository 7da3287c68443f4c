"""macOS scanners: scripting dictionaries of installed apps, and user Shortcuts."""

import plistlib
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from pathlib import Path

from capbroker.core.errors import ScanError
from capbroker.core.logging import get_logger
from capbroker.models.tool import AppleScriptCommand, ParameterSpec, Shortcut, Tool
from capbroker.runtime.interpreter import SHORTCUTS, InterpreterRunner
from capbroker.runtime.literals import slugify
from .base import BaseScanner

logger = get_logger("scanner.macos")

SDEF = "sdef"

# Name given to an AppleScript command's unlabeled (direct) parameter
DIRECT_PARAMETER = "direct"

SDEF_TYPE_MAP = {
    "text": "string",
    "string": "string",
    "integer": "number",
    "real": "number",
    "number": "number",
    "boolean": "boolean",
    "list": "array",
    "record": "object",
    "date": "string",
    "file": "string",
}


@dataclass
class AppInfo:
    """An installed application bundle."""
    bundle_id: str
    name: str
    path: Path


def read_app_info(app_path: Path) -> AppInfo:
    """Read bundle identifier and display name from an app's Info.plist."""
    info_plist = app_path / "Contents" / "Info.plist"
    if not info_plist.exists():
        raise ScanError("No Info.plist", scanner="applescript", item=str(app_path))

    try:
        with open(info_plist, "rb") as f:
            info = plistlib.load(f)
    except Exception as e:
        raise ScanError(f"Unreadable Info.plist: {e}", scanner="applescript", item=str(app_path), cause=e)

    bundle_id = info.get("CFBundleIdentifier")
    if not bundle_id:
        raise ScanError("No bundle identifier", scanner="applescript", item=str(app_path))

    name = info.get("CFBundleName") or info.get("CFBundleDisplayName") or app_path.stem
    return AppInfo(bundle_id=bundle_id, name=name, path=app_path)


def _sdef_type(element: ET.Element) -> str:
    raw = element.get("type")
    if raw is None:
        nested = element.find("type")
        if nested is not None:
            if nested.get("list") == "yes":
                return "array"
            raw = nested.get("type")
    return SDEF_TYPE_MAP.get((raw or "").strip(), "string")


def parse_sdef(sdef_xml: str, app: AppInfo) -> list[Tool]:
    """Parse an sdef scripting dictionary into one Tool per command.

    Hidden commands are skipped; a command defined in several suites is
    only emitted once.
    """
    try:
        root = ET.fromstring(sdef_xml)
    except ET.ParseError as e:
        raise ScanError(f"Malformed scripting dictionary: {e}", scanner="applescript", item=app.name, cause=e)

    tools: list[Tool] = []
    seen: set[str] = set()

    for command in root.iter("command"):
        verb = command.get("name")
        if not verb or command.get("hidden") == "yes" or verb in seen:
            continue
        seen.add(verb)

        params: dict[str, ParameterSpec] = {}

        direct = command.find("direct-parameter")
        if direct is not None:
            params[DIRECT_PARAMETER] = ParameterSpec(
                type=_sdef_type(direct),
                description=direct.get("description") or f"Direct parameter for {verb}",
                required=direct.get("optional") != "yes",
            )

        for param in command.findall("parameter"):
            param_name = param.get("name")
            if not param_name:
                continue
            params[param_name] = ParameterSpec(
                type=_sdef_type(param),
                description=param.get("description") or f"Parameter {param_name} for {verb}",
                required=param.get("optional") != "yes",
            )

        description = command.get("description")
        tools.append(Tool(
            name=f"app_{slugify(app.bundle_id)}_{slugify(verb)}",
            description=(
                f"{app.name}: {description}" if description
                else f"AppleScript '{verb}' command on {app.name}"
            ),
            parameter_schema=params,
            exec_descriptor=AppleScriptCommand(app_or_bundle=app.bundle_id, verb=verb),
        ))

    return tools


class ScriptingDictionaryScanner(BaseScanner):
    """Reads the scripting dictionary of every installed application.

    Applications without a dictionary are skipped silently.
    """

    name = "applescript"

    def __init__(self, runner: InterpreterRunner, application_dirs: list[str] | None = None, **kwargs):
        super().__init__(runner, **kwargs)
        self._application_dirs = [Path(d) for d in (application_dirs or ["/Applications"])]

    def list_applications(self) -> list[Path]:
        apps: list[Path] = []
        for directory in self._application_dirs:
            if not directory.is_dir():
                continue
            try:
                apps.extend(sorted(p for p in directory.iterdir() if p.suffix == ".app"))
            except OSError as e:
                logger.debug(f"Cannot list {directory}: {e}", component="scanner")
        return apps

    async def discover(self) -> list[Tool]:
        return await self._gather_items(self.list_applications(), self._scan_app)

    async def _scan_app(self, app_path: Path) -> list[Tool]:
        app = read_app_info(app_path)
        outcome = await self._runner.run([SDEF, str(app.path)], timeout=self._item_timeout)
        if not outcome.ok or not outcome.stdout.strip():
            # No scripting dictionary: not an error
            return []
        return parse_sdef(outcome.stdout, app)


class ShortcutScanner(BaseScanner):
    """Lists user-authored Shortcuts; each becomes a tool with one optional text input."""

    name = "shortcuts"

    async def discover(self) -> list[Tool]:
        outcome = await self._runner.run([SHORTCUTS, "list"], timeout=self._item_timeout)
        if not outcome.ok:
            logger.debug(f"Shortcuts unavailable: {outcome.error_text}", component="scanner")
            return []

        tools = []
        for line in outcome.stdout.splitlines():
            shortcut = line.strip()
            if not shortcut:
                continue
            tools.append(Tool(
                name=f"shortcut_{slugify(shortcut)}",
                description=f"Run Shortcut: {shortcut}",
                parameter_schema={
                    "input": ParameterSpec(
                        type="string",
                        description="Input to pass to the shortcut",
                        required=False,
                    )
                },
                exec_descriptor=Shortcut(name=shortcut),
            ))
        return tools
