"""Pytest configuration and shared fixtures."""

import sys
from pathlib import Path

# Add project root to Python path so 'capbroker' is findable
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

import plistlib
import tempfile
from typing import Generator, Optional
import pytest

from capbroker.config import Config, reset_config
from capbroker.runtime.interpreter import ProcessOutcome


class FakeRunner:
    """Stands in for InterpreterRunner.

    Responses are scripted with `on(*fragments, ...)`: a rule matches when
    every fragment appears in the argv (joined with spaces) or the stdin
    text. The most recently added matching rule wins. Every call is
    recorded in `calls` as (argv, input_text, timeout).
    """

    def __init__(self, default_stdout: str = ""):
        self.default_stdout = default_stdout
        self.default_timeout = 30.0
        self.calls: list[tuple[list[str], Optional[str], Optional[float]]] = []
        self._rules: list[tuple[tuple[str, ...], dict]] = []

    def on(
        self,
        *fragments: str,
        stdout: str = "",
        stderr: str = "",
        returncode: int = 0,
        timed_out: bool = False,
    ) -> "FakeRunner":
        self._rules.insert(0, (fragments, {
            "stdout": stdout,
            "stderr": stderr,
            "returncode": None if timed_out else returncode,
            "timed_out": timed_out,
        }))
        return self

    async def run(self, argv, input_text=None, timeout=None) -> ProcessOutcome:
        self.calls.append((list(argv), input_text, timeout))
        haystack = " ".join(argv) + "\n" + (input_text or "")
        for fragments, response in self._rules:
            if all(fragment in haystack for fragment in fragments):
                return ProcessOutcome(argv=list(argv), duration_ms=5.0, **response)
        return ProcessOutcome(argv=list(argv), returncode=0, stdout=self.default_stdout, duration_ms=5.0)

    def calls_matching(self, fragment: str) -> list[list[str]]:
        return [argv for argv, stdin, _ in self.calls if fragment in " ".join(argv) + "\n" + (stdin or "")]


class FakeGenerator:
    """Text generation collaborator returning a canned response."""

    def __init__(self, response: str = "", error: Optional[Exception] = None):
        self.response = response
        self.error = error
        self.prompts: list[str] = []

    async def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.error:
            raise self.error
        return self.response


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def temp_db(temp_dir: Path) -> Path:
    """Create a path for a temporary database."""
    return temp_dir / "script_cache.db"


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def config(temp_dir: Path, monkeypatch) -> Generator[Config, None, None]:
    """Configuration rooted in a temporary data directory."""
    monkeypatch.setenv("CAPBROKER_DATA_DIR", str(temp_dir / "data"))
    monkeypatch.setenv("CAPBROKER_LOG_CONSOLE", "false")
    monkeypatch.setenv("CAPBROKER_LOG_FILE", "false")
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    reset_config()
    yield Config()
    reset_config()


@pytest.fixture
def make_app(temp_dir: Path):
    """Factory for fake application bundles with an Info.plist."""
    apps_dir = temp_dir / "Applications"
    apps_dir.mkdir(exist_ok=True)

    def _make(name: str, bundle_id: str) -> Path:
        contents = apps_dir / f"{name}.app" / "Contents"
        contents.mkdir(parents=True)
        with open(contents / "Info.plist", "wb") as f:
            plistlib.dump({"CFBundleIdentifier": bundle_id, "CFBundleName": name}, f)
        return apps_dir / f"{name}.app"

    _make.apps_dir = apps_dir
    return _make


NOTES_SDEF = """<?xml version="1.0" encoding="UTF-8"?>
<!DOCTYPE dictionary SYSTEM "file://localhost/System/Library/DTDs/sdef.dtd">
<dictionary title="Notes Terminology">
  <suite name="Standard Suite" code="core">
    <command name="make" code="corecrel" description="Make a new element.">
      <parameter name="new" code="kocl" type="type" description="The class of the new element."/>
      <parameter name="with properties" code="prdt" type="record" optional="yes"/>
      <result type="specifier"/>
    </command>
    <command name="delete" code="coredelo" description="Delete an object.">
      <direct-parameter type="specifier"/>
    </command>
  </suite>
  <suite name="Notes Suite" code="note">
    <command name="show" code="notesho" description="Show an object.">
      <direct-parameter type="specifier" description="the object to show"/>
    </command>
    <command name="make" code="corecrel" description="Duplicate definition."/>
    <command name="internal sync" code="notesync" hidden="yes"/>
  </suite>
</dictionary>
"""

FINDER_SDEF = """<?xml version="1.0" encoding="UTF-8"?>
<dictionary title="Finder Terminology">
  <suite name="Finder Basics" code="fndr">
    <command name="open" code="aevtodoc" description="Open the specified object(s)">
      <direct-parameter description="list of objects to open">
        <type type="file" list="yes"/>
      </direct-parameter>
    </command>
    <command name="empty" code="fndremty" description="Empty the trash">
      <parameter name="security" code="sec?" type="boolean" optional="yes"/>
    </command>
  </suite>
</dictionary>
"""


@pytest.fixture
def notes_sdef() -> str:
    return NOTES_SDEF


@pytest.fixture
def finder_sdef() -> str:
    return FINDER_SDEF
