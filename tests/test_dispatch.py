"""Tests for backend dispatch."""

import os
import pytest
import pytest_asyncio

from conftest import FakeRunner
from capbroker.adapters.base import BaseUIAdapter, UIClickResult, UIElement, UITypeResult
from capbroker.cache.store import ScriptCacheStore
from capbroker.core.errors import ExecutionFailure
from capbroker.models import (
    AppleScriptCommand,
    ComObject,
    ExecKind,
    ExecutionContext,
    GeneratedScript,
    Platform,
    PowerShellCmdlet,
    ScriptLanguage,
    Shortcut,
    Tool,
    UIAction,
)
from capbroker.runtime.dispatch import (
    BackendDispatcher,
    build_applescript_command,
    build_cmdlet_command,
    build_com_script,
)
from capbroker.runtime.scripts import ScriptExecutor


class RecordingUIAdapter(BaseUIAdapter):
    """UI adapter that records what it was asked to do."""

    platform = Platform.MACOS

    def __init__(self, found: bool = True):
        super().__init__(runner=None)
        self.found = found
        self.clicks: list[UIElement] = []
        self.typed: list[tuple[str, UIElement | None]] = []

    async def click(self, element: UIElement) -> UIClickResult:
        self.clicks.append(element)
        if not self.found:
            return UIClickResult(success=False, message="Element not found", element_found=False)
        return UIClickResult(success=True, message="Click successful", element_found=True)

    async def type_text(self, text: str, element: UIElement | None = None) -> UITypeResult:
        self.typed.append((text, element))
        return UITypeResult(success=True, message="Type successful", characters_typed=len(text))


class InputCapturingRunner(FakeRunner):
    """Reads the shortcut input file while the process would be running."""

    def __init__(self):
        super().__init__(default_stdout="done")
        self.seen_input: str | None = None

    async def run(self, argv, input_text=None, timeout=None):
        if "--input-path" in argv:
            path = argv[argv.index("--input-path") + 1]
            with open(path, encoding="utf-8") as f:
                self.seen_input = f.read()
        return await super().run(argv, input_text, timeout)


class CrashingRunner(FakeRunner):
    async def run(self, argv, input_text=None, timeout=None):
        raise RuntimeError("event loop closed")


@pytest_asyncio.fixture
async def cache(temp_db):
    store = ScriptCacheStore(temp_db)
    await store.open()
    return store


@pytest.fixture
def context() -> ExecutionContext:
    return ExecutionContext(platform=Platform.MACOS)


def make_dispatcher(runner, cache, ui=None, platform=Platform.MACOS) -> BackendDispatcher:
    return BackendDispatcher(
        runner=runner,
        ui_adapter=ui or RecordingUIAdapter(),
        cache=cache,
        script_executor=ScriptExecutor(runner, platform),
    )


def tool(descriptor, name: str = "tool") -> Tool:
    return Tool(name=name, exec_descriptor=descriptor)


class TestBuilders:
    """Tests for the per-backend command builders."""

    def test_applescript_command_by_bundle_id(self):
        script = build_applescript_command(
            AppleScriptCommand(app_or_bundle="com.apple.Notes", verb="make"),
            {"new": "note", "with properties": {"name": "Hi"}},
        )

        assert script == (
            'tell application id "com.apple.Notes"\n'
            '    make new "note" with properties {name:"Hi"}\n'
            'end tell'
        )

    def test_applescript_command_direct_parameter(self):
        script = build_applescript_command(
            AppleScriptCommand(app_or_bundle="Finder", verb="open"),
            {"direct": ["a", "b"], "using": None},
        )

        assert script == 'tell application "Finder"\n    open {"a", "b"}\nend tell'

    def test_applescript_command_rejects_unsafe_labels(self):
        descriptor = AppleScriptCommand(app_or_bundle="Finder", verb="open")

        for label in ["to\" & (do shell script \"rm x\") & \"", "with_underscore", "2nd", "using\n"]:
            with pytest.raises(ExecutionFailure):
                build_applescript_command(descriptor, {label: "x"})

    def test_com_script(self):
        script = build_com_script(
            ComObject(prog_id="Excel.Application", method="Open"),
            {"args": ["C:\\Book's.xlsx", 1]},
        )

        assert "New-Object -ComObject 'Excel.Application'" in script
        assert "$result = $obj.Open('C:\\Book''s.xlsx', 1)" in script

    def test_com_script_rejects_bad_method(self):
        with pytest.raises(ExecutionFailure):
            build_com_script(ComObject(prog_id="X.Y", method="Quit(); Remove-Item"), {})

    def test_cmdlet_command(self):
        script = build_cmdlet_command(
            PowerShellCmdlet(name="Get-Process"),
            {"parameters": {"Name": "notepad", "IncludeUserName": True}},
        )

        assert script == (
            "$ErrorActionPreference = 'Stop'\n"
            "Get-Process -Name 'notepad' -IncludeUserName | Out-String -Width 4096"
        )

    def test_cmdlet_command_without_arguments(self):
        script = build_cmdlet_command(PowerShellCmdlet(name="Get-Date"), {})
        assert script.endswith("\nGet-Date | Out-String -Width 4096")


class TestDispatcher:
    """Tests for BackendDispatcher."""

    @pytest.mark.asyncio
    async def test_every_kind_has_a_handler(self, cache):
        dispatcher = make_dispatcher(FakeRunner(), cache)
        assert dispatcher.handled_kinds == set(ExecKind)

    @pytest.mark.asyncio
    async def test_applescript_success(self, cache, context):
        runner = FakeRunner().on("osascript", stdout="note id x-coredata://1\n")
        dispatcher = make_dispatcher(runner, cache)
        notes_make = tool(AppleScriptCommand(app_or_bundle="com.apple.Notes", verb="make"), "app_com_apple_Notes_make")

        result = await dispatcher.dispatch(notes_make, {"new": "note"}, context)

        assert result.success
        assert result.output == "note id x-coredata://1"
        assert result.metadata["backend"] == "appleScriptCommand"
        assert result.metadata["tool"] == "app_com_apple_Notes_make"
        assert result.metadata["exit_code"] == 0
        argv, stdin, _ = runner.calls[0]
        assert argv == ["osascript", "-"]
        assert 'make new "note"' in stdin

    @pytest.mark.asyncio
    async def test_interpreter_failure(self, cache, context):
        runner = FakeRunner().on("osascript", stderr="Notes got an error: -1728", returncode=1)
        dispatcher = make_dispatcher(runner, cache)

        result = await dispatcher.dispatch(
            tool(AppleScriptCommand(app_or_bundle="com.apple.Notes", verb="show")), {}, context
        )

        assert not result.success
        assert result.error == "Notes got an error: -1728"
        assert result.metadata["exit_code"] == 1

    @pytest.mark.asyncio
    async def test_timeout(self, cache, context):
        runner = FakeRunner().on("shortcuts", timed_out=True)
        dispatcher = make_dispatcher(runner, cache)

        result = await dispatcher.dispatch(tool(Shortcut(name="Slow")), {}, context)

        assert not result.success
        assert result.metadata["timed_out"] is True
        assert "timed out" in result.error

    @pytest.mark.asyncio
    async def test_shortcut_input_file_lifecycle(self, cache, context):
        runner = InputCapturingRunner()
        dispatcher = make_dispatcher(runner, cache)

        result = await dispatcher.dispatch(
            tool(Shortcut(name="Morning Routine")), {"input": "coffee"}, context
        )

        assert result.success
        assert runner.seen_input == "coffee"
        argv = runner.calls[0][0]
        assert argv[:3] == ["shortcuts", "run", "Morning Routine"]
        assert not os.path.exists(argv[4])

    @pytest.mark.asyncio
    async def test_shortcut_without_input(self, cache, context):
        runner = FakeRunner()
        dispatcher = make_dispatcher(runner, cache)

        await dispatcher.dispatch(tool(Shortcut(name="Focus")), {}, context)

        assert runner.calls[0][0] == ["shortcuts", "run", "Focus"]

    @pytest.mark.asyncio
    async def test_com_object(self, cache, context):
        runner = FakeRunner(default_stdout="True")
        dispatcher = make_dispatcher(runner, cache, platform=Platform.WINDOWS)

        result = await dispatcher.dispatch(
            tool(ComObject(prog_id="Excel.Application", method="Quit")), {}, context
        )

        assert result.success
        assert runner.calls[0][0][0] == "powershell"
        assert "$obj.Quit()" in runner.calls[0][0][-1]

    @pytest.mark.asyncio
    async def test_invalid_com_method_never_runs(self, cache, context):
        runner = FakeRunner()
        dispatcher = make_dispatcher(runner, cache)

        result = await dispatcher.dispatch(
            tool(ComObject(prog_id="X.Y", method="Quit; Stop-Computer")), {}, context
        )

        assert not result.success
        assert "Invalid COM method name" in result.error
        assert runner.calls == []

    @pytest.mark.asyncio
    async def test_unsafe_applescript_label_never_runs(self, cache, context):
        runner = FakeRunner()
        dispatcher = make_dispatcher(runner, cache)

        result = await dispatcher.dispatch(
            tool(AppleScriptCommand(app_or_bundle="Finder", verb="open")),
            {"to \"x\"\ndo shell script \"id\"": 1},
            context,
        )

        assert not result.success
        assert "Invalid parameter label" in result.error
        assert runner.calls == []

    @pytest.mark.asyncio
    async def test_cmdlet(self, cache, context):
        runner = FakeRunner(default_stdout="Monday, 19 October")
        dispatcher = make_dispatcher(runner, cache)

        result = await dispatcher.dispatch(tool(PowerShellCmdlet(name="Get-Date")), {}, context)

        assert result.success
        assert result.metadata["cmdlet"] == "Get-Date"

    @pytest.mark.asyncio
    async def test_ui_click(self, cache, context):
        ui = RecordingUIAdapter(found=False)
        dispatcher = make_dispatcher(FakeRunner(), cache, ui)

        result = await dispatcher.dispatch(
            tool(UIAction(action="click"), "uia_click"), {"title": "Nonexistent"}, context
        )

        assert not result.success
        assert result.metadata["element_found"] is False
        assert ui.clicks[0].title == "Nonexistent"

    @pytest.mark.asyncio
    async def test_ui_type(self, cache, context):
        ui = RecordingUIAdapter()
        dispatcher = make_dispatcher(FakeRunner(), cache, ui)

        result = await dispatcher.dispatch(
            tool(UIAction(action="type"), "uia_type"), {"text": "hello world"}, context
        )

        assert result.success
        assert result.metadata["characters_typed"] == 11
        assert ui.typed == [("hello world", None)]

    @pytest.mark.asyncio
    async def test_generated_script_updates_counters(self, cache, context):
        sid = await cache.store(
            name="say hi",
            description="",
            script='on run argv\n    return "hi"\nend run',
            language=ScriptLanguage.APPLESCRIPT,
        )
        runner = FakeRunner(default_stdout="hi")
        dispatcher = make_dispatcher(runner, cache)
        say_hi = tool(GeneratedScript(cache_id=sid, language=ScriptLanguage.APPLESCRIPT), "say hi")

        ok = await dispatcher.dispatch(say_hi, {}, context)
        runner.on("osascript", stderr="boom", returncode=1)
        failed = await dispatcher.dispatch(say_hi, {}, context)

        assert ok.success and not failed.success
        script = cache.peek(sid)
        assert script.success_count == 1
        assert script.failure_count == 1

    @pytest.mark.asyncio
    async def test_generated_script_missing_from_cache(self, cache, context):
        dispatcher = make_dispatcher(FakeRunner(), cache)

        result = await dispatcher.dispatch(
            tool(GeneratedScript(cache_id="gone", language=ScriptLanguage.GENERIC)), {}, context
        )

        assert not result.success
        assert "no longer exists" in result.error

    @pytest.mark.asyncio
    async def test_unexpected_exception_becomes_result(self, cache, context):
        dispatcher = make_dispatcher(CrashingRunner(), cache)

        result = await dispatcher.dispatch(tool(PowerShellCmdlet(name="Get-Date")), {}, context)

        assert not result.success
        assert "RuntimeError" in result.error
        assert result.metadata["backend"] == "powerShellCmdlet"
