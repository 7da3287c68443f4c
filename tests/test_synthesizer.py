"""Tests for script synthesis."""

import pytest
import pytest_asyncio

from conftest import FakeGenerator, FakeRunner
from capbroker.cache.store import ScriptCacheStore
from capbroker.core.errors import SynthesisFailure
from capbroker.models import ExecKind, ExecutionContext, Platform, ScriptLanguage
from capbroker.runtime.scripts import ScriptExecutor
from capbroker.synthesis import (
    ScriptSynthesizer,
    SynthesisRequest,
    extract_parameters,
    match_template,
    parse_script_response,
)


RENAME_RESPONSE = """Here is the script:

```applescript
on run {windowName}
    tell application "System Events" to set name of front window of (first process whose frontmost is true) to windowName
    return "success"
end run
```
"""

GREETING_RESPONSE = """Script:
param([string]$name = 'World')
Write-Output "Hello, $name"
"""


@pytest_asyncio.fixture
async def cache(temp_db):
    store = ScriptCacheStore(temp_db)
    await store.open()
    return store


def request_for(action: str, platform: Platform = Platform.MACOS, **arguments) -> SynthesisRequest:
    return SynthesisRequest(
        action=action,
        arguments=arguments,
        context=ExecutionContext(platform=platform),
    )


def make_synthesizer(cache, runner, platform=Platform.MACOS, generator=None) -> ScriptSynthesizer:
    return ScriptSynthesizer(cache, ScriptExecutor(runner, platform), generator)


class TestParsing:
    """Tests for generator response parsing."""

    def test_fenced_block(self):
        script, fence = parse_script_response(RENAME_RESPONSE)

        assert script.startswith("on run {windowName}")
        assert script.endswith("end run")
        assert fence == "applescript"

    def test_script_marker(self):
        script, fence = parse_script_response(GREETING_RESPONSE)

        assert script.startswith("param(")
        assert fence is None

    def test_nothing_usable(self):
        assert parse_script_response("") == ("", None)
        assert parse_script_response("I cannot help with that.") == ("", None)

    def test_extract_parameters(self):
        assert list(extract_parameters("on run {a, b}\nend run", ScriptLanguage.APPLESCRIPT)) == ["a", "b"]
        assert list(extract_parameters(
            "param([string]$to, [int]$count = 1)", ScriptLanguage.POWERSHELL
        )) == ["to", "count"]
        assert extract_parameters("echo hi", ScriptLanguage.GENERIC) == {}


class TestTemplates:
    """Tests for template matching."""

    def test_first_matching_template_wins(self):
        assert match_template("schedule a meeting", Platform.MACOS).template.key == "calendar_event"
        assert match_template("send an email", Platform.WINDOWS).template.key == "compose_email"
        assert match_template("write a note", Platform.MACOS).template.key == "create_note"
        assert match_template("add a todo", Platform.MACOS).template.key == "create_reminder"

    def test_no_match_or_no_platform_body(self):
        assert match_template("defragment the flux capacitor", Platform.MACOS) is None
        assert match_template("create calendar event", Platform.LINUX) is None


class TestSynthesize:
    """Tests for the synthesize-store-trial flow."""

    @pytest.mark.asyncio
    async def test_template_is_stored_and_trialed(self, cache):
        runner = FakeRunner(default_stdout="Event created: Standup")
        synthesizer = make_synthesizer(cache, runner)

        outcome = await synthesizer.synthesize(request_for("create calendar event", title="Standup"))

        assert outcome.trial_result.success
        assert outcome.trial_result.output == "Event created: Standup"
        assert outcome.script.provenance.generated_by == "template"
        assert outcome.script.success_count == 1
        assert outcome.tool.name == "create calendar event"
        assert outcome.tool.kind == ExecKind.GENERATED_SCRIPT
        assert runner.calls[0][0] == ["osascript", "-", "Standup", "", "", ""]
        assert len(cache) == 1

    @pytest.mark.asyncio
    async def test_generated_applescript(self, cache):
        runner = FakeRunner(default_stdout="success")
        generator = FakeGenerator(RENAME_RESPONSE)
        synthesizer = make_synthesizer(cache, runner, generator=generator)

        outcome = await synthesizer.synthesize(
            request_for("rename frontmost window", windowName="Draft")
        )

        assert outcome.script.language == ScriptLanguage.APPLESCRIPT
        assert list(outcome.script.parameters) == ["windowName"]
        assert outcome.script.provenance.generated_by == "generator"
        assert runner.calls[0][0] == ["osascript", "-", "Draft"]
        assert "rename frontmost window" in generator.prompts[0]
        assert "Platform: macos" in generator.prompts[0]

    @pytest.mark.asyncio
    async def test_generated_powershell(self, cache):
        runner = FakeRunner(default_stdout="Hello, Ada")
        synthesizer = make_synthesizer(
            cache, runner, Platform.WINDOWS, FakeGenerator(GREETING_RESPONSE)
        )

        outcome = await synthesizer.synthesize(request_for("show greeting", Platform.WINDOWS, name="Ada"))

        assert outcome.script.language == ScriptLanguage.POWERSHELL
        argv = runner.calls[0][0]
        assert argv[0] == "powershell"
        assert argv[-1].startswith("& {\nparam(")
        assert argv[-1].endswith("} -name 'Ada'")

    @pytest.mark.asyncio
    async def test_empty_generation_is_no_script(self, cache):
        synthesizer = make_synthesizer(cache, FakeRunner(), generator=FakeGenerator(""))

        with pytest.raises(SynthesisFailure) as exc_info:
            await synthesizer.synthesize(request_for("defragment the flux capacitor"))

        assert exc_info.value.reason == "no_script"
        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_without_generator_is_no_source(self, cache):
        synthesizer = make_synthesizer(cache, FakeRunner())

        with pytest.raises(SynthesisFailure) as exc_info:
            await synthesizer.synthesize(request_for("defragment the flux capacitor"))

        assert exc_info.value.reason == "no_source"
        assert not synthesizer.has_generator

    @pytest.mark.asyncio
    async def test_generator_error_is_generation_failed(self, cache):
        generator = FakeGenerator(error=ConnectionError("service unreachable"))
        synthesizer = make_synthesizer(cache, FakeRunner(), generator=generator)

        with pytest.raises(SynthesisFailure) as exc_info:
            await synthesizer.synthesize(request_for("defragment the flux capacitor"))

        assert exc_info.value.reason == "generation_failed"
        assert isinstance(exc_info.value.cause, ConnectionError)

    @pytest.mark.asyncio
    async def test_failed_trial_is_recorded(self, cache):
        runner = FakeRunner().on("osascript", stderr="Notes got an error: -1728", returncode=1)
        synthesizer = make_synthesizer(cache, runner)

        with pytest.raises(SynthesisFailure) as exc_info:
            await synthesizer.synthesize(request_for("create note", title="x"))

        assert exc_info.value.reason == "trial_failed"
        assert "-1728" in exc_info.value.trial_error
        [script] = cache.list_scripts()
        assert script.failure_count == 1
        assert script.success_count == 0

    @pytest.mark.asyncio
    async def test_prompt_includes_context(self):
        request = SynthesisRequest(
            action="archive old mail",
            arguments={"days": 30},
            context=ExecutionContext(platform=Platform.LINUX, front_app="Terminal", user_request="clean up"),
            target_app="Mail",
        )

        prompt = ScriptSynthesizer.build_prompt(request)

        assert "Frontmost Application: Terminal" in prompt
        assert "Target Application: Mail" in prompt
        assert '"days": 30' in prompt
        assert "POSIX shell" in prompt

    def test_prompt_without_similar_scripts(self):
        prompt = ScriptSynthesizer.build_prompt(request_for("rename frontmost window"), similar=[])

        assert "Related scripts already cached" not in prompt

    @pytest.mark.asyncio
    async def test_generator_sees_similar_scripts(self, cache):
        await cache.store("rename window", "Rename a window", "return 1", ScriptLanguage.APPLESCRIPT)
        await cache.store("empty trash", "Empty the Trash", "return 2", ScriptLanguage.APPLESCRIPT)
        generator = FakeGenerator(RENAME_RESPONSE)
        synthesizer = make_synthesizer(cache, FakeRunner(default_stdout="success"), generator=generator)

        await synthesizer.synthesize(request_for("rename frontmost window", windowName="Notes"))

        [prompt] = generator.prompts
        assert "Related scripts already cached:" in prompt
        assert "### rename window (appleScript)" in prompt
        assert "empty trash" not in prompt
