"""Tests for the tool, script and result models."""

import pytest
from pydantic import ValidationError

from capbroker.models import (
    AppleScriptCommand,
    CachedScript,
    ExecKind,
    ExecutionContext,
    ExecutionResult,
    GeneratedScript,
    ParameterSpec,
    Platform,
    ScriptLanguage,
    Tool,
    detect_platform,
)


def test_exec_descriptor_is_discriminated_by_kind():
    """Test that descriptors round through plain dicts by their kind tag."""
    tool = Tool.model_validate({
        "name": "com_Excel_Application_Quit",
        "exec_descriptor": {"kind": "comObject", "prog_id": "Excel.Application", "method": "Quit"},
    })

    assert tool.kind == ExecKind.COM_OBJECT
    assert tool.exec_descriptor.prog_id == "Excel.Application"


def test_unknown_kind_is_rejected():
    with pytest.raises(ValidationError):
        Tool.model_validate({"name": "x", "exec_descriptor": {"kind": "telepathy"}})


def test_every_kind_has_a_descriptor():
    """Test that the ExecKind enum and the descriptor union agree."""
    samples = [
        {"kind": "appleScriptCommand", "app_or_bundle": "com.apple.Notes", "verb": "make"},
        {"kind": "shortcut", "name": "Morning"},
        {"kind": "comObject", "prog_id": "Word.Application", "method": "Quit"},
        {"kind": "powerShellCmdlet", "name": "Get-Date"},
        {"kind": "uiAction", "action": "click"},
        {"kind": "generatedScript", "cache_id": "abc", "language": "appleScript"},
    ]
    kinds = {Tool(name="t", exec_descriptor=s).kind for s in samples}
    assert kinds == set(ExecKind)


def test_function_declaration():
    tool = Tool(
        name="app_com_apple_Notes_make",
        description="Make a note",
        parameter_schema={
            "new": ParameterSpec(type="string", required=True),
            "with properties": ParameterSpec(type="object"),
        },
        exec_descriptor=AppleScriptCommand(app_or_bundle="com.apple.Notes", verb="make"),
    )

    declaration = tool.to_function_declaration()

    assert declaration["name"] == "app_com_apple_Notes_make"
    assert declaration["parameters"]["type"] == "object"
    assert set(declaration["parameters"]["properties"]) == {"new", "with properties"}
    assert declaration["parameters"]["required"] == ["new"]


def test_cached_script_tolerates_unknown_and_missing_fields():
    """Test that records from other schema versions still load."""
    script = CachedScript.model_validate({
        "id": "abc123",
        "name": "create note",
        "script": "return 1",
        "language": "appleScript",
        "added_in_v9": {"whatever": True},
    })

    assert script.success_count == 0
    assert script.provenance.tags == []
    assert script.success_rate == 0.0


def test_success_and_failure_rates():
    script = CachedScript(id="a", name="n", script="s", success_count=3, failure_count=1)

    assert script.total_executions == 4
    assert script.success_rate == 0.75
    assert script.failure_rate == 0.25


def test_execution_result_helpers():
    ok = ExecutionResult.ok("done", backend="shortcut")
    failed = ExecutionResult.fail("nope", backend="shortcut")

    assert ok.success and ok.output == "done" and ok.metadata == {"backend": "shortcut"}
    assert not failed.success and failed.error == "nope"


def test_execution_context_is_read_only():
    context = ExecutionContext(platform=Platform.MACOS, front_app="Safari")

    with pytest.raises(ValidationError):
        context.front_app = "Mail"


def test_detect_platform():
    assert detect_platform("darwin") == Platform.MACOS
    assert detect_platform("win32") == Platform.WINDOWS
    assert detect_platform("linux") == Platform.LINUX


def test_generated_script_descriptor_language():
    descriptor = GeneratedScript(cache_id="abc", language=ScriptLanguage.POWERSHELL)
    assert descriptor.kind == "generatedScript"
