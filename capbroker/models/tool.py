"""Tool (catalog entry) data models."""

from enum import Enum
from typing import Annotated, Any, Literal, Union
from pydantic import BaseModel, ConfigDict, Field


class ExecKind(str, Enum):
    """Backend kinds a tool can be dispatched to."""
    APPLESCRIPT_COMMAND = "appleScriptCommand"
    SHORTCUT = "shortcut"
    COM_OBJECT = "comObject"
    POWERSHELL_CMDLET = "powerShellCmdlet"
    UI_ACTION = "uiAction"
    GENERATED_SCRIPT = "generatedScript"


class ScriptLanguage(str, Enum):
    """Languages a synthesized script can be written in."""
    APPLESCRIPT = "appleScript"
    POWERSHELL = "powerShell"
    GENERIC = "genericScript"


class ParameterSpec(BaseModel):
    """One entry of a tool's parameter schema."""
    model_config = ConfigDict(extra="ignore")

    type: str = Field(default="string", description="JSON schema type")
    description: str = Field(default="")
    required: bool = Field(default=False)

    def to_json_schema(self) -> dict:
        return {"type": self.type, "description": self.description}


class AppleScriptCommand(BaseModel):
    """A verb from an application's scripting dictionary."""
    kind: Literal["appleScriptCommand"] = "appleScriptCommand"
    app_or_bundle: str
    verb: str


class Shortcut(BaseModel):
    """A user-authored shortcut run through the shortcuts command runner."""
    kind: Literal["shortcut"] = "shortcut"
    name: str


class ComObject(BaseModel):
    """A method on a registered COM class."""
    kind: Literal["comObject"] = "comObject"
    prog_id: str
    method: str


class PowerShellCmdlet(BaseModel):
    """A cmdlet available to the PowerShell host."""
    kind: Literal["powerShellCmdlet"] = "powerShellCmdlet"
    name: str


class UIAction(BaseModel):
    """A generic accessibility primitive."""
    kind: Literal["uiAction"] = "uiAction"
    action: Literal["click", "type"]


class GeneratedScript(BaseModel):
    """A synthesized script held in the script cache."""
    kind: Literal["generatedScript"] = "generatedScript"
    cache_id: str
    language: ScriptLanguage


ExecDescriptor = Annotated[
    Union[AppleScriptCommand, Shortcut, ComObject, PowerShellCmdlet, UIAction, GeneratedScript],
    Field(discriminator="kind"),
]


class Tool(BaseModel):
    """A named, parameterized automation action plus the backend that runs it.

    `name` is the stable key across sessions: scanners derive it
    deterministically so repeated scans regenerate identical keys.
    """
    name: str = Field(..., description="Unique tool name, e.g. 'app_com_apple_ical_make'")
    description: str = Field(default="")
    parameter_schema: dict[str, ParameterSpec] = Field(
        default_factory=dict,
        description="Property name -> parameter spec"
    )
    exec_descriptor: ExecDescriptor

    @property
    def kind(self) -> ExecKind:
        return ExecKind(self.exec_descriptor.kind)

    def required_parameters(self) -> list[str]:
        return [name for name, spec in self.parameter_schema.items() if spec.required]

    def to_function_declaration(self) -> dict[str, Any]:
        """Render as a JSON-schema function declaration for the intent classifier."""
        return {
            "name": self.name,
            "description": self.description,
            "parameters": {
                "type": "object",
                "properties": {
                    name: spec.to_json_schema()
                    for name, spec in self.parameter_schema.items()
                },
                "required": self.required_parameters(),
            },
        }
