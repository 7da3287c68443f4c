"""Base UI automation adapter interface.

Adapters are the broker's universal last resort: two generic primitives
(click and type) that work against whatever application is in front,
through the platform's accessibility APIs. They trade precision for
availability and are always part of the catalog, whatever the scanners
found.
"""

from abc import ABC, abstractmethod
from typing import Any
from pydantic import BaseModel, Field

from capbroker.models.execution import Platform
from capbroker.models.tool import ParameterSpec, Tool, UIAction
from capbroker.runtime.interpreter import InterpreterRunner


class UIElement(BaseModel):
    """Description of a control to act on.

    With neither title nor role, click acts at the pointer and type sends
    keystrokes to whatever holds input focus.
    """
    title: str | None = Field(default=None, description="Visible name of the control or menu item")
    role: str | None = Field(default=None, description="Control role, e.g. 'button' or 'text field'")
    index: int = Field(default=1, ge=1, description="1-based index among same-named matches")

    @property
    def is_targeted(self) -> bool:
        return bool(self.title or self.role)

    @classmethod
    def from_arguments(cls, arguments: dict[str, Any]) -> "UIElement":
        index = arguments.get("index")
        return cls(
            title=arguments.get("title") or None,
            role=arguments.get("role") or None,
            index=int(index) if index else 1,
        )


class UIClickResult(BaseModel):
    """Outcome of a click.

    `element_found` is False when the described element does not exist,
    and None when the automation host itself failed before looking.
    """
    success: bool
    message: str
    element_found: bool | None = None


class UITypeResult(BaseModel):
    """Outcome of typing text."""
    success: bool
    message: str
    characters_typed: int = 0


# Sentinels printed by the automation scripts
SUCCESS = "success"
NOT_FOUND = "element not found"
NOT_ACTIONABLE = "element not actionable"


class BaseUIAdapter(ABC):
    """Abstract base class for UI automation adapters.

    An adapter is responsible for:
    - Resolving an element description against the frontmost window
    - Clicking or typing through native accessibility APIs
    - Reporting "element not found" as a normal outcome, not an error
    """

    platform: Platform

    def __init__(self, runner: InterpreterRunner, timeout: float | None = None):
        self._runner = runner
        self._timeout = timeout

    @abstractmethod
    async def click(self, element: UIElement) -> UIClickResult:
        """Click a described element, or at the pointer if nothing is described.

        Args:
            element: What to click

        Returns:
            UIClickResult; never raises for a missing element
        """
        pass

    @abstractmethod
    async def type_text(self, text: str, element: UIElement | None = None) -> UITypeResult:
        """Type text into a described element, or into the focused control.

        Args:
            text: Text to type
            element: Target element, or None for current focus

        Returns:
            UITypeResult with the number of characters typed on success
        """
        pass

    @staticmethod
    def _click_result(stdout: str, action: str = "Click") -> UIClickResult:
        status = stdout.strip()
        if status == SUCCESS:
            return UIClickResult(success=True, message=f"{action} successful", element_found=True)
        if status == NOT_FOUND:
            return UIClickResult(success=False, message="Element not found", element_found=False)
        if status == NOT_ACTIONABLE:
            return UIClickResult(success=False, message="Element found but cannot be clicked", element_found=True)
        return UIClickResult(success=False, message=f"{action} failed: {status or 'no output'}", element_found=None)

    @staticmethod
    def _type_result(stdout: str, text: str) -> UITypeResult:
        status = stdout.strip()
        if status == SUCCESS:
            return UITypeResult(success=True, message="Type successful", characters_typed=len(text))
        if status == NOT_FOUND:
            return UITypeResult(success=False, message="Type failed - element not found")
        return UITypeResult(success=False, message=f"Type failed: {status or 'no output'}")


def ui_tools() -> list[Tool]:
    """The generic click/type tools that are always in the catalog."""
    return [
        Tool(
            name="uia_click",
            description="Click a UI element in the frontmost window by title or role, or at the pointer",
            parameter_schema={
                "title": ParameterSpec(type="string", description="Element title or text"),
                "role": ParameterSpec(type="string", description="Element role (button, text field, etc.)"),
                "index": ParameterSpec(type="number", description="Index among same-named matches"),
            },
            exec_descriptor=UIAction(action="click"),
        ),
        Tool(
            name="uia_type",
            description="Type text into a UI element, or into the focused control",
            parameter_schema={
                "text": ParameterSpec(type="string", description="Text to type", required=True),
                "title": ParameterSpec(type="string", description="Target element title (optional)"),
            },
            exec_descriptor=UIAction(action="type"),
        ),
    ]
