"""Adapters package - generic UI automation per platform."""

from .base import BaseUIAdapter, UIClickResult, UIElement, UITypeResult, ui_tools
from .uia import LinuxUIAdapter, MacUIAdapter, WindowsUIAdapter, create_ui_adapter

__all__ = [
    "BaseUIAdapter",
    "UIClickResult",
    "UIElement",
    "UITypeResult",
    "ui_tools",
    "LinuxUIAdapter",
    "MacUIAdapter",
    "WindowsUIAdapter",
    "create_ui_adapter",
]
