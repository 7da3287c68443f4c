"""Platform UI automation adapters.

- macOS: System Events accessibility scripting (AppleScript), CGEvent for
  pointer clicks
- Windows: UI Automation through PowerShell, SendKeys for focus typing
- Linux: xdotool, pointer clicks and focus typing only

User-supplied strings reach AppleScript as `argv` items and PowerShell as
quoted literals; they are never spliced into script source unescaped.
"""

from capbroker.core.logging import get_logger
from capbroker.models.execution import Platform
from capbroker.runtime.interpreter import (
    InterpreterRunner,
    applescript_argv,
    jxa_argv,
    powershell_argv,
)
from capbroker.runtime.literals import powershell_string, sendkeys_escape
from .base import BaseUIAdapter, UIClickResult, UIElement, UITypeResult, SUCCESS

logger = get_logger("adapter.uia")


# ---------------------------------------------------------------------------
# macOS
# ---------------------------------------------------------------------------

MAC_CLICK_SCRIPT = """
on run argv
    set targetTitle to item 1 of argv
    set targetRole to item 2 of argv
    set targetIndex to (item 3 of argv) as integer
    tell application "System Events"
        if not UI elements enabled then error "System Events is not allowed assistive access." number -25211
        set frontProc to first application process whose frontmost is true
        if targetTitle is not "" then
            try
                set found to (every button of window 1 of frontProc whose name is targetTitle)
                if (count of found) >= targetIndex then
                    click item targetIndex of found
                    return "success"
                end if
            end try
            repeat with barItem in (menu bar items of menu bar 1 of frontProc)
                try
                    click menu item targetTitle of menu 1 of barItem
                    return "success"
                end try
            end repeat
        end if
        if targetRole is not "" then
            set seen to 0
            repeat with elem in (entire contents of window 1 of frontProc)
                try
                    if role of elem is targetRole and (targetTitle is "" or name of elem is targetTitle) then
                        set seen to seen + 1
                        if seen = targetIndex then
                            click elem
                            return "success"
                        end if
                    end if
                end try
            end repeat
        end if
    end tell
    return "element not found"
end run
"""

MAC_POINTER_CLICK_SCRIPT = """
ObjC.import('CoreGraphics');
var pos = $.CGEventGetLocation($.CGEventCreate(null));
['kCGEventLeftMouseDown', 'kCGEventLeftMouseUp'].forEach(function (type) {
    $.CGEventPost($.kCGHIDEventTap, $.CGEventCreateMouseEvent(null, $[type], pos, $.kCGMouseButtonLeft));
});
'success';
"""

MAC_TYPE_SCRIPT = """
on run argv
    set theText to item 1 of argv
    set targetTitle to item 2 of argv
    set targetIndex to (item 3 of argv) as integer
    tell application "System Events"
        if not UI elements enabled then error "System Events is not allowed assistive access." number -25211
        if targetTitle is "" then
            keystroke theText
            return "success"
        end if
        set frontProc to first application process whose frontmost is true
        try
            set found to (every text field of window 1 of frontProc whose name is targetTitle)
            if (count of found) >= targetIndex then
                set value of item targetIndex of found to theText
                return "success"
            end if
        end try
    end tell
    return "element not found"
end run
"""


def ax_role(role: str | None) -> str:
    """Normalize 'text field' or 'button' to the AX role name ('AXTextField')."""
    if not role:
        return ""
    if role.startswith("AX"):
        return role
    return "AX" + "".join(word.capitalize() for word in role.split())


class MacUIAdapter(BaseUIAdapter):
    """Accessibility automation through System Events."""

    platform = Platform.MACOS

    async def click(self, element: UIElement) -> UIClickResult:
        if element.is_targeted:
            argv = applescript_argv(element.title or "", ax_role(element.role), str(element.index))
            script = MAC_CLICK_SCRIPT
        else:
            argv = jxa_argv()
            script = MAC_POINTER_CLICK_SCRIPT

        outcome = await self._runner.run(argv, input_text=script, timeout=self._timeout)
        if not outcome.ok:
            return UIClickResult(
                success=False,
                message=f"macOS click failed: {outcome.error_text}",
                element_found=None,
            )
        return self._click_result(outcome.stdout)

    async def type_text(self, text: str, element: UIElement | None = None) -> UITypeResult:
        title = element.title if element and element.title else ""
        index = element.index if element else 1
        outcome = await self._runner.run(
            applescript_argv(text, title, str(index)),
            input_text=MAC_TYPE_SCRIPT,
            timeout=self._timeout,
        )
        if not outcome.ok:
            return UITypeResult(success=False, message=f"macOS type failed: {outcome.error_text}")
        return self._type_result(outcome.stdout, text)


# ---------------------------------------------------------------------------
# Windows
# ---------------------------------------------------------------------------

WIN_FIND_ELEMENT = """
$ErrorActionPreference = 'Stop'
Add-Type -AssemblyName UIAutomationClient
Add-Type -AssemblyName UIAutomationTypes
$AE = [System.Windows.Automation.AutomationElement]
$title = {title}
$role = {role}
$index = {index}
function Find-Nth($condition) {{
    $found = $AE::RootElement.FindAll([System.Windows.Automation.TreeScope]::Descendants, $condition)
    if ($found.Count -ge $index) {{ return $found[$index - 1] }}
    return $null
}}
$element = $null
if ($title) {{
    $element = Find-Nth (New-Object System.Windows.Automation.PropertyCondition($AE::NameProperty, $title))
}}
if (-not $element -and $role) {{
    $type = [System.Windows.Automation.ControlType]::$role
    if ($type) {{
        $element = Find-Nth (New-Object System.Windows.Automation.PropertyCondition($AE::ControlTypeProperty, $type))
    }}
}}
if (-not $element) {{ Write-Output 'element not found'; exit 0 }}
"""

WIN_INVOKE = """
$pattern = $null
if ($element.TryGetCurrentPattern([System.Windows.Automation.InvokePattern]::Pattern, [ref]$pattern)) {
    $pattern.Invoke()
    Write-Output 'success'
} else {
    Write-Output 'element not actionable'
}
"""

WIN_SET_VALUE = """
Add-Type -AssemblyName System.Windows.Forms
$pattern = $null
if ($element.TryGetCurrentPattern([System.Windows.Automation.ValuePattern]::Pattern, [ref]$pattern)) {{
    $pattern.SetValue({text})
}} else {{
    $element.SetFocus()
    [System.Windows.Forms.SendKeys]::SendWait({keys})
}}
Write-Output 'success'
"""

WIN_POINTER_CLICK = """
$ErrorActionPreference = 'Stop'
Add-Type -TypeDefinition @'
using System;
using System.Runtime.InteropServices;
public class PointerClick {
    [DllImport("user32.dll")]
    public static extern void mouse_event(uint dwFlags, uint dx, uint dy, uint dwData, UIntPtr dwExtraInfo);
}
'@
[PointerClick]::mouse_event(0x0002, 0, 0, 0, [UIntPtr]::Zero)
[PointerClick]::mouse_event(0x0004, 0, 0, 0, [UIntPtr]::Zero)
Write-Output 'success'
"""

WIN_SEND_KEYS = """
$ErrorActionPreference = 'Stop'
Add-Type -AssemblyName System.Windows.Forms
[System.Windows.Forms.SendKeys]::SendWait({keys})
Write-Output 'success'
"""

CONTROL_TYPES = {
    "button": "Button",
    "text field": "Edit",
    "textfield": "Edit",
    "edit": "Edit",
    "menu item": "MenuItem",
    "checkbox": "CheckBox",
    "check box": "CheckBox",
    "link": "Hyperlink",
    "tab": "TabItem",
}


def control_type(role: str | None) -> str:
    """Map a role description onto a UI Automation ControlType name."""
    if not role:
        return ""
    return CONTROL_TYPES.get(role.lower(), "".join(word.capitalize() for word in role.split()))


class WindowsUIAdapter(BaseUIAdapter):
    """UI Automation through PowerShell."""

    platform = Platform.WINDOWS

    def _find_element(self, element: UIElement) -> str:
        return WIN_FIND_ELEMENT.format(
            title=powershell_string(element.title or ""),
            role=powershell_string(control_type(element.role)),
            index=element.index,
        )

    async def click(self, element: UIElement) -> UIClickResult:
        if element.is_targeted:
            script = self._find_element(element) + WIN_INVOKE
        else:
            script = WIN_POINTER_CLICK

        outcome = await self._runner.run(powershell_argv(script), timeout=self._timeout)
        if not outcome.ok:
            return UIClickResult(
                success=False,
                message=f"Windows click failed: {outcome.error_text}",
                element_found=None,
            )
        return self._click_result(outcome.stdout)

    async def type_text(self, text: str, element: UIElement | None = None) -> UITypeResult:
        keys = powershell_string(sendkeys_escape(text))
        if element and element.title:
            script = self._find_element(UIElement(title=element.title, index=element.index))
            script += WIN_SET_VALUE.format(text=powershell_string(text), keys=keys)
        else:
            script = WIN_SEND_KEYS.format(keys=keys)

        outcome = await self._runner.run(powershell_argv(script), timeout=self._timeout)
        if not outcome.ok:
            return UITypeResult(success=False, message=f"Windows type failed: {outcome.error_text}")
        return self._type_result(outcome.stdout, text)


# ---------------------------------------------------------------------------
# Linux
# ---------------------------------------------------------------------------

XDOTOOL = "xdotool"


class LinuxUIAdapter(BaseUIAdapter):
    """xdotool-based input. Element lookup by title or role is not available."""

    platform = Platform.LINUX

    async def click(self, element: UIElement) -> UIClickResult:
        if element.is_targeted:
            return UIClickResult(
                success=False,
                message="Element not found (no accessibility lookup on this platform)",
                element_found=False,
            )
        outcome = await self._runner.run([XDOTOOL, "click", "1"], timeout=self._timeout)
        if not outcome.ok:
            return UIClickResult(success=False, message=f"Click failed: {outcome.error_text}", element_found=None)
        return UIClickResult(success=True, message="Click successful", element_found=True)

    async def type_text(self, text: str, element: UIElement | None = None) -> UITypeResult:
        if element and element.title:
            return UITypeResult(
                success=False,
                message="Type failed - element not found (no accessibility lookup on this platform)",
            )
        outcome = await self._runner.run([XDOTOOL, "type", "--", text], timeout=self._timeout)
        if not outcome.ok:
            return UITypeResult(success=False, message=f"Type failed: {outcome.error_text}")
        return self._type_result(SUCCESS, text)


def create_ui_adapter(
    platform: Platform,
    runner: InterpreterRunner,
    timeout: float | None = None,
) -> BaseUIAdapter:
    """Pick the adapter for a platform."""
    adapters = {
        Platform.MACOS: MacUIAdapter,
        Platform.WINDOWS: WindowsUIAdapter,
        Platform.LINUX: LinuxUIAdapter,
    }
    adapter_class = adapters[platform]
    logger.debug(f"Using {adapter_class.__name__}", component="adapter")
    return adapter_class(runner, timeout=timeout)
