"""Hand-authored script templates for high-value actions.

Templates are matched by keyword against the action text and instantiated
for the current platform. macOS templates are AppleScript taking their
arguments through `on run argv` (in parameter order); Windows templates
are PowerShell script blocks driving Outlook over COM.
"""

from dataclasses import dataclass, field
from typing import Optional

from capbroker.models.execution import Platform
from capbroker.models.tool import ParameterSpec, ScriptLanguage


@dataclass
class ScriptTemplate:
    """A template with one script body per supported platform."""
    key: str
    keywords: list[str]
    description: str
    parameters: dict[str, ParameterSpec]
    scripts: dict[Platform, tuple[ScriptLanguage, str]] = field(default_factory=dict)

    def matches(self, action: str) -> bool:
        text = action.lower()
        return any(keyword in text for keyword in self.keywords)


@dataclass
class TemplateMatch:
    """A template instantiated for one platform."""
    template: ScriptTemplate
    language: ScriptLanguage
    script: str

    @property
    def description(self) -> str:
        return self.template.description

    @property
    def parameters(self) -> dict[str, ParameterSpec]:
        return dict(self.template.parameters)


def _params(**descriptions: str) -> dict[str, ParameterSpec]:
    return {name: ParameterSpec(type="string", description=text) for name, text in descriptions.items()}


CALENDAR_EVENT = ScriptTemplate(
    key="calendar_event",
    keywords=["calendar", "event", "meeting"],
    description="Create a calendar event",
    parameters=_params(
        title="Event title",
        start="Start date/time",
        end="End date/time",
        location="Event location",
    ),
    scripts={
        Platform.MACOS: (ScriptLanguage.APPLESCRIPT, """on run argv
    set eventTitle to "New Event"
    set startDate to (current date)
    set eventLocation to ""
    if (count of argv) > 0 and item 1 of argv is not "" then set eventTitle to item 1 of argv
    if (count of argv) > 1 and item 2 of argv is not "" then set startDate to date (item 2 of argv)
    set endDate to startDate + 3600
    if (count of argv) > 2 and item 3 of argv is not "" then set endDate to date (item 3 of argv)
    if (count of argv) > 3 then set eventLocation to item 4 of argv
    tell application "Calendar"
        tell calendar 1
            make new event with properties {summary:eventTitle, start date:startDate, end date:endDate, location:eventLocation}
        end tell
    end tell
    return "Event created: " & eventTitle
end run"""),
        Platform.WINDOWS: (ScriptLanguage.POWERSHELL, """param([string]$title = 'New Event', [string]$start = '', [string]$end = '', [string]$location = '')
$ErrorActionPreference = 'Stop'
$outlook = New-Object -ComObject Outlook.Application
$item = $outlook.CreateItem(1)
$item.Subject = $title
$startTime = if ($start) { [datetime]::Parse($start) } else { Get-Date }
$item.Start = $startTime
$item.End = if ($end) { [datetime]::Parse($end) } else { $startTime.AddHours(1) }
$item.Location = $location
$item.Save()
Write-Output "Event created: $title\""""),
    },
)

COMPOSE_EMAIL = ScriptTemplate(
    key="compose_email",
    keywords=["email", "mail", "send"],
    description="Compose an email",
    parameters=_params(
        to="Recipient email address",
        subject="Email subject",
        body="Email body",
    ),
    scripts={
        Platform.MACOS: (ScriptLanguage.APPLESCRIPT, """on run argv
    set recipientAddress to ""
    set messageSubject to "New Message"
    set messageBody to ""
    if (count of argv) > 0 then set recipientAddress to item 1 of argv
    if (count of argv) > 1 and item 2 of argv is not "" then set messageSubject to item 2 of argv
    if (count of argv) > 2 then set messageBody to item 3 of argv
    tell application "Mail"
        set newMessage to make new outgoing message with properties {subject:messageSubject, content:messageBody, visible:true}
        if recipientAddress is not "" then
            tell newMessage to make new to recipient at end of to recipients with properties {address:recipientAddress}
        end if
        activate
    end tell
    return "Email composer opened"
end run"""),
        Platform.WINDOWS: (ScriptLanguage.POWERSHELL, """param([string]$to = '', [string]$subject = 'New Message', [string]$body = '')
$ErrorActionPreference = 'Stop'
$outlook = New-Object -ComObject Outlook.Application
$mail = $outlook.CreateItem(0)
$mail.To = $to
$mail.Subject = $subject
$mail.Body = $body
$mail.Display()
Write-Output 'Email composer opened'"""),
    },
)

CREATE_NOTE = ScriptTemplate(
    key="create_note",
    keywords=["note", "write"],
    description="Create a note",
    parameters=_params(
        title="Note title",
        content="Note content",
    ),
    scripts={
        Platform.MACOS: (ScriptLanguage.APPLESCRIPT, """on run argv
    set noteTitle to "New Note"
    set noteBody to ""
    if (count of argv) > 0 and item 1 of argv is not "" then set noteTitle to item 1 of argv
    if (count of argv) > 1 then set noteBody to item 2 of argv
    tell application "Notes"
        make new note with properties {name:noteTitle, body:noteBody}
    end tell
    return "Note created: " & noteTitle
end run"""),
        Platform.WINDOWS: (ScriptLanguage.POWERSHELL, """param([string]$title = 'New Note', [string]$content = '')
$ErrorActionPreference = 'Stop'
$outlook = New-Object -ComObject Outlook.Application
$note = $outlook.CreateItem(5)
$note.Body = "$title`r`n$content"
$note.Save()
Write-Output "Note created: $title\""""),
    },
)

CREATE_REMINDER = ScriptTemplate(
    key="create_reminder",
    keywords=["reminder", "todo", "task"],
    description="Create a reminder",
    parameters=_params(
        title="Reminder title",
        due="Due date",
    ),
    scripts={
        Platform.MACOS: (ScriptLanguage.APPLESCRIPT, """on run argv
    set reminderTitle to "New Reminder"
    set dueDate to (current date) + 86400
    if (count of argv) > 0 and item 1 of argv is not "" then set reminderTitle to item 1 of argv
    if (count of argv) > 1 and item 2 of argv is not "" then set dueDate to date (item 2 of argv)
    tell application "Reminders"
        make new reminder with properties {name:reminderTitle, due date:dueDate}
    end tell
    return "Reminder created: " & reminderTitle
end run"""),
        Platform.WINDOWS: (ScriptLanguage.POWERSHELL, """param([string]$title = 'New Reminder', [string]$due = '')
$ErrorActionPreference = 'Stop'
$outlook = New-Object -ComObject Outlook.Application
$task = $outlook.CreateItem(3)
$task.Subject = $title
$task.DueDate = if ($due) { [datetime]::Parse($due) } else { (Get-Date).AddDays(1) }
$task.Save()
Write-Output "Reminder created: $title\""""),
    },
)

# Checked in order; the first matching template wins
TEMPLATES: list[ScriptTemplate] = [CALENDAR_EVENT, COMPOSE_EMAIL, CREATE_NOTE, CREATE_REMINDER]


def match_template(action: str, platform: Platform) -> Optional[TemplateMatch]:
    """Find the first template whose keywords appear in `action`.

    Returns None when nothing matches or the template has no body for
    this platform.
    """
    for template in TEMPLATES:
        if not template.matches(action):
            continue
        body = template.scripts.get(platform)
        if body is None:
            return None
        language, script = body
        return TemplateMatch(template=template, language=language, script=script)
    return None
