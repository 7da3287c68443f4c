"""Fallback negotiator - the structured answer to an unresolvable request.

When neither the catalog nor the synthesizer can satisfy a request, the
negotiator classifies why and tells the surrounding assistant what it can
offer instead (install an app, ask for a permission, authorize an account).
"""

import re
from enum import Enum
from typing import Any, Optional
from urllib.parse import quote
from pydantic import BaseModel, Field

from capbroker.core.errors import SynthesisFailure
from capbroker.core.logging import get_logger
from capbroker.models.execution import ExecutionResult, Platform

logger = get_logger("negotiator")


class NegotiationReason(str, Enum):
    """Why a request could not be resolved."""
    MISSING_APP = "missing_app"
    MISSING_AUTHORIZATION = "missing_authorization"
    MISSING_PERMISSION = "missing_permission"
    MISSING_SCRIPT = "missing_script"
    UNKNOWN_ACTION = "unknown_action"


class SuggestedAction(str, Enum):
    """What the assistant can offer next."""
    INSTALL_APP = "install_app"
    OPEN_OAUTH = "open_oauth"
    REQUEST_PERMISSION = "request_permission"
    GENERATE_SCRIPT = "generate_script"
    MANUAL_INSTRUCTION = "manual_instruction"


class NegotiationRequest(BaseModel):
    """Everything known about a failed resolution."""
    action: str
    platform: Platform
    target_app: Optional[str] = None
    synthesis_reason: Optional[str] = Field(default=None, description="SynthesisFailure.reason, if synthesis ran")
    error_text: Optional[str] = None

    @classmethod
    def from_failure(cls, action: str, platform: Platform, failure: Optional[SynthesisFailure]) -> "NegotiationRequest":
        if failure is None:
            return cls(action=action, platform=platform)
        return cls(
            action=action,
            platform=platform,
            target_app=failure.target_app,
            synthesis_reason=failure.reason,
            error_text=failure.trial_error,
        )


class NegotiationResponse(BaseModel):
    """A user-actionable, machine-readable answer. Never a success."""
    reason: NegotiationReason
    proposal: str
    suggested_action: SuggestedAction
    next_steps: list[str] = Field(default_factory=list)
    details: dict[str, Any] = Field(default_factory=dict)

    def to_result(self, action: str) -> ExecutionResult:
        return ExecutionResult.fail(
            self.proposal,
            output=self.proposal,
            backend="negotiator",
            action=action,
            reason=self.reason.value,
            suggested_action=self.suggested_action.value,
            next_steps=list(self.next_steps),
            **self.details,
        )


# Error text patterns, checked in this order
APP_MISSING_PATTERNS = [
    r"can.t get application",
    r"-10814",
    r"application isn.t running",
    r"unable to find application",
    r"80040154",
    r"class not registered",
    r"cannot create activex component",
    r"retrieving the com class factory",
]

PERMISSION_PATTERNS = {
    "accessibility": [r"assistive access", r"-25211", r"accessibility"],
    "automation": [r"-1743", r"not authori[sz]ed to send apple events", r"not allowed to send keystrokes"],
    "screen_recording": [r"screen recording"],
    "microphone": [r"microphone"],
    "camera": [r"camera"],
    "files": [r"operation not permitted", r"full disk access", r"unauthorizedaccessexception", r"access (to the path .* )?is denied"],
}

AUTHORIZATION_PATTERNS = [r"oauth", r"access token", r"invalid_grant", r"\b401\b", r"sign.?in required", r"not signed in"]

OAUTH_PROVIDERS = {
    "google": "https://accounts.google.com/o/oauth2/v2/auth",
    "microsoft": "https://login.microsoftonline.com/common/oauth2/v2.0/authorize",
    "github": "https://github.com/login/oauth/authorize",
    "slack": "https://slack.com/oauth/v2/authorize",
    "discord": "https://discord.com/api/oauth2/authorize",
    "zoom": "https://zoom.us/oauth/authorize",
    "dropbox": "https://www.dropbox.com/oauth2/authorize",
    "box": "https://account.box.com/api/oauth2/authorize",
}

_MAC_PRIVACY = "Open System Settings > Privacy & Security"
_WIN_PRIVACY = "Open Settings > Privacy & Security"

PERMISSION_GUIDES = {
    Platform.MACOS: {
        "accessibility": [_MAC_PRIVACY, 'Select "Accessibility"', "Enable the assistant in the list of allowed apps", "Restart the assistant after granting permission"],
        "automation": [_MAC_PRIVACY, 'Select "Automation"', "Allow the assistant to control the target application"],
        "screen_recording": [_MAC_PRIVACY, 'Select "Screen Recording"', "Enable the assistant in the list of allowed apps", "Restart the assistant after granting permission"],
        "microphone": [_MAC_PRIVACY, 'Select "Microphone"', "Enable the assistant in the list of allowed apps"],
        "camera": [_MAC_PRIVACY, 'Select "Camera"', "Enable the assistant in the list of allowed apps"],
        "files": [_MAC_PRIVACY, 'Select "Files and Folders" or "Full Disk Access"', "Enable the assistant and select the folders it may access"],
    },
    Platform.WINDOWS: {
        "accessibility": [_WIN_PRIVACY + " > Accessibility", 'Turn on "Let apps access your accessibility features"', "Allow the assistant"],
        "microphone": [_WIN_PRIVACY + " > Microphone", 'Turn on "Microphone access"', "Allow the assistant"],
        "camera": [_WIN_PRIVACY + " > Camera", 'Turn on "Camera access"', "Allow the assistant"],
        "files": [_WIN_PRIVACY + " > File system", 'Turn on "File system access"', "Allow the assistant"],
    },
}

GENERIC_PERMISSION_STEPS = {
    Platform.MACOS: [_MAC_PRIVACY, "Look for the relevant permission category", "Add the assistant to the allowed apps list"],
    Platform.WINDOWS: [_WIN_PRIVACY, "Look for the relevant permission category", "Add the assistant to the allowed apps list"],
    Platform.LINUX: ["Check the desktop environment's privacy settings", "Grant the assistant the permission it needs"],
}

UNKNOWN_ACTION_STEPS = [
    "Try rephrasing your request",
    "Break down complex actions into simpler steps",
    "Check if the required app is installed",
    "Verify that necessary permissions are granted",
]


def _matches(patterns: list[str], text: str) -> bool:
    return any(re.search(p, text, re.IGNORECASE) for p in patterns)


def install_url(app_name: str, platform: Platform) -> Optional[str]:
    """App store search URL for an application on this platform."""
    if platform == Platform.MACOS:
        return f"macappstore://search.itunes.apple.com/WebObjects/MZSearch.woa/wa/search?media=software&term={quote(app_name)}"
    if platform == Platform.WINDOWS:
        return f"ms-windows-store://search/?query={quote(app_name)}"
    return None


def _app_from_error(text: str) -> Optional[str]:
    match = re.search(r'application "([^"]+)"', text) or re.search(r"-ComObject\s+'?([\w.]+)", text)
    return match.group(1) if match else None


class FallbackNegotiator:
    """Classifies unresolvable requests and proposes a way forward."""

    def negotiate(self, request: NegotiationRequest) -> NegotiationResponse:
        """Build the response for a failed resolution. Never raises."""
        response = self._classify(request)
        logger.negotiated(request.action, response.reason.value)
        return response

    def _classify(self, request: NegotiationRequest) -> NegotiationResponse:
        text = request.error_text or ""

        if not request.action.strip():
            return self._unknown_action(request)

        if text and _matches(APP_MISSING_PATTERNS, text):
            return self._missing_app(request, request.target_app or _app_from_error(text))

        if text:
            for permission, patterns in PERMISSION_PATTERNS.items():
                if _matches(patterns, text):
                    return self._missing_permission(request, permission)

            if _matches(AUTHORIZATION_PATTERNS, text):
                return self._missing_authorization(request, text)

        if request.synthesis_reason in ("no_script", "generation_failed", "trial_failed"):
            return self._missing_script(request)

        return self._unknown_action(request)

    def _missing_app(self, request: NegotiationRequest, app_name: Optional[str]) -> NegotiationResponse:
        app_label = app_name or "The required application"
        details: dict[str, Any] = {}
        steps: list[str] = []

        url = install_url(app_name, request.platform) if app_name else None
        if url:
            details["install_url"] = url
        if app_name:
            details["app_name"] = app_name

        if request.platform == Platform.MACOS:
            steps += ["Search for the app in the Mac App Store", "Or download it from the official website"]
        elif request.platform == Platform.WINDOWS:
            steps += ["Search for the app in the Microsoft Store", "Or download it from the official website"]
        else:
            steps += ["Install the app with your package manager"]
        steps.append(f"Then retry: {request.action}")

        return NegotiationResponse(
            reason=NegotiationReason.MISSING_APP,
            proposal=f"{app_label} is not installed. I can help you install it, then try '{request.action}' again.",
            suggested_action=SuggestedAction.INSTALL_APP,
            next_steps=steps,
            details=details,
        )

    def _missing_permission(self, request: NegotiationRequest, permission: str) -> NegotiationResponse:
        guides = PERMISSION_GUIDES.get(request.platform, {})
        steps = list(guides.get(permission) or GENERIC_PERMISSION_STEPS[request.platform])
        label = permission.replace("_", " ")
        return NegotiationResponse(
            reason=NegotiationReason.MISSING_PERMISSION,
            proposal=f"'{request.action}' needs {label} permission. Please grant it in system settings and try again.",
            suggested_action=SuggestedAction.REQUEST_PERMISSION,
            next_steps=steps,
            details={"permission_type": permission},
        )

    def _missing_authorization(self, request: NegotiationRequest, text: str) -> NegotiationResponse:
        lowered = text.lower()
        provider = next((p for p in OAUTH_PROVIDERS if p in lowered), None)
        details: dict[str, Any] = {}

        if provider:
            details["oauth_provider"] = provider
            details["oauth_url"] = OAUTH_PROVIDERS[provider]
            steps = [
                f"Open the {provider} authorization page",
                "Complete the authorization flow",
                "Retry the request once the account is connected",
            ]
            proposal = f"'{request.action}' needs access to your {provider} account. Please authorize it first."
        else:
            steps = ["Sign in to the account the action uses", "Retry the request once signed in"]
            proposal = f"'{request.action}' needs an account authorization that is missing or expired."

        return NegotiationResponse(
            reason=NegotiationReason.MISSING_AUTHORIZATION,
            proposal=proposal,
            suggested_action=SuggestedAction.OPEN_OAUTH,
            next_steps=steps,
            details=details,
        )

    def _missing_script(self, request: NegotiationRequest) -> NegotiationResponse:
        action = request.action
        steps = [
            "Describe the action in more detail so a script can be generated",
            "Name the application that should perform it",
            "Check that the application is installed and configured",
        ]

        lowered = action.lower()
        if "calendar" in lowered or "event" in lowered:
            steps += ["Set up the calendar application if not already configured", "Grant calendar permissions if needed"]
        if "email" in lowered or "mail" in lowered:
            steps += ["Set up the mail application if not already configured", "Configure email accounts if needed"]

        proposal = f"I couldn't produce a working script for '{action}' yet."
        if request.error_text:
            proposal += f" The last attempt failed: {request.error_text.strip()[:200]}"

        return NegotiationResponse(
            reason=NegotiationReason.MISSING_SCRIPT,
            proposal=proposal,
            suggested_action=SuggestedAction.GENERATE_SCRIPT,
            next_steps=steps,
        )

    def _unknown_action(self, request: NegotiationRequest) -> NegotiationResponse:
        action = request.action.strip() or "unspecified"
        return NegotiationResponse(
            reason=NegotiationReason.UNKNOWN_ACTION,
            proposal=f"I don't know how to '{action}' on this computer yet.",
            suggested_action=SuggestedAction.MANUAL_INSTRUCTION,
            next_steps=list(UNKNOWN_ACTION_STEPS),
        )
