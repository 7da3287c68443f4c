"""Custom exceptions for the capability broker.

Provides user-friendly error messages and structured error handling.
Most of these never reach a caller of the registry: scan and resolution
errors are absorbed and turned into results, see `DynamicCapabilityRegistry`.
"""

from typing import Optional


class BrokerError(Exception):
    """Base exception for all broker errors.

    Provides:
    - User-friendly message
    - Technical details for debugging
    - Suggested fixes when applicable
    """

    def __init__(
        self,
        message: str,
        details: Optional[str] = None,
        suggestion: Optional[str] = None,
        cause: Optional[Exception] = None
    ):
        self.message = message
        self.details = details
        self.suggestion = suggestion
        self.cause = cause
        super().__init__(message)

    def format_user_friendly(self) -> str:
        """Format error for display to user."""
        parts = [f"❌ {self.message}"]

        if self.details:
            parts.append(f"   Details: {self.details}")

        if self.suggestion:
            parts.append(f"   💡 Try: {self.suggestion}")

        return "\n".join(parts)

    def __str__(self) -> str:
        return self.format_user_friendly()


class ConfigError(BrokerError):
    """Configuration-related errors."""

    def __init__(self, message: str, config_key: Optional[str] = None, **kwargs):
        suggestion = kwargs.pop("suggestion", None)
        if not suggestion and config_key:
            suggestion = f"Set the {config_key} environment variable or add it to .env"
        super().__init__(message, suggestion=suggestion, **kwargs)
        self.config_key = config_key


class ScanError(BrokerError):
    """A single scan item could not be read. Never escapes a scanner."""

    def __init__(
        self,
        message: str,
        scanner: Optional[str] = None,
        item: Optional[str] = None,
        **kwargs
    ):
        details = kwargs.pop("details", None)
        if not details:
            parts = []
            if scanner:
                parts.append(f"Scanner: {scanner}")
            if item:
                parts.append(f"Item: {item}")
            if parts:
                details = ", ".join(parts)

        super().__init__(message, details=details, **kwargs)
        self.scanner = scanner
        self.item = item


class ResolutionMiss(BrokerError):
    """The requested name is not in the live catalog."""

    def __init__(self, name: str, **kwargs):
        super().__init__(f"No tool named '{name}'", details=f"Tool: {name}", **kwargs)
        self.name = name


class SynthesisFailure(BrokerError):
    """No script could be produced, or the produced script failed its trial run."""

    def __init__(
        self,
        message: str,
        action: Optional[str] = None,
        reason: str = "no_script",
        trial_error: Optional[str] = None,
        target_app: Optional[str] = None,
        **kwargs
    ):
        details = kwargs.pop("details", None)
        if not details and action:
            details = f"Action: {action}"
            if trial_error:
                details += f", Trial error: {trial_error[:200]}"

        super().__init__(message, details=details, **kwargs)
        self.action = action
        self.reason = reason
        self.trial_error = trial_error
        self.target_app = target_app


class ExecutionFailure(BrokerError):
    """An interpreter exited non-zero, timed out, or could not be started."""

    def __init__(
        self,
        message: str,
        backend: Optional[str] = None,
        exit_code: Optional[int] = None,
        timed_out: bool = False,
        **kwargs
    ):
        suggestion = kwargs.pop("suggestion", None)
        if not suggestion and timed_out:
            suggestion = "The interpreter did not answer in time; retry or raise CAPBROKER_TIMEOUT"

        details = kwargs.pop("details", None)
        if not details and backend:
            details = f"Backend: {backend}"
            if exit_code is not None:
                details += f", Exit code: {exit_code}"

        super().__init__(message, details=details, suggestion=suggestion, **kwargs)
        self.backend = backend
        self.exit_code = exit_code
        self.timed_out = timed_out


class CacheStoreError(BrokerError):
    """The durable script cache cannot be read or written."""

    def __init__(self, message: str, path: Optional[str] = None, **kwargs):
        details = kwargs.pop("details", None)
        if not details and path:
            details = f"Store: {path}"

        suggestion = kwargs.pop("suggestion", None)
        if not suggestion:
            suggestion = "Check that the data directory exists and is writable (CAPBROKER_DATA_DIR)"

        super().__init__(message, details=details, suggestion=suggestion, **kwargs)
        self.path = path


def format_exception_chain(error: Exception, max_depth: int = 5) -> str:
    """Format an exception chain for display.

    Handles nested exceptions and provides clean output.
    """
    lines = []
    current = error
    depth = 0

    while current and depth < max_depth:
        if isinstance(current, BrokerError):
            lines.append(current.format_user_friendly())
        else:
            lines.append(f"❌ {type(current).__name__}: {current}")

        current = getattr(current, "__cause__", None) or getattr(current, "cause", None)
        depth += 1

        if current:
            lines.append("   Caused by:")

    return "\n".join(lines)
