"""Serialization of Python values into AppleScript and PowerShell source."""

import re
from typing import Any


def slugify(value: str) -> str:
    """Deterministic key fragment: every non-alphanumeric character becomes '_'."""
    return re.sub(r"[^a-zA-Z0-9]", "_", value)


def applescript_string(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def applescript_literal(value: Any) -> str:
    """Render a value as an AppleScript literal.

    Lists become `{a, b}`, dicts become records `{key:value}`.
    """
    if value is None:
        return "missing value"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return repr(value)
    if isinstance(value, (list, tuple)):
        return "{" + ", ".join(applescript_literal(v) for v in value) + "}"
    if isinstance(value, dict):
        fields = ", ".join(
            f"{_applescript_label(k)}:{applescript_literal(v)}" for k, v in value.items()
        )
        return "{" + fields + "}"
    return applescript_string(str(value))


def _applescript_label(key: str) -> str:
    if re.fullmatch(r"[A-Za-z_][A-Za-z0-9_ ]*", key):
        return key
    return f"|{key.replace('|', '')}|"


# PowerShell closes a single-quoted string on any of these
_POWERSHELL_QUOTES = re.compile("(['\u2018\u2019\u201a\u201b])")


def powershell_string(value: str) -> str:
    return "'" + _POWERSHELL_QUOTES.sub(r"\1\1", value) + "'"


def powershell_literal(value: Any) -> str:
    """Render a value as a PowerShell literal.

    Lists become `@(a, b)`, dicts become hashtables `@{key=value}`.
    """
    if value is None:
        return "$null"
    if isinstance(value, bool):
        return "$true" if value else "$false"
    if isinstance(value, (int, float)):
        return repr(value)
    if isinstance(value, (list, tuple)):
        return "@(" + ", ".join(powershell_literal(v) for v in value) + ")"
    if isinstance(value, dict):
        fields = "; ".join(
            f"{powershell_string(str(k))}={powershell_literal(v)}" for k, v in value.items()
        )
        return "@{" + fields + "}"
    return powershell_string(str(value))


def powershell_arguments(arguments: dict[str, Any]) -> str:
    """Render named arguments in flag style: `-Name 'value' -Switch`."""
    parts = []
    for key, value in arguments.items():
        flag = "-" + re.sub(r"[^A-Za-z0-9_]", "", key)
        if value is True:
            parts.append(flag)
        elif value is False:
            parts.append(f"{flag}:$false")
        else:
            parts.append(f"{flag} {powershell_literal(value)}")
    return " ".join(parts)


def sendkeys_escape(text: str) -> str:
    """Escape characters that SendKeys treats as modifiers or groupings."""
    return re.sub(r"([+^%~(){}\[\]])", r"{\1}", text)
