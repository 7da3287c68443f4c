"""Script cache - durable storage of synthesized scripts."""

from .store import ScriptCacheStore, script_id, script_tool

__all__ = ["ScriptCacheStore", "script_id", "script_tool"]
