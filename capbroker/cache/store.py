"""Script cache store - SQLite-backed storage for synthesized scripts.

Every record lives in memory (the index) and in SQLite (the durable copy).
Mutations write through before they reach the index, so a failed write
leaves memory and disk in agreement and a crash loses at most the
mutation in flight. A single asyncio lock serializes writers; reads are
served from the index without locking.
"""

import asyncio
import hashlib
import json
from datetime import datetime, timedelta
from pathlib import Path
from typing import Optional
import aiosqlite
from pydantic import ValidationError

from capbroker.core.errors import CacheStoreError
from capbroker.core.logging import get_logger
from capbroker.models.script import CachedScript, ScriptProvenance, as_utc, utcnow
from capbroker.models.tool import GeneratedScript, ParameterSpec, ScriptLanguage, Tool

logger = get_logger("cache")

# Below this many executions a script is in its grace period: exported
# regardless of success rate and never evicted on failure rate alone
GRACE_EXECUTIONS = 3

MIN_EXPORT_SUCCESS_RATE = 0.5


def script_id(name: str, script: str, parameters: dict[str, ParameterSpec]) -> str:
    """Deterministic content hash over name, script text and parameters."""
    serialized = json.dumps(
        {key: spec.model_dump() for key, spec in parameters.items()},
        sort_keys=True,
    )
    digest = hashlib.sha256(f"{name}:{script}:{serialized}".encode("utf-8"))
    return digest.hexdigest()[:16]


class ScriptCacheStore:
    """Durable store of synthesized scripts plus usage statistics.

    Usage:
        store = ScriptCacheStore(path)
        await store.open()
        script_id = await store.store(name, description, text, language, params)
    """

    def __init__(self, db_path: str | Path, min_samples: int = GRACE_EXECUTIONS):
        self._db_path = Path(db_path)
        self._min_samples = min_samples
        self._scripts: dict[str, CachedScript] = {}
        self._write_lock = asyncio.Lock()
        self._initialized = False

    @property
    def path(self) -> Path:
        return self._db_path

    async def _ensure_initialized(self) -> aiosqlite.Connection:
        """Get connection and ensure tables exist."""
        try:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = await aiosqlite.connect(self._db_path)
        except (OSError, aiosqlite.Error) as e:
            raise CacheStoreError(f"Cannot open script cache: {e}", path=str(self._db_path), cause=e)

        if not self._initialized:
            try:
                await conn.executescript("""
                    CREATE TABLE IF NOT EXISTS scripts (
                        id TEXT PRIMARY KEY,
                        record TEXT NOT NULL,
                        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                    );
                """)
                await conn.commit()
            except aiosqlite.Error as e:
                await conn.close()
                raise CacheStoreError(f"Cannot initialize script cache: {e}", path=str(self._db_path), cause=e)
            self._initialized = True

        return conn

    async def open(self) -> None:
        """Load every persisted record into the in-memory index.

        Records that no longer validate are skipped with a warning. Fields
        unknown to this version are ignored and missing ones defaulted.

        Raises:
            CacheStoreError: If the database cannot be opened or read
        """
        conn = await self._ensure_initialized()

        try:
            cursor = await conn.execute("SELECT id, record FROM scripts")
            rows = await cursor.fetchall()
        except aiosqlite.Error as e:
            raise CacheStoreError(f"Cannot read script cache: {e}", path=str(self._db_path), cause=e)
        finally:
            await conn.close()

        scripts = {}
        for row_id, record in rows:
            try:
                script = CachedScript.model_validate_json(record)
            except ValidationError as e:
                logger.warning(f"Skipping unreadable cache record {row_id}: {e.error_count()} errors",
                               component="cache", cache_id=row_id)
                continue
            scripts[script.id] = script

        self._scripts = scripts
        logger.info(f"Loaded {len(scripts)} cached scripts", component="cache")

    async def _persist(self, script: CachedScript) -> None:
        conn = await self._ensure_initialized()
        try:
            await conn.execute(
                """
                INSERT INTO scripts (id, record, updated_at) VALUES (?, ?, CURRENT_TIMESTAMP)
                ON CONFLICT(id) DO UPDATE SET record = excluded.record, updated_at = CURRENT_TIMESTAMP
                """,
                (script.id, script.model_dump_json()),
            )
            await conn.commit()
        except aiosqlite.Error as e:
            raise CacheStoreError(f"Cannot write script {script.id}: {e}", path=str(self._db_path), cause=e)
        finally:
            await conn.close()

    async def _delete(self, ids: list[str]) -> None:
        conn = await self._ensure_initialized()
        try:
            await conn.executemany("DELETE FROM scripts WHERE id = ?", [(i,) for i in ids])
            await conn.commit()
        except aiosqlite.Error as e:
            raise CacheStoreError(f"Cannot delete scripts: {e}", path=str(self._db_path), cause=e)
        finally:
            await conn.close()

    async def store(
        self,
        name: str,
        description: str,
        script: str,
        language: ScriptLanguage,
        parameters: Optional[dict[str, ParameterSpec]] = None,
        original_request: str = "",
        tags: Optional[list[str]] = None,
        generated_by: str = "unknown",
    ) -> str:
        """Store a script and return its id.

        Idempotent: identical (name, script, parameters) return the id of the
        existing record and create nothing new.
        """
        parameters = parameters or {}
        new_id = script_id(name, script, parameters)

        async with self._write_lock:
            if new_id in self._scripts:
                return new_id

            now = utcnow()
            record = CachedScript(
                id=new_id,
                name=name,
                description=description,
                script=script,
                language=language,
                parameters=parameters,
                created=now,
                last_used=now,
                provenance=ScriptProvenance(
                    generated_by=generated_by,
                    original_request=original_request,
                    tags=tags or [],
                ),
            )
            await self._persist(record)
            self._scripts[new_id] = record

        logger.script_cached(new_id, name, generated_by)
        return new_id

    async def get(self, script_id: str) -> Optional[CachedScript]:
        """Get a script by id and touch its last-used time."""
        async with self._write_lock:
            script = self._scripts.get(script_id)
            if script is None:
                return None
            touched = script.model_copy(update={"last_used": utcnow()})
            await self._persist(touched)
            self._scripts[script_id] = touched
            return touched.model_copy()

    def peek(self, script_id: str) -> Optional[CachedScript]:
        """Get a script by id without touching it."""
        script = self._scripts.get(script_id)
        return script.model_copy() if script else None

    def find(self, query: str) -> list[CachedScript]:
        """Case-insensitive substring search over name, description and tags.

        Returns:
            Matching scripts, most recently used first
        """
        needle = query.lower()
        matches = [
            script for script in self._scripts.values()
            if needle in script.name.lower()
            or needle in script.description.lower()
            or any(needle in tag.lower() for tag in script.provenance.tags)
        ]
        matches.sort(key=lambda s: s.last_used, reverse=True)
        return [s.model_copy() for s in matches]

    def list_scripts(self) -> list[CachedScript]:
        """All scripts, most recently used first."""
        return self.find("")

    async def record_success(self, script_id: str) -> None:
        await self._record(script_id, success=True)

    async def record_failure(self, script_id: str) -> None:
        await self._record(script_id, success=False)

    async def _record(self, script_id: str, success: bool) -> None:
        async with self._write_lock:
            script = self._scripts.get(script_id)
            if script is None:
                logger.debug(f"Execution recorded for unknown script {script_id}", component="cache")
                return
            if success:
                update = {"success_count": script.success_count + 1}
            else:
                update = {"failure_count": script.failure_count + 1}
            update["last_used"] = utcnow()
            updated = script.model_copy(update=update)
            await self._persist(updated)
            self._scripts[script_id] = updated

    async def remove(self, script_id: str) -> bool:
        """Remove a script. Returns False if it was not cached."""
        async with self._write_lock:
            if script_id not in self._scripts:
                return False
            await self._delete([script_id])
            del self._scripts[script_id]
            return True

    async def cleanup(
        self,
        max_age: timedelta = timedelta(days=30),
        max_failure_rate: float = 0.8,
        now: Optional[datetime] = None,
    ) -> list[str]:
        """Evict scripts older than `max_age` or failing too often.

        Scripts with fewer than `min_samples` executions are never evicted
        on failure rate alone.

        Returns:
            Ids of the evicted scripts
        """
        now = as_utc(now) if now else utcnow()

        async with self._write_lock:
            evicted = []
            for sid, script in self._scripts.items():
                too_old = now - script.created > max_age
                failing = (
                    script.total_executions >= self._min_samples
                    and script.failure_rate > max_failure_rate
                )
                if too_old or failing:
                    evicted.append(sid)

            if evicted:
                await self._delete(evicted)
                for sid in evicted:
                    del self._scripts[sid]

        if evicted:
            logger.scripts_evicted(len(evicted))
        return evicted

    def export_as_tools(self) -> list[Tool]:
        """One Tool per script that is still trusted.

        A script is exported while it is in its grace period or its success
        rate is at least 50%.
        """
        tools = []
        for script in self._scripts.values():
            if (
                script.total_executions >= GRACE_EXECUTIONS
                and script.success_rate < MIN_EXPORT_SUCCESS_RATE
            ):
                continue
            tools.append(script_tool(script))
        return tools

    def stats(self) -> dict:
        """Get cache statistics."""
        scripts = list(self._scripts.values())
        successes = sum(s.success_count for s in scripts)
        failures = sum(s.failure_count for s in scripts)
        rated = [s.success_rate for s in scripts if s.total_executions > 0]
        return {
            "total_scripts": len(scripts),
            "total_successes": successes,
            "total_failures": failures,
            "average_success_rate": sum(rated) / len(rated) if rated else 0.0,
        }

    def __len__(self) -> int:
        return len(self._scripts)

    def __contains__(self, script_id: str) -> bool:
        return script_id in self._scripts


def script_tool(script: CachedScript) -> Tool:
    """The catalog entry for a cached script. The tool is named after the action."""
    return Tool(
        name=script.name,
        description=script.description,
        parameter_schema=dict(script.parameters),
        exec_descriptor=GeneratedScript(cache_id=script.id, language=script.language),
    )
