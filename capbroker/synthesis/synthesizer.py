"""Script synthesizer - produces a new script for an action with no tool.

Sources, in order, first success wins:
1. Cache similarity check (candidates are logged and shown to the
   generator, never reused directly)
2. Template library
3. The generation collaborator

Every produced script is stored in the cache before it is tried, and the
trial run's outcome is recorded against it.
"""

import json
import re
from dataclasses import dataclass
from typing import Any, Optional, Protocol, Sequence
from pydantic import BaseModel, Field

from capbroker.cache.store import ScriptCacheStore, script_tool
from capbroker.core.errors import SynthesisFailure
from capbroker.core.logging import get_logger
from capbroker.models.execution import ExecutionContext, ExecutionResult, Platform
from capbroker.models.script import CachedScript
from capbroker.models.tool import ParameterSpec, ScriptLanguage, Tool
from capbroker.runtime.scripts import ScriptExecutor
from .templates import match_template

logger = get_logger("synthesizer")

MAX_SIMILAR = 3


class TextGenerator(Protocol):
    """Anything that turns a prompt into text, e.g. GeminiClient."""

    async def generate(self, prompt: str) -> str:
        ...


class SynthesisRequest(BaseModel):
    """An action that the catalog could not resolve."""
    action: str = Field(..., description="Requested tool name / action text")
    arguments: dict[str, Any] = Field(default_factory=dict)
    context: ExecutionContext = Field(default_factory=ExecutionContext)
    target_app: Optional[str] = None

    @property
    def platform(self) -> Platform:
        return self.context.platform


@dataclass
class SynthesisOutcome:
    """A stored script, its catalog entry, and the result of its trial run."""
    script: CachedScript
    tool: Tool
    trial_result: ExecutionResult


# Generated script language per platform
PLATFORM_LANGUAGE = {
    Platform.MACOS: ScriptLanguage.APPLESCRIPT,
    Platform.WINDOWS: ScriptLanguage.POWERSHELL,
    Platform.LINUX: ScriptLanguage.GENERIC,
}

FENCE_LANGUAGE = {
    "applescript": ScriptLanguage.APPLESCRIPT,
    "powershell": ScriptLanguage.POWERSHELL,
    "ps1": ScriptLanguage.POWERSHELL,
    "javascript": ScriptLanguage.GENERIC,
    "js": ScriptLanguage.GENERIC,
    "sh": ScriptLanguage.GENERIC,
    "bash": ScriptLanguage.GENERIC,
    "shell": ScriptLanguage.GENERIC,
}

_FENCED_BLOCK = re.compile(r"```([\w+-]*)[ \t]*\n(.*?)\n?```", re.DOTALL)
_SCRIPT_MARKER = re.compile(r"Script:\s*(.*)", re.DOTALL)
_APPLESCRIPT_RUN = re.compile(r"on\s+run\s*\{([^}]*)\}", re.IGNORECASE)
_POWERSHELL_PARAM = re.compile(r"param\s*\(([^)]*)\)", re.IGNORECASE)
_POWERSHELL_VARIABLE = re.compile(r"\$(\w+)")


def parse_script_response(text: str) -> tuple[str, Optional[str]]:
    """Extract script text from a generator response.

    Looks for a fenced code block first, then a "Script:" marker.

    Returns:
        (script, fence language tag or None); script is "" if nothing usable
    """
    if not text:
        return "", None

    fenced = _FENCED_BLOCK.search(text)
    if fenced:
        return fenced.group(2).strip(), fenced.group(1).lower() or None

    marker = _SCRIPT_MARKER.search(text)
    if marker:
        return marker.group(1).strip(), None

    return "", None


def extract_parameters(script: str, language: ScriptLanguage) -> dict[str, ParameterSpec]:
    """Read parameter names from `on run {a, b}` or `param(...)` declarations."""
    names: list[str] = []

    if language == ScriptLanguage.APPLESCRIPT:
        match = _APPLESCRIPT_RUN.search(script)
        if match:
            names = [p.strip() for p in match.group(1).split(",")]
    elif language == ScriptLanguage.POWERSHELL:
        match = _POWERSHELL_PARAM.search(script)
        if match:
            names = _POWERSHELL_VARIABLE.findall(match.group(1))

    return {
        name: ParameterSpec(type="string", description=f"Parameter: {name}")
        for name in names if name
    }


class ScriptSynthesizer:
    """Synthesizes, stores and trials scripts for unresolved actions."""

    SYSTEM_PROMPT = """You are a script generation expert. Generate executable scripts for automation tasks.

Rules:
1. Generate ONLY the script code, no explanations
2. Use proper error handling
3. Make scripts reusable with parameters
4. For macOS: Use AppleScript with System Events when needed
5. For Windows: Use PowerShell with proper COM objects
6. Include parameter validation
7. Return success/failure status"""

    def __init__(
        self,
        cache: ScriptCacheStore,
        executor: ScriptExecutor,
        generator: Optional[TextGenerator] = None,
    ):
        self._cache = cache
        self._executor = executor
        self._generator = generator

    @property
    def has_generator(self) -> bool:
        return self._generator is not None

    async def synthesize(self, request: SynthesisRequest) -> SynthesisOutcome:
        """Produce, store and trial a script for `request`.

        Raises:
            SynthesisFailure: No template matched and the generator produced
                nothing usable, or the script failed its trial run
            CacheStoreError: The script could not be persisted
        """
        similar = self._find_similar(request.action)

        template = match_template(request.action, request.platform)
        if template is not None:
            logger.info(f"Using template {template.template.key} for: {request.action}", component="synthesizer")
            script_text = template.script
            language = template.language
            parameters = template.parameters
            description = template.description
            generated_by = "template"
        else:
            script_text, language = await self._generate(request, similar)
            parameters = extract_parameters(script_text, language)
            description = f"Generated script for: {request.action}"
            generated_by = "generator"

        cache_id = await self._cache.store(
            name=request.action,
            description=description,
            script=script_text,
            language=language,
            parameters=parameters,
            original_request=request.context.user_request or request.action,
            tags=[request.action, request.target_app or "system"],
            generated_by=generated_by,
        )
        script = self._cache.peek(cache_id)

        trial = await self._executor.execute(script, request.arguments)
        if trial.success:
            await self._cache.record_success(cache_id)
        else:
            await self._cache.record_failure(cache_id)
            raise SynthesisFailure(
                f"Synthesized script for '{request.action}' failed its trial run",
                action=request.action,
                reason="trial_failed",
                trial_error=trial.error,
                target_app=request.target_app,
            )

        script = self._cache.peek(cache_id)
        return SynthesisOutcome(script=script, tool=script_tool(script), trial_result=trial)

    def _find_similar(self, action: str) -> list[CachedScript]:
        """Cached scripts that look related to `action`, most recently used first."""
        seen: dict[str, CachedScript] = {}
        queries = [action] + [t for t in re.split(r"[\W_]+", action) if len(t) >= 4]
        for query in queries:
            for script in self._cache.find(query):
                seen.setdefault(script.id, script)
        if seen:
            logger.debug(
                f"Found {len(seen)} similar scripts in cache for: {action}",
                component="synthesizer",
                candidates=[s.name for s in seen.values()][:5],
            )
        ranked = sorted(seen.values(), key=lambda s: s.last_used, reverse=True)
        return ranked[:MAX_SIMILAR]

    async def _generate(
        self, request: SynthesisRequest, similar: Sequence[CachedScript] = ()
    ) -> tuple[str, ScriptLanguage]:
        if self._generator is None:
            raise SynthesisFailure(
                f"No template matches '{request.action}' and no generator is configured",
                action=request.action,
                reason="no_source",
                target_app=request.target_app,
            )

        prompt = f"{self.SYSTEM_PROMPT}\n\n{self.build_prompt(request, similar)}"
        try:
            response = await self._generator.generate(prompt)
        except Exception as e:
            raise SynthesisFailure(
                f"Script generation failed for '{request.action}'",
                action=request.action,
                reason="generation_failed",
                target_app=request.target_app,
                cause=e,
            ) from e

        script_text, fence = parse_script_response(response or "")
        if not script_text:
            raise SynthesisFailure(
                f"Could not extract a script for '{request.action}' from the generator response",
                action=request.action,
                reason="no_script",
                target_app=request.target_app,
            )

        language = FENCE_LANGUAGE.get(fence or "", PLATFORM_LANGUAGE[request.platform])
        return script_text, language

    @staticmethod
    def build_prompt(request: SynthesisRequest, similar: Sequence[CachedScript] = ()) -> str:
        """Build the structured generation prompt for a request.

        `similar` cached scripts are listed as reference material only.
        """
        platform = request.platform
        prompt = f"Generate a script to: {request.action}\n\n"

        if request.context.user_request:
            prompt += f"Context: {request.context.user_request}\n\n"
        if request.context.front_app:
            prompt += f"Frontmost Application: {request.context.front_app}\n\n"
        if request.target_app:
            prompt += f"Target Application: {request.target_app}\n\n"
        if request.arguments:
            prompt += f"Parameters: {json.dumps(request.arguments, indent=2, default=str)}\n\n"

        prompt += f"Platform: {platform.value}\n\n"

        if similar:
            prompt += "Related scripts already cached:\n"
            prompt += "".join(script.to_prompt_string() for script in similar)
            prompt += "\n"

        if platform == Platform.MACOS:
            prompt += """Generate AppleScript that:
1. Uses System Events for UI automation if needed
2. Handles the target application properly
3. Includes error handling with try/on error
4. Returns success/failure status
5. Takes its parameters through an `on run {param1, param2}` handler

Script:"""
        elif platform == Platform.WINDOWS:
            prompt += """Generate PowerShell script that:
1. Uses appropriate COM objects or cmdlets
2. Handles the target application properly
3. Includes error handling with try/catch
4. Returns success/failure status
5. Declares its parameters in a param() block

Script:"""
        else:
            prompt += """Generate a POSIX shell script that:
1. Uses standard command-line tools
2. Exits non-zero on failure
3. Takes its parameters as positional arguments

Script:"""

        return prompt
