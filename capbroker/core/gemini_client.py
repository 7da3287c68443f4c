"""Gemini client - the text generation collaborator for script synthesis.

Wraps Google's Gemini API behind `generate(prompt) -> str`, the only
interface the synthesizer needs. Any object with that coroutine can be
injected instead.
"""

import asyncio
from google import genai

from .errors import ConfigError
from .logging import get_logger

logger = get_logger("gemini")


class GeminiClient:
    """Client for interacting with the Gemini API.

    Handles:
    - API configuration
    - The script generation system prompt
    - Retrying on rate limits
    """

    SYSTEM_PROMPTS = {
        "script_generation": """You write small desktop automation scripts.

Scripts must:
1. Do exactly the requested action and nothing else.
2. Take their inputs as parameters (AppleScript `on run {...}`, PowerShell `param(...)`).
3. Report failure through a non-zero exit or an error, never silently.
4. Be returned in a single fenced code block tagged with the language.""",
    }

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-2.0-flash",
        mode: str = "script_generation",
        rate_limit_delay: float = 60.0,
    ):
        """Initialize Gemini client.

        Args:
            api_key: Google API key for Gemini
            model: Model to use
            mode: System prompt to prepend (key of SYSTEM_PROMPTS)
            rate_limit_delay: Seconds to wait after a rate-limit response
        """
        if not api_key:
            raise ConfigError("Gemini API key is not set", config_key="GEMINI_API_KEY")
        if mode not in self.SYSTEM_PROMPTS:
            raise ValueError(f"Unknown mode: {mode}. Use: {list(self.SYSTEM_PROMPTS.keys())}")

        self._client = genai.Client(api_key=api_key)
        self._model_name = model
        self._mode = mode
        self._rate_limit_delay = rate_limit_delay

    async def generate(self, prompt: str, retries: int = 3) -> str:
        """Generate a response from Gemini.

        Args:
            prompt: The user prompt
            retries: Number of times to retry on rate limit

        Returns:
            Response text ("" if the model returned no text)
        """
        system = self.SYSTEM_PROMPTS[self._mode]
        full_prompt = f"{system}\n\n## Request\n{prompt}"

        for attempt in range(retries + 1):
            try:
                response = await self._client.aio.models.generate_content(
                    model=self._model_name,
                    contents=full_prompt
                )
                return response.text or ""
            except Exception as e:
                error_str = str(e).lower()
                rate_limited = "429" in error_str or "resource" in error_str or "quota" in error_str
                if not rate_limited or attempt >= retries:
                    raise
                logger.warning(
                    f"Rate limit hit. Waiting {self._rate_limit_delay:.0f}s...",
                    component="gemini",
                    attempt=attempt + 1,
                )
                await asyncio.sleep(self._rate_limit_delay)

        return ""
