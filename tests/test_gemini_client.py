"""Tests for the Gemini text generation client."""

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from capbroker.core.errors import ConfigError
from capbroker.core.gemini_client import GeminiClient


@pytest.fixture
def mock_genai():
    with patch("capbroker.core.gemini_client.genai.Client") as MockClient:
        generate = AsyncMock()
        MockClient.return_value.aio.models.generate_content = generate
        yield generate


@pytest.mark.asyncio
async def test_generate_returns_text(mock_genai):
    mock_genai.return_value = MagicMock(text="```applescript\nreturn 1\n```")
    client = GeminiClient("test-key", model="gemini-test")

    text = await client.generate("rename frontmost window")

    assert text == "```applescript\nreturn 1\n```"
    kwargs = mock_genai.call_args.kwargs
    assert kwargs["model"] == "gemini-test"
    assert "rename frontmost window" in kwargs["contents"]
    assert "fenced code block" in kwargs["contents"]


@pytest.mark.asyncio
async def test_empty_response_is_empty_text(mock_genai):
    mock_genai.return_value = MagicMock(text=None)
    client = GeminiClient("test-key")

    assert await client.generate("anything") == ""


@pytest.mark.asyncio
async def test_rate_limit_is_retried(mock_genai):
    mock_genai.side_effect = [Exception("429 RESOURCE_EXHAUSTED"), MagicMock(text="ok")]
    client = GeminiClient("test-key", rate_limit_delay=0)

    assert await client.generate("anything") == "ok"
    assert mock_genai.call_count == 2


@pytest.mark.asyncio
async def test_other_errors_propagate(mock_genai):
    mock_genai.side_effect = ConnectionError("network down")
    client = GeminiClient("test-key", rate_limit_delay=0)

    with pytest.raises(ConnectionError):
        await client.generate("anything")
    assert mock_genai.call_count == 1


def test_missing_key_is_config_error(mock_genai):
    with pytest.raises(ConfigError) as exc_info:
        GeminiClient("")
    assert exc_info.value.config_key == "GEMINI_API_KEY"


def test_unknown_mode(mock_genai):
    with pytest.raises(ValueError):
        GeminiClient("test-key", mode="chat")
