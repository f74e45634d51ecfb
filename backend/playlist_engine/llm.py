"""
Chat-completion access and JSON handling for model output.

Selection logic only ever talks to a ``ChatProvider``; the OpenAI client is
one implementation of it.
"""
import re
import json
import logging
from typing import Any, Dict, Optional, Protocol

from openai import AsyncOpenAI

from . import config

logger = logging.getLogger(__name__)


class ProviderError(Exception):
    """Raised when an external embedding or chat provider call fails."""
    pass


class MalformedModelOutputError(Exception):
    """Raised when model output is not JSON or lacks the expected shape."""
    pass


class ChatProvider(Protocol):
    async def complete(
        self,
        system: str,
        user: str,
        *,
        temperature: float = 0.7,
        max_tokens: Optional[int] = None,
    ) -> str:
        ...


class OpenAIChatProvider:
    """ChatProvider backed by the OpenAI chat completions API."""

    def __init__(
        self,
        model: Optional[str] = None,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
    ):
        self.model = model or config.CHAT_MODEL
        api_key = api_key or config.OPENAI_API_KEY
        if not api_key:
            raise ValueError("OPENAI_API_KEY must be set in environment variables")

        # One attempt per call; callers fall back on failure
        base_url = base_url or config.OPENAI_BASE_URL
        if base_url:
            self.client = AsyncOpenAI(api_key=api_key, base_url=base_url, max_retries=0)
        else:
            self.client = AsyncOpenAI(api_key=api_key, max_retries=0)

    async def complete(
        self,
        system: str,
        user: str,
        *,
        temperature: float = 0.7,
        max_tokens: Optional[int] = None,
    ) -> str:
        kwargs: Dict[str, Any] = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            "temperature": temperature,
        }
        if max_tokens is not None:
            kwargs["max_tokens"] = max_tokens

        try:
            response = await self.client.chat.completions.create(**kwargs)
        except Exception as e:
            logger.error(f"Chat completion failed for model '{self.model}': {str(e)}")
            raise ProviderError(f"Chat completion failed: {str(e)}") from e

        content = response.choices[0].message.content or ""
        logger.info(f"Chat completion returned {len(content)} characters from '{self.model}'")
        return content


_FENCE_PATTERN = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL)


def parse_json_response(content: str) -> Dict[str, Any]:
    """Parse a JSON object out of model output.

    Tolerates markdown code fences and leading/trailing prose by slicing
    between the first ``{`` and the last ``}``.

    Raises:
        MalformedModelOutputError: If no JSON object can be decoded
    """
    if not content or not content.strip():
        raise MalformedModelOutputError("Empty model response")

    text = content.strip()
    fenced = _FENCE_PATTERN.search(text)
    if fenced:
        text = fenced.group(1).strip()

    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        raise MalformedModelOutputError(f"No JSON object in model response: {content[:200]!r}")

    try:
        parsed = json.loads(text[start:end + 1])
    except json.JSONDecodeError as e:
        raise MalformedModelOutputError(f"Invalid JSON in model response: {str(e)}") from e

    if not isinstance(parsed, dict):
        raise MalformedModelOutputError("Model response JSON is not an object")
    return parsed
