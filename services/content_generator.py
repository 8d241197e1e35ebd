# services/content_generator.py
"""
External content generator: an OpenAI-compatible chat completions endpoint
that is asked to answer with JSON.
"""
from __future__ import annotations

import json
import logging
import re
from typing import Any

from openai import AsyncOpenAI, OpenAIError

from api.app.config import get_settings

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json)?[ \t]*\n?", re.IGNORECASE)


class GeneratorError(Exception):
    """The generator call failed (transport, auth, quota, server error)."""


class GeneratorOutputError(GeneratorError):
    """The generator answered, but not with a usable JSON object."""


def strip_code_fences(content: str) -> str:
    """Drop ```json / ``` markers the model likes to wrap JSON in."""
    return _FENCE_RE.sub("", content).strip()


def parse_generator_content(content: str | None) -> dict[str, Any]:
    text = strip_code_fences(content or "")
    if not text:
        raise GeneratorOutputError("Generator returned empty content")
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise GeneratorOutputError(f"Generator returned invalid JSON: {exc.msg}") from exc
    if not isinstance(data, dict):
        raise GeneratorOutputError(f"Generator returned {type(data).__name__}, expected an object")
    return data


async def chat_completion(messages: list[dict], model: str | None = None) -> str:
    """Run a chat completion and return the first choice's message text."""
    settings = get_settings()
    client = AsyncOpenAI(
        api_key=settings.openai_api_key,
        base_url=settings.openai_base_url,
        timeout=settings.generator_timeout_seconds,
    )
    model = model or settings.openai_model

    logger.info("Generator: sending %d messages to %s", len(messages), model)
    try:
        response = await client.chat.completions.create(model=model, messages=messages)
    except OpenAIError as exc:
        raise GeneratorError(f"Generator request failed: {exc}") from exc

    if not response.choices:
        raise GeneratorOutputError("Generator returned no choices")
    text = response.choices[0].message.content or ""
    logger.info("Generator: got %d chars response", len(text))
    return text


async def generate_json(prompt: str) -> dict[str, Any]:
    """Send a single user prompt and parse the answer as a JSON object."""
    content = await chat_completion([{"role": "user", "content": prompt}])
    return parse_generator_content(content)
