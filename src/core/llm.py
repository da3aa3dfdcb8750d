"""OpenAI chat completions for Jarvis.

Everything that needs a model reply (the conversation memory, document
questions and summaries) goes through :func:`generate_reply`: a system
prompt plus the stored turns in, the assistant text out.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import os
from typing import Any, Dict, List, Optional, Sequence

from openai import OpenAI
from pydantic import BaseModel


logger = logging.getLogger("jarvis.llm")


class LLMConfig(BaseModel):
    """Model settings for one completion."""

    model: str = "gpt-4o-mini"
    max_tokens: int = 1000
    temperature: float = 0.7
    request_timeout: int = 60


class LLMError(Exception):
    """The model could not be reached or answered with nothing."""


def build_messages(system_prompt: str, turns: Sequence[Dict[str, str]]) -> List[Dict[str, str]]:
    messages = [{"role": "system", "content": system_prompt}]
    for turn in turns:
        messages.append({"role": turn["role"], "content": turn["content"]})
    return messages


def _text_of(response: Any) -> str:
    choices = getattr(response, "choices", None)
    if not choices:
        return ""
    content = choices[0].message.content or ""
    if isinstance(content, list):
        content = "".join(part.get("text", "") for part in content if isinstance(part, dict))
    return str(content).strip()


async def generate_reply(
    system_prompt: str,
    turns: Sequence[Dict[str, str]],
    config: Optional[LLMConfig] = None,
) -> str:
    """Return the assistant reply for ``turns``.

    The OpenAI SDK is synchronous, so the request runs in the default
    executor. Raises :class:`LLMError` when the key is missing, the call
    fails or the reply is blank.
    """

    cfg = config or LLMConfig()
    api_key = os.getenv("OPENAI_API_KEY")
    if not api_key:
        logger.error("OPENAI_API_KEY is not set; cannot generate a reply")
        raise LLMError("OPENAI_API_KEY is not set")

    request = functools.partial(
        OpenAI(api_key=api_key).chat.completions.create,
        model=cfg.model,
        messages=build_messages(system_prompt, turns),
        max_tokens=cfg.max_tokens,
        temperature=cfg.temperature,
        timeout=cfg.request_timeout,
    )
    try:
        response = await asyncio.get_running_loop().run_in_executor(None, request)
    except Exception as exc:  # noqa: BLE001
        logger.error("Chat completion failed (%s): %r", cfg.model, exc)
        raise LLMError("LLM_CALL_FAILED") from exc

    text = _text_of(response)
    if not text:
        logger.warning("Chat completion returned an empty reply")
        raise LLMError("EMPTY_RESPONSE")
    return text
