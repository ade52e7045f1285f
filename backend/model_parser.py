"""
Language model command parser.

parse_with_model() never raises for a bad answer: it returns either a
validated ParsedCommand or a ModelFailure saying what went wrong, and the
caller decides what to do next (see pipeline.understand_command).
"""
import asyncio
import json
import logging
from datetime import date
from functools import lru_cache
from typing import Literal, Optional, Union

import anthropic
from pydantic import BaseModel

import config
from actions import ActionValidationError, ParsedCommand, validate_parsed_command
from datetimes import utc_now
from prompts import SYSTEM_PROMPT

logger = logging.getLogger(__name__)

FailureKind = Literal[
    "not_configured",
    "timeout",
    "network",
    "empty",
    "invalid_json",
    "missing_actions",
    "missing_preview",
    "invalid_actions",
]


class ModelFailure(BaseModel):
    kind: FailureKind
    detail: str = ""

    def __str__(self) -> str:
        return f"{self.kind}: {self.detail}" if self.detail else self.kind


@lru_cache(maxsize=1)
def get_model_client() -> Optional[anthropic.AsyncAnthropic]:
    """Shared Anthropic client, or None when no API key is configured."""
    if not config.model_configured():
        return None
    return anthropic.AsyncAnthropic(api_key=config.ANTHROPIC_API_KEY)


def strip_code_fence(text: str) -> str:
    """Strip a markdown code block (```json ... ```) around the answer if present."""
    text = text.strip()
    if text.startswith("```"):
        lines = text.split("\n")
        lines = lines[1:]  # Remove first line (```json)
        if lines and lines[-1].strip() == "```":
            lines = lines[:-1]  # Remove last line (```)
        text = "\n".join(lines)
    return text


def _response_text(response) -> str:
    return "".join(
        getattr(block, "text", "") for block in (response.content or [])
        if getattr(block, "type", "text") == "text"
    )


async def parse_with_model(
    text: str,
    client: Optional[anthropic.AsyncAnthropic] = None,
    today: Optional[date] = None,
    timeout: Optional[float] = None,
) -> Union[ParsedCommand, ModelFailure]:
    """
    Ask the model to turn text into an action envelope and validate it.

    Args:
        text: Raw user command
        client: Anthropic client (default: get_model_client())
        today: Date the model resolves relative dates against (default: UTC today)
        timeout: Seconds to wait for the model (default: MODEL_TIMEOUT_SECONDS)
    """
    client = client or get_model_client()
    if client is None:
        return ModelFailure(kind="not_configured", detail="ANTHROPIC_API_KEY is not set")

    today = today or utc_now().date()
    system_prompt = SYSTEM_PROMPT.format(today=today.isoformat())
    timeout = config.MODEL_TIMEOUT_SECONDS if timeout is None else timeout

    try:
        response = await asyncio.wait_for(
            client.messages.create(
                model=config.ANTHROPIC_MODEL,
                max_tokens=config.MODEL_MAX_TOKENS,
                system=system_prompt,
                messages=[{"role": "user", "content": text}],
            ),
            timeout=timeout,
        )
    except (asyncio.TimeoutError, anthropic.APITimeoutError):
        return ModelFailure(kind="timeout", detail=f"no answer within {timeout:g}s")
    except anthropic.APIError as e:
        return ModelFailure(kind="network", detail=str(e))

    raw = strip_code_fence(_response_text(response))
    logger.debug("Model response: %s", raw)
    if not raw:
        return ModelFailure(kind="empty", detail="model returned no text")

    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as e:
        return ModelFailure(kind="invalid_json", detail=str(e))

    if not isinstance(payload, dict) or not isinstance(payload.get("actions"), list):
        return ModelFailure(kind="missing_actions", detail="response has no actions array")
    if not isinstance(payload.get("preview"), str):
        return ModelFailure(kind="missing_preview", detail="response has no preview string")
    if not isinstance(payload.get("requiresConfirm"), bool):
        payload["requiresConfirm"] = False

    try:
        return validate_parsed_command(payload)
    except ActionValidationError as e:
        return ModelFailure(kind="invalid_actions", detail=str(e))
