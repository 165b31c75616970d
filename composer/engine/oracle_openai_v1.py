from __future__ import annotations

import logging
import os
from typing import Any, Dict, List

from openai import OpenAI

from composer.engine.constants import (
    PURPOSE_GENERATE_CATEGORY,
    PURPOSE_SELECT_STRATEGY,
    resolve_oracle_model,
)

VERSION = "oracle_openai_v1"

logger = logging.getLogger(__name__)

STRATEGY_SYSTEM_PROMPT = """You are an expert Magic: The Gathering Commander deck builder.

Your task: select an appropriate commander and define the strategy based on the user's request.

Output in JSON format:
{
  "commander": "Exact commander card name",
  "strategy": "Brief strategy description (e.g. 'Token Generation and Go-Wide Aggro')",
  "colorIdentity": ["W", "U", "B", "R", "G"],
  "reasoning": "Why this commander fits the request"
}
Only include the commander's actual colors in colorIdentity."""

CATEGORY_SYSTEM_PROMPT = """You are an expert Magic: The Gathering Commander deck builder.

Rules:
- Commander decks are singleton: every card except basic lands appears at most once.
- Every card must be inside the commander's color identity.
- Use exact, real card names.
- Never suggest the commander itself or any excluded card.

Output in JSON format:
{"cards": ["Card Name 1", "Card Name 2"]}"""


def extract_response_text(response: Any) -> str:
    if response is None:
        return ""
    choices = getattr(response, "choices", None)
    if not choices:
        return ""
    message = getattr(choices[0], "message", None)
    if message is None:
        return ""
    content = getattr(message, "content", None)
    if isinstance(content, str):
        return content
    # Some providers return content blocks instead of a plain string.
    if isinstance(content, list):
        parts: List[str] = []
        for block in content:
            text = block.get("text") if isinstance(block, dict) else getattr(block, "text", None)
            if isinstance(text, str):
                parts.append(text)
        return "".join(parts)
    return ""


def build_messages_v1(request: Dict[str, Any]) -> List[Dict[str, str]]:
    purpose = request.get("purpose")
    context_text = str(request.get("context_text") or "")
    exclude_names = [str(name) for name in (request.get("exclude_names") or [])]

    if purpose == PURPOSE_SELECT_STRATEGY:
        user_prompt = context_text
        if len(exclude_names) > 0:
            user_prompt += "\nDo not pick any of: " + ", ".join(exclude_names)
        return [
            {"role": "system", "content": STRATEGY_SYSTEM_PROMPT},
            {"role": "user", "content": user_prompt},
        ]

    if purpose == PURPOSE_GENERATE_CATEGORY:
        desired = int(request.get("desired_count") or 0)
        lines = [
            context_text,
            "",
            f"Generate exactly {desired} cards for this category.",
        ]
        if len(exclude_names) > 0:
            lines.append("Already included or excluded (DO NOT suggest these): " + ", ".join(exclude_names))
        return [
            {"role": "system", "content": CATEGORY_SYSTEM_PROMPT},
            {"role": "user", "content": "\n".join(lines)},
        ]

    raise ValueError(f"Unsupported oracle purpose: {purpose!r}")


class OpenAIChatOracleV1:
    """Oracle backed by an OpenAI-compatible chat-completions endpoint."""

    def __init__(
        self,
        client: Any = None,
        *,
        model: str | None = None,
        api_key: str | None = None,
        base_url: str | None = None,
        temperature: float = 0.7,
        max_tokens: int = 2000,
    ):
        if client is None:
            client_kwargs: Dict[str, Any] = {"api_key": api_key or os.getenv("OPENAI_API_KEY")}
            resolved_base_url = base_url or os.getenv("OPENAI_BASE_URL")
            if resolved_base_url:
                client_kwargs["base_url"] = resolved_base_url
            client = OpenAI(**client_kwargs)
        self.client = client
        self.model_name = model or resolve_oracle_model()
        self.temperature = float(temperature)
        self.max_tokens = int(max_tokens)

    def complete(self, request: Dict[str, Any], *, timeout_s: float) -> str:
        messages = build_messages_v1(request)
        logger.debug(
            "ORACLE_REQUEST model=%s purpose=%s category=%s timeout_s=%s",
            self.model_name,
            request.get("purpose"),
            request.get("category"),
            timeout_s,
        )
        response = self.client.chat.completions.create(
            model=self.model_name,
            messages=messages,
            response_format={"type": "json_object"},
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            timeout=timeout_s,
        )
        return extract_response_text(response)
