from __future__ import annotations

import asyncio
import json
import logging
import re
from typing import Any, Literal, Protocol

from pydantic import BaseModel, Field

from clockwork.llm.client import STUB_PREFIX, LLMClient, try_parse_jsonish

log = logging.getLogger(__name__)

REACTION_SYSTEM_PROMPT = (
    "You are roleplaying a guest at a dinner party in an old manor. "
    "Stay in-character and speak as the guest directly, in 1-2 sentences. "
    "React to the remembered moment as someone who saw it with their own eyes. "
    "Never mention game mechanics or that you are an AI."
)

TALK_POOL_SYSTEM_PROMPT = (
    "You are writing idle dialogue for a guest at a dinner party in an old manor. "
    "Write short lines the guest might say when a detective approaches them. "
    "One line per row, each under 25 words, no numbering, no speaker labels. "
    "Lines may hint at what the guest has recently seen."
)


class EnrichmentUnavailableError(RuntimeError):
    pass


class EnrichmentContext(BaseModel):
    kind: Literal["reaction", "talk_pool"]
    actor_id: str
    actor_name: str
    personality: str = ""
    memory: str | None = None
    recent_memories: list[str] = Field(default_factory=list)
    line_count: int = 5


class Enricher(Protocol):
    async def enrich(self, context: EnrichmentContext) -> str: ...


def _prompt_payload(context: EnrichmentContext) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "guest_name": context.actor_name,
        "guest_personality": context.personality,
        "recent_memories": context.recent_memories[-5:],
    }
    if context.kind == "reaction":
        payload["remembered_moment"] = context.memory
    else:
        payload["line_count"] = context.line_count
    return payload


class LLMEnricher:
    """Runs the blocking ``LLMClient`` in a worker thread so the event loop keeps moving."""

    def __init__(self, client: LLMClient) -> None:
        self.client = client

    async def enrich(self, context: EnrichmentContext) -> str:
        system_prompt = REACTION_SYSTEM_PROMPT if context.kind == "reaction" else TALK_POOL_SYSTEM_PROMPT
        data = await asyncio.to_thread(
            self.client.complete,
            json.dumps(_prompt_payload(context), sort_keys=True),
            user_id=context.actor_id,
            system_prompt=system_prompt,
            temperature=0.8 if context.kind == "talk_pool" else 0.7,
            # Talk-pool refills always reach the backend.
            use_cache=context.kind != "talk_pool",
        )
        text = str(data.get("text", "")).strip()
        if data.get("error") or not text or text.startswith(STUB_PREFIX):
            raise EnrichmentUnavailableError(data.get("error") or "stub_backend")
        return text


_BULLET_RE = re.compile(r"^\s*(?:[-*•]|\d+[.)])\s*")


def parse_response_lines(raw: str, limit: int | None = None) -> list[str]:
    """Split generated dialogue into clean lines; accepts plain rows or ``{"lines": [...]}``."""
    text = (raw or "").strip()
    if not text:
        return []
    parsed = try_parse_jsonish(text) if "{" in text else None
    if isinstance(parsed, dict):
        for key in ("lines", "responses", "dialogue"):
            value = parsed.get(key)
            if isinstance(value, list):
                candidates = [str(item) for item in value]
                break
        else:
            candidates = text.splitlines()
    else:
        candidates = text.splitlines()

    lines: list[str] = []
    for candidate in candidates:
        line = _BULLET_RE.sub("", candidate).strip().strip('"').strip()
        if line:
            lines.append(line)
    return lines[:limit] if limit else lines


def clean_reaction(raw: str) -> str:
    text = (raw or "").strip()
    parsed = try_parse_jsonish(text) if "{" in text else None
    if isinstance(parsed, dict):
        for key in ("reaction", "message", "reply", "text"):
            value = parsed.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    return text
