from __future__ import annotations

import asyncio
from concurrent.futures import ThreadPoolExecutor

import pytest

from clockwork.config import Settings
from clockwork.llm.client import LLMClient, try_parse_jsonish
from clockwork.llm.enrichment import (
    EnrichmentContext,
    EnrichmentUnavailableError,
    LLMEnricher,
    clean_reaction,
    parse_response_lines,
)


class FakeResponse:
    def __init__(self, status_code: int, payload: dict):
        self.status_code = status_code
        self._payload = payload

    def raise_for_status(self) -> None:
        return None

    def json(self) -> dict:
        return self._payload


class FakeRequests:
    def __init__(self, content: str = "ok") -> None:
        self.calls = 0
        self.content = content

    def post(self, *args, **kwargs) -> FakeResponse:
        self.calls += 1
        return FakeResponse(200, {"choices": [{"message": {"content": self.content}}]})


class FakeRequests404:
    def post(self, *args, **kwargs) -> FakeResponse:
        return FakeResponse(404, {"error": {"message": "No route or model found"}})


class FakeRequestsOllama:
    def __init__(self) -> None:
        self.urls: list[str] = []

    def post(self, url, *args, **kwargs) -> FakeResponse:
        self.urls.append(url)
        return FakeResponse(200, {"message": {"role": "assistant", "content": " The soup was cold. "}})


def _openrouter(**overrides) -> Settings:
    values = {"llm_backend": "openrouter", "openrouter_api_key": "test-key", "dev_mode": False}
    values.update(overrides)
    return Settings(**values)


def test_stub_backend_never_calls_network(monkeypatch):
    fake_requests = FakeRequests()
    monkeypatch.setattr("clockwork.llm.client.requests", fake_requests)
    client = LLMClient(Settings(llm_backend="stub"))

    result = client.complete("hello world", user_id="u1")

    assert fake_requests.calls == 0
    assert result["text"].startswith("[stub]")
    assert "error" not in result


def test_unknown_backend_name_selects_stub():
    assert LLMClient(Settings(llm_backend="carrier-pigeon")).backend == "stub"


def test_openrouter_missing_key_falls_back_to_stub_without_network(monkeypatch):
    fake_requests = FakeRequests()
    monkeypatch.setattr("clockwork.llm.client.requests", fake_requests)
    client = LLMClient(_openrouter(openrouter_api_key=None))

    result = client.complete("hello world", user_id="u1")

    assert fake_requests.calls == 0
    assert result["text"].startswith("[stub]")
    assert result["error"] == "provider_failed"


def test_openrouter_without_requests_reports_failure(monkeypatch):
    monkeypatch.setattr("clockwork.llm.client.requests", None)
    client = LLMClient(_openrouter())

    result = client.complete("what happens now", user_id="u1")

    assert result["error"] == "provider_failed"


def test_openrouter_404_is_reported(monkeypatch):
    monkeypatch.setattr("clockwork.llm.client.requests", FakeRequests404())
    client = LLMClient(_openrouter())

    result = client.complete("hi", user_id="u1")

    assert result["error"] == "openrouter_404"
    assert result["text"].startswith("[stub]")


def test_daily_limits_block_after_quota(monkeypatch):
    fake_requests = FakeRequests()
    monkeypatch.setattr("clockwork.llm.client.requests", fake_requests)
    client = LLMClient(_openrouter(llm_max_calls_per_day=1, llm_max_calls_per_user_per_day=1, llm_cache_responses=False))

    first = client.complete("first", user_id="u1")
    second = client.complete("second", user_id="u1")

    assert first["text"] == "ok"
    assert second["error"] == "budget_exhausted"
    assert fake_requests.calls == 1


def test_repeated_prompt_is_served_from_cache(monkeypatch):
    fake_requests = FakeRequests("Indeed.")
    monkeypatch.setattr("clockwork.llm.client.requests", fake_requests)
    client = LLMClient(_openrouter())

    first = client.complete("same prompt", user_id="u1", system_prompt="sys")
    second = client.complete("same prompt", user_id="u2", system_prompt="sys")

    assert first == {"text": "Indeed."}
    assert second == {"text": "Indeed.", "cached": True}
    assert fake_requests.calls == 1


def test_ollama_backend_posts_to_chat_endpoint(monkeypatch):
    fake_requests = FakeRequestsOllama()
    monkeypatch.setattr("clockwork.llm.client.requests", fake_requests)
    client = LLMClient(Settings(llm_backend="ollama", ollama_base_url="http://ollama:11434"))

    result = client.complete("say something", user_id="cook")

    assert result == {"text": "The soup was cold."}
    assert fake_requests.urls == ["http://ollama:11434/api/chat"]


def test_enricher_treats_stub_output_as_unavailable():
    enricher = LLMEnricher(LLMClient(Settings(llm_backend="stub")))
    context = EnrichmentContext(kind="talk_pool", actor_id="cook", actor_name="Mrs. Hall")

    with pytest.raises(EnrichmentUnavailableError):
        asyncio.run(enricher.enrich(context))


def test_enricher_returns_provider_text(monkeypatch):
    monkeypatch.setattr("clockwork.llm.client.requests", FakeRequests("I saw nothing, officer."))
    enricher = LLMEnricher(LLMClient(_openrouter()))
    context = EnrichmentContext(
        kind="reaction",
        actor_id="cook",
        actor_name="Mrs. Hall",
        memory="At 21:00 in Kitchen, Jeeves was polishing silver.",
    )

    assert asyncio.run(enricher.enrich(context)) == "I saw nothing, officer."


def test_parse_response_lines_strips_numbering_and_bullets():
    raw = '1. "Good evening."\n- Lovely night.\n\n* The brandy is excellent.\n2) Mind the stairs.'
    assert parse_response_lines(raw) == [
        "Good evening.",
        "Lovely night.",
        "The brandy is excellent.",
        "Mind the stairs.",
    ]
    assert parse_response_lines(raw, limit=2) == ["Good evening.", "Lovely night."]
    assert parse_response_lines("") == []


def test_parse_response_lines_accepts_json_lines():
    raw = '```json\n{"lines": ["Hello there.", "Who invited you?"]}\n```'
    assert parse_response_lines(raw) == ["Hello there.", "Who invited you?"]


def test_clean_reaction_and_jsonish():
    assert clean_reaction('{"reaction": "How dreadful."}') == "How dreadful."
    assert clean_reaction("  Plain words.  ") == "Plain words."
    assert try_parse_jsonish("not json") is None
    assert try_parse_jsonish('prefix {"a": 1} suffix') == {"a": 1}


def test_budget_is_not_overspent_by_concurrent_callers(monkeypatch):
    fake_requests = FakeRequests()
    monkeypatch.setattr("clockwork.llm.client.requests", fake_requests)
    client = LLMClient(_openrouter(llm_max_calls_per_day=5, llm_max_calls_per_user_per_day=100, llm_cache_responses=False))

    def burst() -> list[dict]:
        with ThreadPoolExecutor(max_workers=8) as pool:
            return list(pool.map(lambda i: client.complete(f"prompt {i}", user_id=f"u{i}"), range(20)))

    results = burst()

    assert sum(1 for result in results if "error" not in result) == 5
    assert sum(1 for result in results if result.get("error") == "budget_exhausted") == 15


def test_usage_from_earlier_days_is_dropped(monkeypatch):
    monkeypatch.setattr("clockwork.llm.client.requests", FakeRequests())
    client = LLMClient(_openrouter(llm_max_calls_per_day=1, llm_cache_responses=False))
    client._memory_usage[("2000-01-01", "u1")] = 99

    assert client.complete("fresh day", user_id="u1") == {"text": "ok"}
    assert ("2000-01-01", "u1") not in client._memory_usage


def test_response_cache_is_bounded(monkeypatch):
    monkeypatch.setattr("clockwork.llm.client.requests", FakeRequests())
    monkeypatch.setattr("clockwork.llm.client.RESPONSE_CACHE_MAX_ENTRIES", 2)
    client = LLMClient(_openrouter())

    for prompt in ("one", "two", "three"):
        client.complete(prompt, user_id="u1")

    assert [key[1] for key in client._response_cache] == ["two", "three"]


def test_talk_pool_enrichment_bypasses_response_cache(monkeypatch):
    fake_requests = FakeRequests("Fine weather.\nMind the stairs.")
    monkeypatch.setattr("clockwork.llm.client.requests", fake_requests)
    client = LLMClient(_openrouter())
    enricher = LLMEnricher(client)
    talk = EnrichmentContext(kind="talk_pool", actor_id="cook", actor_name="Mrs. Hall")
    reaction = EnrichmentContext(kind="reaction", actor_id="cook", actor_name="Mrs. Hall", memory="At 21:00 ...")

    async def scenario():
        for context in (talk, talk, reaction, reaction):
            await enricher.enrich(context)

    asyncio.run(scenario())

    assert fake_requests.calls == 3
