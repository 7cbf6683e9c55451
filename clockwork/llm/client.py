from __future__ import annotations

import json
import logging
import re
import threading
from abc import ABC, abstractmethod
from datetime import UTC, datetime
from typing import Any

from clockwork.config import Settings

log = logging.getLogger(__name__)

try:
    import requests
except Exception:  # pragma: no cover
    requests = None

STUB_PREFIX = "[stub]"
RESPONSE_CACHE_MAX_ENTRIES = 512


class ProviderUnavailableError(RuntimeError):
    pass


class OpenRouter404Error(RuntimeError):
    pass


class BaseProvider(ABC):
    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.max_input_chars = settings.llm_max_input_chars

    def _truncate(self, text: str) -> str:
        return text[: self.max_input_chars]

    def _messages(self, system_prompt: str | None, user_prompt: str) -> list[dict[str, str]]:
        messages: list[dict[str, str]] = []
        if system_prompt:
            messages.append({"role": "system", "content": self._truncate(system_prompt)})
        messages.append({"role": "user", "content": self._truncate(user_prompt)})
        return messages

    @abstractmethod
    def generate_text(
        self,
        system_prompt: str | None,
        user_prompt: str,
        *,
        temperature: float = 0.7,
    ) -> str:
        raise NotImplementedError


class StubProvider(BaseProvider):
    def generate_text(
        self,
        system_prompt: str | None,
        user_prompt: str,
        *,
        temperature: float = 0.7,
    ) -> str:
        del system_prompt, temperature
        return f"{STUB_PREFIX} {self._truncate(user_prompt)[:80]}"


class OpenRouterProvider(BaseProvider):
    def _headers(self) -> dict[str, str]:
        api_key = self.settings.openrouter_api_key
        if not api_key:
            raise ProviderUnavailableError("openrouter_missing_api_key")
        return {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
            "HTTP-Referer": "http://localhost",
            "X-Title": "clockwork-manor",
        }

    def generate_text(
        self,
        system_prompt: str | None,
        user_prompt: str,
        *,
        temperature: float = 0.7,
    ) -> str:
        if requests is None:
            raise ProviderUnavailableError("requests_unavailable")
        payload = {
            "model": self.settings.openrouter_model,
            "messages": self._messages(system_prompt, user_prompt),
            "temperature": temperature,
        }
        response = requests.post(
            f"{self.settings.openrouter_base_url}/chat/completions",
            headers=self._headers(),
            data=json.dumps(payload),
            timeout=20,
        )
        if response.status_code == 404:
            raise OpenRouter404Error("OpenRouter request returned 404. Check OPENROUTER_MODEL and OPENROUTER_BASE_URL.")
        if response.status_code in {401, 429} or response.status_code >= 500:
            raise ProviderUnavailableError(f"openrouter_http_{response.status_code}")
        response.raise_for_status()
        content = response.json()["choices"][0]["message"]["content"]
        if not isinstance(content, str):
            raise ProviderUnavailableError("unexpected_chat_content_type")
        return content.strip()


class OllamaProvider(BaseProvider):
    def generate_text(
        self,
        system_prompt: str | None,
        user_prompt: str,
        *,
        temperature: float = 0.7,
    ) -> str:
        if requests is None:
            raise ProviderUnavailableError("requests_unavailable")
        payload = {
            "model": self.settings.ollama_model,
            "messages": self._messages(system_prompt, user_prompt),
            "stream": False,
            "options": {"temperature": temperature},
        }
        response = requests.post(
            f"{self.settings.ollama_base_url}/api/chat",
            headers={"Content-Type": "application/json"},
            data=json.dumps(payload),
            timeout=20,
        )
        response.raise_for_status()
        message = response.json().get("message", {})
        content = message.get("content") if isinstance(message, dict) else None
        if not isinstance(content, str):
            raise ProviderUnavailableError("ollama_unexpected_response")
        return content.strip()


class LLMClient:
    """Blocking completion client. Failures come back as ``{"error": ...}``, never raised.

    Safe to call from several worker threads at once: budget accounting and
    the response cache are guarded by one lock.
    """

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self._lock = threading.Lock()
        self._memory_usage: dict[tuple[str, str], int] = {}
        self._response_cache: dict[tuple[str | None, str], str] = {}
        self._stub = StubProvider(settings)
        self._providers: dict[str, BaseProvider] = {
            "stub": self._stub,
            "openrouter": OpenRouterProvider(settings),
            "ollama": OllamaProvider(settings),
        }

    @property
    def backend(self) -> str:
        return self._select_backend(self.settings.llm_backend)

    def complete(
        self,
        prompt: str,
        user_id: str = "system",
        *,
        system_prompt: str | None = None,
        temperature: float = 0.7,
        use_cache: bool = True,
    ) -> dict[str, Any]:
        safe_prompt = prompt[: self.settings.llm_max_input_chars]
        cache_key = (system_prompt, safe_prompt)
        use_cache = use_cache and self.settings.llm_cache_responses
        if use_cache:
            with self._lock:
                cached = self._response_cache.get(cache_key)
            if cached is not None:
                return {"text": cached, "cached": True}

        backend = self.backend
        provider = self._providers[backend]
        if backend != "stub":
            ok, reason = self._consume_budget(user_id)
            if not ok:
                log.warning("llm_budget_exhausted reason=%s user=%s", reason, user_id)
                return {"text": self._stub_text(safe_prompt), "error": "budget_exhausted"}
        try:
            text = provider.generate_text(system_prompt, safe_prompt, temperature=temperature).strip()
        except OpenRouter404Error as exc:
            log.warning("openrouter_http_404 fallback=stub detail=%s", str(exc))
            return {"text": self._stub_text(safe_prompt), "error": "openrouter_404"}
        except Exception:
            log.warning("text_provider_failed backend=%s fallback=stub", backend, exc_info=True)
            return {"text": self._stub_text(safe_prompt), "error": "provider_failed"}

        if not text:
            return {"text": self._stub_text(safe_prompt), "error": "empty_response"}
        if backend != "stub" and use_cache:
            self._remember(cache_key, text)
        return {"text": text}

    def _remember(self, cache_key: tuple[str | None, str], text: str) -> None:
        with self._lock:
            self._response_cache.pop(cache_key, None)
            self._response_cache[cache_key] = text
            while len(self._response_cache) > RESPONSE_CACHE_MAX_ENTRIES:
                del self._response_cache[next(iter(self._response_cache))]

    def _stub_text(self, prompt: str) -> str:
        return self._stub.generate_text(None, prompt)

    def _select_backend(self, backend: str) -> str:
        normalized = (backend or "").strip().lower()
        if normalized in self._providers:
            return normalized
        return "stub"

    def _consume_budget(self, user_id: str) -> tuple[bool, str | None]:
        day = datetime.now(UTC).date().isoformat()
        max_day = self.settings.effective_llm_max_calls_per_day
        max_user = self.settings.effective_llm_max_calls_per_user_per_day
        with self._lock:
            for stale in [key for key in self._memory_usage if key[0] != day]:
                del self._memory_usage[stale]
            global_calls = sum(self._memory_usage.values())
            user_calls = self._memory_usage.get((day, user_id), 0)
            if global_calls >= max_day:
                return False, "global_limit"
            if user_calls >= max_user:
                return False, "user_limit"
            self._memory_usage[(day, user_id)] = user_calls + 1
        return True, None


def try_parse_jsonish(text: str) -> dict[str, Any] | None:
    try:
        data = json.loads(text)
        return data if isinstance(data, dict) else None
    except json.JSONDecodeError:
        pass
    match = re.search(r"```(?:json)?\s*(\{.*\})\s*```", text, flags=re.DOTALL) or re.search(
        r"\{.*\}", text, flags=re.DOTALL
    )
    if match:
        try:
            data = json.loads(match.group(1) if match.lastindex else match.group(0))
            return data if isinstance(data, dict) else None
        except json.JSONDecodeError:
            return None
    return None
