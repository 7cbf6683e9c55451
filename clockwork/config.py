from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

DEFAULT_WORLD_PATH = str(Path(__file__).resolve().parent / "data" / "manor.json")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    return int(raw)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    return float(raw)


@dataclass(frozen=True)
class Settings:
    dev_mode: bool = os.getenv("DEV_MODE", "0") == "1"
    rng_seed: int = _env_int("RNG_SEED", 1337)
    world_data_path: str = os.getenv("WORLD_DATA_PATH", DEFAULT_WORLD_PATH)
    start_time: str = os.getenv("SIM_START_TIME", "18:00")
    end_time: str = os.getenv("SIM_END_TIME", "21:00")
    observer_location_id: str = os.getenv("SIM_OBSERVER_LOCATION", "foyer")
    start_location_id: str = os.getenv("SIM_START_LOCATION", "foyer")
    step_minutes: int = _env_int("SIM_STEP_MINUTES", 5)
    talk_pool_size: int = _env_int("TALK_POOL_SIZE", 5)
    spontaneous_event_chance: float = _env_float("SPONTANEOUS_EVENT_CHANCE", 0.1)
    enrichment_timeout_seconds: float = _env_float("ENRICHMENT_TIMEOUT_SECONDS", 0.0)
    llm_backend: str = os.getenv("LLM_BACKEND", "stub").strip().lower()
    openrouter_api_key: str | None = os.getenv("OPENROUTER_API_KEY")
    openrouter_model: str = os.getenv("OPENROUTER_MODEL", "openrouter/free")
    openrouter_base_url: str = os.getenv("OPENROUTER_BASE_URL", "https://openrouter.ai/api/v1").rstrip("/")
    ollama_base_url: str = os.getenv("OLLAMA_BASE_URL", "http://localhost:11434").rstrip("/")
    ollama_model: str = os.getenv("OLLAMA_MODEL", "llama3.2")
    llm_max_calls_per_day: int = _env_int("LLM_MAX_CALLS_PER_DAY", 500)
    llm_max_calls_per_user_per_day: int = _env_int("LLM_MAX_CALLS_PER_USER_PER_DAY", 100)
    llm_max_input_chars: int = _env_int("LLM_MAX_INPUT_CHARS", 1200)
    llm_cache_responses: bool = os.getenv("LLM_CACHE_RESPONSES", "1") == "1"

    @property
    def effective_llm_max_calls_per_day(self) -> int:
        return self.llm_max_calls_per_day * 5 if self.dev_mode else self.llm_max_calls_per_day

    @property
    def effective_llm_max_calls_per_user_per_day(self) -> int:
        return self.llm_max_calls_per_user_per_day * 5 if self.dev_mode else self.llm_max_calls_per_user_per_day

    def redacted(self) -> dict[str, object]:
        return {
            "dev_mode": self.dev_mode,
            "rng_seed": self.rng_seed,
            "world_data_path": self.world_data_path,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "observer_location_id": self.observer_location_id,
            "step_minutes": self.step_minutes,
            "talk_pool_size": self.talk_pool_size,
            "spontaneous_event_chance": self.spontaneous_event_chance,
            "enrichment_timeout_seconds": self.enrichment_timeout_seconds,
            "llm_backend": self.llm_backend,
            "openrouter_api_key_set": bool(self.openrouter_api_key),
            "openrouter_model": self.openrouter_model,
            "ollama_model": self.ollama_model,
            "llm_max_calls_per_day": self.effective_llm_max_calls_per_day,
            "llm_max_calls_per_user_per_day": self.effective_llm_max_calls_per_user_per_day,
            "llm_max_input_chars": self.llm_max_input_chars,
        }


def configure_logging(dev_mode: bool) -> None:
    level = logging.DEBUG if dev_mode else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
