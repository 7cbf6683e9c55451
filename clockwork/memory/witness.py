from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Coroutine, Mapping

from clockwork.llm.enrichment import EnrichmentContext, Enricher, clean_reaction, parse_response_lines
from clockwork.memory.coalesce import InFlightMap
from clockwork.models.core import Actor, MemoryEntry

log = logging.getLogger(__name__)

DEFAULT_TALK_POOL_SIZE = 5


def silent_fallback(name: str) -> str:
    return f"{name} looks at you but says nothing."


def factual_fallback(entry: MemoryEntry) -> str:
    return f"I saw {entry.witnessed_actor_name} in the {entry.location_name} around {entry.time}. They were {entry.action}."


class MemoryWitnessSystem:
    """Who saw what, where and when, plus the enrichment layered on top.

    Recording is synchronous. Enrichment runs as asyncio tasks on the running
    loop and writes back into actors and memory entries when it settles. Talk
    pool refills are coalesced per actor id; reactions per memory entry.
    """

    def __init__(
        self,
        actors: Mapping[str, Actor],
        enricher: Enricher | None = None,
        *,
        talk_pool_size: int = DEFAULT_TALK_POOL_SIZE,
        timeout_seconds: float = 0.0,
    ) -> None:
        self.actors = actors
        self.enricher = enricher
        self.talk_pool_size = talk_pool_size
        self.timeout_seconds = timeout_seconds
        self._talk_jobs: InFlightMap[str, list[str]] = InFlightMap("talk_pool")
        self._reaction_jobs: InFlightMap[str, str | None] = InFlightMap("reaction")

    def record_witnessed_event(
        self,
        actor_id: str,
        actor_name: str,
        action: str,
        location_id: str,
        location_name: str,
        time: str,
    ) -> list[MemoryEntry]:
        recorded: list[MemoryEntry] = []
        for witness in list(self.actors.values()):
            if witness.id == actor_id or witness.current_location_id != location_id:
                continue
            entry = MemoryEntry(
                time=time,
                location_id=location_id,
                location_name=location_name,
                witnessed_actor_id=actor_id,
                witnessed_actor_name=actor_name,
                action=action,
            )
            witness.memory_log.append(entry)
            recorded.append(entry)
            self._spawn(self._reaction_jobs, entry.entry_id, lambda w=witness, e=entry: self._generate_reaction(w, e))
            self._spawn(self._talk_jobs, witness.id, lambda w=witness: self._generate_talk_pool(w))
        return recorded

    def prepare_all_responses(self) -> list[asyncio.Task]:
        jobs = []
        for actor in list(self.actors.values()):
            job = self._spawn(self._talk_jobs, actor.id, lambda a=actor: self._generate_talk_pool(a))
            if job is not None:
                jobs.append(job)
        log.info("talk_pools_preparing actors=%s", len(jobs))
        return jobs

    async def get_talk_response(self, actor_id: str) -> str:
        actor = self.actors.get(actor_id)
        if actor is None:
            return silent_fallback(actor_id)
        try:
            if actor.response_pool:
                return self._serve(actor)
            if self.enricher is None:
                return silent_fallback(actor.name)
            # The awaited job may be a refill that already failed; retry once.
            for _ in range(2):
                await self._talk_jobs.run(actor.id, lambda: self._generate_talk_pool(actor))
                if actor.response_pool:
                    return self._serve(actor)
        except Exception:
            log.warning("talk_response_failed actor=%s", actor_id, exc_info=True)
        return silent_fallback(actor.name)

    async def get_event_response(self, actor_id: str, entry: MemoryEntry) -> str:
        if entry.cached_reaction:
            return entry.cached_reaction
        actor = self.actors.get(actor_id)
        reaction: str | None = None
        if actor is not None and self.enricher is not None:
            try:
                reaction = await self._reaction_jobs.run(entry.entry_id, lambda: self._generate_reaction(actor, entry))
            except Exception:
                log.warning("event_response_failed actor=%s entry=%s", actor_id, entry.entry_id, exc_info=True)
        if not reaction:
            reaction = factual_fallback(entry)
        entry.cached_reaction = reaction
        return reaction

    def pending_jobs(self) -> int:
        return len(self._talk_jobs) + len(self._reaction_jobs)

    async def wait_idle(self) -> None:
        while self.pending_jobs():
            await self._reaction_jobs.wait_all()
            await self._talk_jobs.wait_all()

    def _serve(self, actor: Actor) -> str:
        line = actor.response_pool.pop(0)
        if not actor.response_pool:
            actor.responses_ready = False
            self._spawn(self._talk_jobs, actor.id, lambda: self._generate_talk_pool(actor))
        return line

    def _spawn(
        self,
        jobs: InFlightMap[str, Any],
        key: str,
        factory: Callable[[], Coroutine[Any, Any, Any]],
    ) -> asyncio.Task | None:
        if self.enricher is None:
            return None
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            log.debug("enrichment_skipped_no_loop map=%s key=%s", jobs.name, key)
            return None
        return jobs.run(key, factory)

    async def _enrich(self, context: EnrichmentContext) -> str:
        if self.enricher is None:
            raise RuntimeError("no_enricher")
        if self.timeout_seconds > 0:
            return await asyncio.wait_for(self.enricher.enrich(context), timeout=self.timeout_seconds)
        return await self.enricher.enrich(context)

    def _recent_memories(self, actor: Actor) -> list[str]:
        return [entry.describe() for entry in actor.memory_log[-5:]]

    async def _generate_reaction(self, witness: Actor, entry: MemoryEntry) -> str | None:
        context = EnrichmentContext(
            kind="reaction",
            actor_id=witness.id,
            actor_name=witness.name,
            personality=witness.personality,
            memory=entry.describe(),
            recent_memories=self._recent_memories(witness),
        )
        try:
            reaction = clean_reaction(await self._enrich(context))
        except Exception:
            log.warning("reaction_enrichment_failed actor=%s entry=%s", witness.id, entry.entry_id, exc_info=True)
            return None
        if not reaction:
            return None
        entry.cached_reaction = reaction
        return reaction

    async def _generate_talk_pool(self, actor: Actor) -> list[str]:
        context = EnrichmentContext(
            kind="talk_pool",
            actor_id=actor.id,
            actor_name=actor.name,
            personality=actor.personality,
            recent_memories=self._recent_memories(actor),
            line_count=self.talk_pool_size,
        )
        try:
            lines = parse_response_lines(await self._enrich(context), limit=self.talk_pool_size)
        except Exception:
            log.warning("talk_pool_enrichment_failed actor=%s", actor.id, exc_info=True)
            return []
        if lines:
            actor.response_pool = lines
            actor.responses_ready = True
            log.debug("talk_pool_ready actor=%s lines=%s", actor.id, len(lines))
        return lines
