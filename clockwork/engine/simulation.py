from __future__ import annotations

import logging
import random
from typing import Any

from clockwork.config import Settings
from clockwork.engine.dispatcher import TaskDispatcher
from clockwork.engine.movement import MovementCoordinator
from clockwork.engine.production import ContentSource, FixtureContentSource, Production, run_pipeline
from clockwork.engine.schedule_store import ScheduleStore
from clockwork.engine.spontaneous import SpontaneousEvents
from clockwork.engine.world_graph import WorldGraph
from clockwork.llm.enrichment import Enricher
from clockwork.memory.witness import MemoryWitnessSystem
from clockwork.models.core import Actor, StoryManifest
from clockwork.models.tasks import PipelinePayload

log = logging.getLogger(__name__)


class Simulation:
    """One independent session: graph, cast, timetable, memories and their wiring."""

    def __init__(
        self,
        settings: Settings,
        enricher: Enricher | None = None,
        content_source: ContentSource | None = None,
    ) -> None:
        self.settings = settings
        self.content_source = content_source
        self.graph = WorldGraph(step_minutes=settings.step_minutes)
        self.actors: dict[str, Actor] = {}
        self.schedule = ScheduleStore(step_minutes=settings.step_minutes)
        self.witness = MemoryWitnessSystem(
            self.actors,
            enricher,
            talk_pool_size=settings.talk_pool_size,
            timeout_seconds=settings.enrichment_timeout_seconds,
        )
        self.spontaneous = SpontaneousEvents(
            self.schedule,
            self.graph,
            chance=settings.spontaneous_event_chance,
            rng=random.Random(settings.rng_seed),
        )
        self.coordinator = MovementCoordinator(
            self.graph,
            self.schedule,
            self.witness,
            self.actors,
            spontaneous=self.spontaneous,
        )
        self.production: Production | None = None

    def load(self, production: Production) -> None:
        self.graph.initialize(production.locations)
        self.actors.clear()
        self.actors.update({actor.id: actor for actor in production.roster})
        self.schedule.set_schedule(production.schedule)
        self.production = production
        log.info("simulation_loaded actors=%s locations=%s", len(self.actors), len(self.graph))

    def start_pipeline(self, payload: PipelinePayload | None = None) -> Production:
        if self.content_source is None:
            self.content_source = FixtureContentSource(self.settings.world_data_path)
        start = (payload.start_location_id if payload else None) or self.settings.start_location_id
        production = run_pipeline(
            self.content_source,
            self.graph,
            start_location_id=start,
            step_minutes=self.settings.step_minutes,
        )
        self.load(production)
        self.witness.prepare_all_responses()
        return production

    def roster(self) -> list[Actor]:
        return list(self.actors.values())

    def story(self) -> StoryManifest | None:
        return self.production.story if self.production else None

    def schedule_snapshot(self) -> dict[str, Any]:
        return self.schedule.snapshot()

    def actors_at(self, location_id: str) -> list[Actor]:
        return [actor for actor in self.actors.values() if actor.current_location_id == location_id]

    def dispatcher(self) -> TaskDispatcher:
        return TaskDispatcher(tick_handler=self.coordinator, content=self, pipeline=self)
