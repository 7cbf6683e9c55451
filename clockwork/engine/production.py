from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

from clockwork.engine.clock import STEP_MINUTES
from clockwork.engine.schedule_store import Schedule, normalize_events, plan_travel
from clockwork.engine.world_graph import WorldGraph
from clockwork.models.core import Actor, Location, ScheduleEntry, StoryManifest

log = logging.getLogger(__name__)


class ContentSource(Protocol):
    def story(self) -> StoryManifest: ...

    def roster(self, story: StoryManifest) -> list[Actor]: ...

    def locations(self, story: StoryManifest, roster: list[Actor]) -> list[Location]: ...

    def schedule(self, story: StoryManifest, roster: list[Actor], locations: list[Location]) -> dict[str, list[ScheduleEntry]]: ...


class FixtureContentSource:
    """Reads a complete production (story, rooms, cast, timetable) from one JSON file."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._data: dict[str, Any] | None = None

    def _load(self) -> dict[str, Any]:
        if self._data is None:
            self._data = json.loads(self.path.read_text(encoding="utf-8"))
            log.info("fixture_loaded path=%s", self.path)
        return self._data

    def story(self) -> StoryManifest:
        return StoryManifest(**self._load()["story"])

    def roster(self, story: StoryManifest) -> list[Actor]:
        return [Actor(**row) for row in self._load()["roster"]]

    def locations(self, story: StoryManifest, roster: list[Actor]) -> list[Location]:
        return [Location(**row) for row in self._load()["locations"]]

    def schedule(self, story: StoryManifest, roster: list[Actor], locations: list[Location]) -> dict[str, list[ScheduleEntry]]:
        return {
            actor_id: [ScheduleEntry(**row) for row in rows]
            for actor_id, rows in self._load()["schedule"].items()
        }


@dataclass
class Production:
    story: StoryManifest
    roster: list[Actor]
    locations: list[Location]
    schedule: Schedule
    start_location_id: str
    issues: list[str] = field(default_factory=list)


def run_pipeline(
    source: ContentSource,
    graph: WorldGraph,
    *,
    start_location_id: str | None = None,
    step_minutes: int = STEP_MINUTES,
) -> Production:
    """Story, cast, rooms, timetable; then normalize and plan travel against ``graph``.

    ``graph`` is (re)initialized with the produced rooms as a side effect.
    """
    story = source.story()
    log.info("pipeline_story title=%s", story.title)
    roster = source.roster(story)
    log.info("pipeline_roster actors=%s", len(roster))
    locations = source.locations(story, roster)
    graph.initialize(locations)
    valid, issues = graph.validate_reciprocal()
    for issue in issues:
        log.warning("pipeline_exit_issue %s", issue)

    raw_schedule = source.schedule(story, roster, locations)
    known_actors = {actor.id for actor in roster}
    schedule: Schedule = {}
    for actor_id, events in raw_schedule.items():
        if actor_id not in known_actors:
            log.warning("pipeline_schedule_unknown_actor actor=%s", actor_id)
            continue
        schedule[actor_id] = plan_travel(normalize_events(events, step_minutes), graph, step_minutes)

    start = start_location_id if start_location_id in graph else None
    if start is None and locations:
        start = locations[0].id
    for actor in roster:
        actor.current_location_id = start
    log.info("pipeline_done start=%s exits_valid=%s", start, valid)
    return Production(
        story=story,
        roster=roster,
        locations=locations,
        schedule=schedule,
        start_location_id=start or "",
        issues=issues,
    )
