from __future__ import annotations

import logging
import random
from typing import Iterable

from clockwork.engine.clock import add_minutes, time_to_minutes
from clockwork.engine.schedule_store import ScheduleStore
from clockwork.engine.world_graph import WorldGraph
from clockwork.models.core import Actor

log = logging.getLogger(__name__)

# (personality keywords, minutes from now, action template)
TRAIT_RULES: list[tuple[tuple[str, ...], int, str]] = [
    (("curious", "nosy", "observant"), 10, "poking curiously around the {room}"),
    (("suspicious", "paranoid"), 5, "glancing around the {room} nervously"),
    (("social", "gregarious", "flirtatious"), 10, "looking for company in the {room}"),
    (("alcoholic", "shaky"), 10, "eyeing the decanters in the {room}"),
]


def _matching_rule(personality: str) -> tuple[int, str] | None:
    lower = personality.lower()
    for keywords, delay, template in TRAIT_RULES:
        if any(keyword in lower for keyword in keywords):
            return delay, template
    return None


class SpontaneousEvents:
    """Occasionally gives idle actors a personality-driven schedule entry where they stand."""

    def __init__(self, schedule: ScheduleStore, graph: WorldGraph, *, chance: float = 0.1, rng: random.Random | None = None) -> None:
        self.schedule = schedule
        self.graph = graph
        self.chance = chance
        self.rng = rng or random.Random(0)

    def maybe_add(self, actor: Actor, current_time: str) -> bool:
        if actor.current_location_id is None or not self.schedule.has_schedule(actor.id):
            return False
        if self.rng.random() >= self.chance:
            return False
        rule = _matching_rule(actor.personality)
        if rule is None:
            return False
        delay, template = rule
        # Never displace an authored entry or travel waypoint due by then.
        upcoming = self.schedule.next_event_after(actor.id, current_time)
        if upcoming is not None and time_to_minutes(upcoming.time) <= time_to_minutes(current_time) + delay:
            return False
        at = add_minutes(current_time, delay)
        action = template.format(room=self.graph.location_name(actor.current_location_id))
        added = self.schedule.add_event(actor.id, at, action, actor.current_location_id)
        if added:
            log.debug("spontaneous_event actor=%s time=%s action=%s", actor.id, at, action)
        return added

    def run(self, idle_actors: Iterable[Actor], current_time: str) -> int:
        if self.chance <= 0:
            return 0
        return sum(1 for actor in idle_actors if self.maybe_add(actor, current_time))
