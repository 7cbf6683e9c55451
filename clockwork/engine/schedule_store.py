from __future__ import annotations

import logging
from typing import Iterable, Mapping

from clockwork.engine.clock import STEP_MINUTES, minutes_to_time, normalize_time, time_to_minutes
from clockwork.engine.world_graph import WorldGraph
from clockwork.models.core import Actor, MovementIntent, ScheduleEntry

log = logging.getLogger(__name__)

Schedule = dict[str, list[ScheduleEntry]]


def _normalized(entry: ScheduleEntry, step: int) -> ScheduleEntry:
    return entry.model_copy(update={"time": normalize_time(entry.time, step)})


def _sort_events(events: list[ScheduleEntry]) -> None:
    # Stable: entries sharing a bucket keep their authored order.
    events.sort(key=lambda entry: time_to_minutes(entry.time))


def normalize_events(events: Iterable[ScheduleEntry | dict], step_minutes: int = STEP_MINUTES) -> list[ScheduleEntry]:
    entries = [
        _normalized(event if isinstance(event, ScheduleEntry) else ScheduleEntry(**event), step_minutes)
        for event in events
    ]
    _sort_events(entries)
    return entries


def plan_travel(events: list[ScheduleEntry], graph: WorldGraph, step_minutes: int = STEP_MINUTES) -> list[ScheduleEntry]:
    """Insert waypoint entries so multi-hop journeys arrive by the authored time.

    For a path ``[p0, ..., pn]`` towards an event at ``T``, the actor has to be
    in ``p_k`` at ``T - (n - k) * step``. Direct neighbours need no waypoint;
    waypoints that would not fall after the previous event are dropped.
    """
    if not events:
        return []
    planned = [events[0]]
    for previous, current in zip(events, events[1:]):
        if previous.target_location_id != current.target_location_id:
            path = graph.find_path(previous.target_location_id, current.target_location_id)
            arrival = time_to_minutes(current.time)
            floor = time_to_minutes(previous.time)
            for index, room_id in enumerate(path[:-1]):
                at = arrival - (len(path) - 1 - index) * step_minutes
                if at <= floor:
                    continue
                planned.append(
                    ScheduleEntry(
                        time=minutes_to_time(at),
                        action=f"Moving towards {graph.location_name(path[index + 1])}",
                        target_location_id=room_id,
                    )
                )
        planned.append(current)
    return planned


class ScheduleStore:
    def __init__(self, step_minutes: int = STEP_MINUTES) -> None:
        self.step_minutes = step_minutes
        self._schedule: Schedule = {}

    def set_schedule(self, schedule: Mapping[str, Iterable[ScheduleEntry | dict]]) -> None:
        replaced: Schedule = {
            actor_id: normalize_events(events, self.step_minutes) for actor_id, events in schedule.items()
        }
        self._schedule = replaced
        log.info("schedule_set actors=%s events=%s", len(replaced), sum(len(v) for v in replaced.values()))

    def has_schedule(self, actor_id: str) -> bool:
        return actor_id in self._schedule

    def events_for(self, actor_id: str) -> list[ScheduleEntry]:
        return list(self._schedule.get(actor_id, []))

    def snapshot(self) -> Schedule:
        return {actor_id: list(events) for actor_id, events in self._schedule.items()}

    def add_event(self, actor_id: str, time: str, action: str, location_id: str) -> bool:
        events = self._schedule.get(actor_id)
        if events is None:
            return False
        entry = ScheduleEntry(time=normalize_time(time, self.step_minutes), action=action, target_location_id=location_id)
        events.append(entry)
        _sort_events(events)
        log.debug("schedule_event_added actor=%s time=%s location=%s", actor_id, entry.time, location_id)
        return True

    def get_target_event(self, actor_id: str, current_time: str) -> ScheduleEntry | None:
        now = time_to_minutes(current_time)
        target: ScheduleEntry | None = None
        for event in self._schedule.get(actor_id, []):
            if time_to_minutes(event.time) > now:
                break
            target = event
        return target

    def next_event_after(self, actor_id: str, current_time: str) -> ScheduleEntry | None:
        now = time_to_minutes(current_time)
        for event in self._schedule.get(actor_id, []):
            if time_to_minutes(event.time) > now:
                return event
        return None

    def get_scheduled_action(self, actor_id: str, current_time: str) -> str | None:
        events = self._schedule.get(actor_id)
        if not events:
            return None
        target = self.get_target_event(actor_id, current_time)
        return (target or events[0]).action

    def tick(self, current_time: str, actors_by_id: Mapping[str, Actor]) -> list[MovementIntent]:
        intents: list[MovementIntent] = []
        for actor_id in self._schedule:
            actor = actors_by_id.get(actor_id)
            if actor is None:
                continue
            target = self.get_target_event(actor_id, current_time)
            if target is None or target.target_location_id == actor.current_location_id:
                continue
            intents.append(
                MovementIntent(
                    actor_id=actor_id,
                    actor_name=actor.name,
                    from_location_id=actor.current_location_id,
                    to_location_id=target.target_location_id,
                )
            )
        return intents
