from __future__ import annotations

from typing import MutableMapping

from clockwork.engine.schedule_store import ScheduleStore
from clockwork.engine.spontaneous import SpontaneousEvents
from clockwork.engine.world_graph import WorldGraph
from clockwork.memory.witness import MemoryWitnessSystem
from clockwork.models.core import Actor

PASSING_THROUGH = "passing through"


def leave_message(name: str, direction: str | None, action: str | None) -> str:
    if direction is None:
        return f"{name} leaves."
    if not action:
        return f"{name} leaves to the {direction.upper()}."
    return f"{name} leaves to the {direction.upper()} ({action})."


def enter_message(name: str, direction: str | None, action: str | None) -> str:
    if direction is None:
        return f"{name} arrives."
    if not action:
        return f"{name} enters from the {direction.upper()}."
    return f"{name} enters from the {direction.upper()} ({action})."


class MovementCoordinator:
    """Executes schedule intents one hop per tick.

    Called once per player action; keep it free of logging and I/O.
    """

    def __init__(
        self,
        graph: WorldGraph,
        schedule: ScheduleStore,
        witness: MemoryWitnessSystem,
        actors: MutableMapping[str, Actor],
        *,
        spontaneous: SpontaneousEvents | None = None,
    ) -> None:
        self.graph = graph
        self.schedule = schedule
        self.witness = witness
        self.actors = actors
        self.spontaneous = spontaneous

    def tick(self, current_time: str, observer_location_id: str | None) -> list[str]:
        messages: list[str] = []
        moved: set[str] = set()

        for intent in self.schedule.tick(current_time, self.actors):
            actor = self.actors.get(intent.actor_id)
            if actor is None:
                continue
            old_location = actor.current_location_id
            next_hop = self.graph.get_next_step(old_location, intent.to_location_id)
            if next_hop is None:
                continue

            actor.current_location_id = next_hop
            moved.add(actor.id)
            action = self.schedule.get_scheduled_action(actor.id, current_time)

            if observer_location_id is not None:
                if observer_location_id == old_location:
                    messages.append(leave_message(actor.name, self.graph.get_direction(old_location, next_hop), action))
                if observer_location_id == next_hop:
                    messages.append(enter_message(actor.name, self.graph.get_direction(next_hop, old_location), action))

            self.witness.record_witnessed_event(
                actor.id,
                actor.name,
                action or PASSING_THROUGH,
                next_hop,
                self.graph.location_name(next_hop),
                current_time,
            )

        if self.spontaneous is not None:
            idle = [actor for actor_id, actor in self.actors.items() if actor_id not in moved]
            self.spontaneous.run(idle, current_time)
        return messages

    def positions(self) -> dict[str, str | None]:
        return {actor_id: actor.current_location_id for actor_id, actor in self.actors.items()}
