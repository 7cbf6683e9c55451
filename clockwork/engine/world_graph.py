from __future__ import annotations

import logging
from collections import deque
from typing import Iterable, Mapping

from clockwork.engine.clock import STEP_MINUTES
from clockwork.models.core import ExitInfo, Location

log = logging.getLogger(__name__)

OPPOSITE_DIRECTIONS = {
    "north": "south",
    "south": "north",
    "east": "west",
    "west": "east",
    "up": "down",
    "down": "up",
}

SHORT_DIRECTIONS = {
    "north": "N",
    "south": "S",
    "east": "E",
    "west": "W",
    "up": "U",
    "down": "D",
}


class WorldGraph:
    """Directed graph of locations; exits are labeled edges.

    Unknown ids never raise. Queries about them return empty results, which is
    how unreachable schedule targets end up as actors that simply stay put.
    """

    def __init__(self, step_minutes: int = STEP_MINUTES) -> None:
        self.step_minutes = step_minutes
        self._locations: dict[str, Location] = {}
        self._adjacency: dict[str, dict[str, str]] = {}

    def initialize(self, locations: Iterable[Location] | Mapping[str, Location]) -> None:
        items = list(locations.values()) if isinstance(locations, Mapping) else list(locations)
        locations_by_id: dict[str, Location] = {}
        adjacency: dict[str, dict[str, str]] = {}
        for location in items:
            locations_by_id[location.id] = location
            adjacency[location.id] = dict(location.exits)
        self._locations = locations_by_id
        self._adjacency = adjacency
        log.info("world_graph_initialized locations=%s", len(locations_by_id))

    def get_location(self, location_id: str | None) -> Location | None:
        if location_id is None:
            return None
        return self._locations.get(location_id)

    def location_name(self, location_id: str | None) -> str:
        location = self.get_location(location_id)
        return location.name if location else str(location_id)

    def all_locations(self) -> list[Location]:
        return list(self._locations.values())

    def __contains__(self, location_id: object) -> bool:
        return location_id in self._locations

    def __len__(self) -> int:
        return len(self._locations)

    def get_exits(self, location_id: str | None) -> dict[str, str]:
        if location_id is None:
            return {}
        return dict(self._adjacency.get(location_id, {}))

    def describe_exits(self, location_id: str) -> list[ExitInfo]:
        return [
            ExitInfo(
                direction=direction,
                short=SHORT_DIRECTIONS.get(direction.lower(), direction[:1].upper()),
                target_id=target_id,
                target_name=self.location_name(target_id),
            )
            for direction, target_id in self._adjacency.get(location_id, {}).items()
        ]

    def are_connected(self, from_id: str, to_id: str) -> bool:
        return to_id in self._adjacency.get(from_id, {}).values()

    def get_direction(self, from_id: str | None, to_id: str | None) -> str | None:
        if from_id is None:
            return None
        for direction, target_id in self._adjacency.get(from_id, {}).items():
            if target_id == to_id:
                return direction
        return None

    def find_path(self, start_id: str | None, target_id: str | None) -> list[str]:
        """Shortest hop path from ``start_id`` (excluded) to ``target_id`` (included).

        Equal-length paths are broken by exit insertion order.
        """
        if start_id == target_id:
            return []
        if start_id not in self._locations or target_id not in self._locations:
            return []

        parents: dict[str, str] = {}
        visited = {start_id}
        queue: deque[str] = deque([start_id])
        while queue:
            current = queue.popleft()
            if current == target_id:
                break
            for neighbor_id in self._adjacency.get(current, {}).values():
                if neighbor_id in visited:
                    continue
                visited.add(neighbor_id)
                parents[neighbor_id] = current
                queue.append(neighbor_id)

        if target_id not in parents:
            return []
        path = [target_id]
        while path[-1] in parents and parents[path[-1]] != start_id:
            path.append(parents[path[-1]])
        path.reverse()
        return path

    def get_next_step(self, start_id: str | None, target_id: str | None) -> str | None:
        path = self.find_path(start_id, target_id)
        return path[0] if path else None

    def get_travel_time(self, start_id: str | None, target_id: str | None) -> int:
        return len(self.find_path(start_id, target_id)) * self.step_minutes

    def validate_reciprocal(self) -> tuple[bool, list[str]]:
        issues: list[str] = []
        for location_id, exits in self._adjacency.items():
            for direction, target_id in exits.items():
                opposite = OPPOSITE_DIRECTIONS.get(direction.lower())
                if opposite is None:
                    continue
                if self._adjacency.get(target_id, {}).get(opposite) != location_id:
                    issues.append(f"{location_id} -> {direction} -> {target_id} has no reciprocal exit")
        return not issues, issues
