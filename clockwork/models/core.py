from __future__ import annotations

import re
import uuid
from dataclasses import dataclass

from pydantic import BaseModel, Field, field_validator

_TIME_RE = re.compile(r"^([01]\d|2[0-4]):([0-5]\d)$")


def validate_clock_time(value: str) -> str:
    text = str(value).strip()
    if len(text) == 4 and text[1] == ":":
        text = f"0{text}"
    match = _TIME_RE.match(text)
    if not match or (match.group(1) == "24" and match.group(2) != "00"):
        raise ValueError(f"invalid clock time: {value!r}")
    return text


class Location(BaseModel):
    id: str = Field(min_length=1)
    name: str
    description: str = ""
    exits: dict[str, str] = Field(default_factory=dict)


class StoryManifest(BaseModel):
    title: str
    background: str = ""
    intro: str = ""


class ScheduleEntry(BaseModel):
    time: str
    action: str
    target_location_id: str

    @field_validator("time", mode="before")
    @classmethod
    def _check_time(cls, value: str) -> str:
        return validate_clock_time(value)


class MemoryEntry(BaseModel):
    entry_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    time: str
    location_id: str
    location_name: str
    witnessed_actor_id: str
    witnessed_actor_name: str
    action: str
    cached_reaction: str | None = None

    def describe(self) -> str:
        return f"At {self.time} in {self.location_name}, {self.witnessed_actor_name} was {self.action}."


class Actor(BaseModel):
    id: str = Field(min_length=1)
    name: str
    role: str = ""
    personality: str = ""
    current_location_id: str | None = None
    memory_log: list[MemoryEntry] = Field(default_factory=list)
    response_pool: list[str] = Field(default_factory=list)
    responses_ready: bool = False


@dataclass
class MovementIntent:
    actor_id: str
    actor_name: str
    from_location_id: str | None
    to_location_id: str


@dataclass
class ExitInfo:
    direction: str
    short: str
    target_id: str
    target_name: str
