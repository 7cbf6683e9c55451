from __future__ import annotations

import uuid
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter

TaskStatus = Literal["submitted", "working", "completed", "failed"]


def _task_id() -> str:
    return f"task_{uuid.uuid4().hex[:12]}"


class TickPayload(BaseModel):
    time: str
    observer_location_id: str | None = None


class PipelinePayload(BaseModel):
    start_location_id: str | None = None


class _TaskBase(BaseModel):
    id: str = Field(default_factory=_task_id)
    status: TaskStatus = "submitted"


class FetchRosterTask(_TaskBase):
    type: Literal["fetch-roster"] = "fetch-roster"


class FetchStoryTask(_TaskBase):
    type: Literal["fetch-story"] = "fetch-story"


class FetchScheduleTask(_TaskBase):
    type: Literal["fetch-schedule"] = "fetch-schedule"


class TickTask(_TaskBase):
    type: Literal["tick"] = "tick"
    payload: TickPayload


class StartPipelineTask(_TaskBase):
    type: Literal["start-pipeline"] = "start-pipeline"
    payload: PipelinePayload = Field(default_factory=PipelinePayload)


Task = Annotated[
    Union[FetchRosterTask, FetchStoryTask, FetchScheduleTask, TickTask, StartPipelineTask],
    Field(discriminator="type"),
]

TASK_ADAPTER: TypeAdapter[Task] = TypeAdapter(Task)


def parse_task(raw: dict) -> Task:
    return TASK_ADAPTER.validate_python(raw)
