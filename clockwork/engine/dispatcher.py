from __future__ import annotations

import logging
from typing import Any, Protocol

from pydantic import ValidationError

from clockwork.engine.production import Production
from clockwork.models.core import Actor, StoryManifest
from clockwork.models.tasks import (
    FetchRosterTask,
    FetchScheduleTask,
    FetchStoryTask,
    PipelinePayload,
    StartPipelineTask,
    Task,
    TickTask,
    parse_task,
)

log = logging.getLogger(__name__)


class TickHandler(Protocol):
    def tick(self, current_time: str, observer_location_id: str | None) -> list[str]: ...


class ContentHandler(Protocol):
    def roster(self) -> list[Actor]: ...

    def story(self) -> StoryManifest | None: ...

    def schedule_snapshot(self) -> dict[str, Any]: ...


class PipelineHandler(Protocol):
    def start_pipeline(self, payload: PipelinePayload) -> Production: ...


class TaskDispatcher:
    """Routes typed tasks to whichever capability handlers are wired in.

    A missing handler yields ``None``; so does an envelope whose type is not
    one we know.
    """

    def __init__(
        self,
        *,
        tick_handler: TickHandler | None = None,
        content: ContentHandler | None = None,
        pipeline: PipelineHandler | None = None,
    ) -> None:
        self.tick_handler = tick_handler
        self.content = content
        self.pipeline = pipeline

    async def dispatch(self, task: Task) -> Any:
        if isinstance(task, TickTask):
            # Hot path: runs after every player action.
            if self.tick_handler is None:
                return None
            task.status = "working"
            try:
                result = self.tick_handler.tick(task.payload.time, task.payload.observer_location_id)
            except Exception:
                task.status = "failed"
                raise
            task.status = "completed"
            return result

        log.info("task_dispatch id=%s type=%s", task.id, task.type)
        task.status = "working"
        try:
            result = self._route(task)
        except Exception:
            task.status = "failed"
            log.warning("task_failed id=%s type=%s", task.id, task.type, exc_info=True)
            raise
        task.status = "completed"
        return result

    async def dispatch_envelope(self, raw: dict[str, Any]) -> Any:
        try:
            task = parse_task(raw)
        except ValidationError:
            log.warning("task_envelope_rejected type=%s", raw.get("type") if isinstance(raw, dict) else None)
            return None
        return await self.dispatch(task)

    def _route(self, task: Task) -> Any:
        if isinstance(task, FetchRosterTask):
            return self.content.roster() if self.content is not None else None
        if isinstance(task, FetchStoryTask):
            return self.content.story() if self.content is not None else None
        if isinstance(task, FetchScheduleTask):
            return self.content.schedule_snapshot() if self.content is not None else None
        if isinstance(task, StartPipelineTask):
            return self.pipeline.start_pipeline(task.payload) if self.pipeline is not None else None
        raise TypeError(f"unroutable task type {task.type!r}")
