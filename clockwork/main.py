from __future__ import annotations

import asyncio
import logging

from clockwork.config import Settings, configure_logging
from clockwork.engine.clock import iter_times
from clockwork.engine.simulation import Simulation
from clockwork.llm.client import LLMClient
from clockwork.llm.enrichment import LLMEnricher
from clockwork.models.tasks import FetchStoryTask, StartPipelineTask, TickTask, TickPayload

log = logging.getLogger(__name__)


def build_simulation(settings: Settings) -> Simulation:
    return Simulation(settings, enricher=LLMEnricher(LLMClient(settings)))


async def run_session(settings: Settings, simulation: Simulation | None = None) -> list[str]:
    simulation = simulation or build_simulation(settings)
    dispatcher = simulation.dispatcher()
    await dispatcher.dispatch(StartPipelineTask())
    story = await dispatcher.dispatch(FetchStoryTask())
    transcript: list[str] = [story.title, story.intro] if story else []

    observer = settings.observer_location_id
    for now in iter_times(settings.start_time, settings.end_time, settings.step_minutes):
        narration = await dispatcher.dispatch(TickTask(payload=TickPayload(time=now, observer_location_id=observer)))
        for line in narration or []:
            transcript.append(f"[{now}] {line}")
        # Let background enrichment make progress between turns.
        await asyncio.sleep(0)

    await simulation.witness.wait_idle()
    for actor in simulation.actors_at(observer):
        line = await simulation.witness.get_talk_response(actor.id)
        transcript.append(f"{actor.name}: {line}")
    log.info("session_done ticks_until=%s lines=%s", settings.end_time, len(transcript))
    return transcript


def main() -> None:
    settings = Settings()
    configure_logging(settings.dev_mode)
    logging.getLogger(__name__).info("app_start %s", settings.redacted())
    for line in asyncio.run(run_session(settings)):
        print(line)


if __name__ == "__main__":
    main()
