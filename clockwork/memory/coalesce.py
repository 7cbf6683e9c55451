from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Coroutine, Generic, Hashable, TypeVar

log = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)
T = TypeVar("T")


class InFlightMap(Generic[K, T]):
    """At most one running job per key; late callers share the running job.

    Lookup and insert happen without an intervening await, so under asyncio
    the get-or-create for one key cannot interleave with another caller.
    The entry is released as soon as the job settles, success or failure.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._jobs: dict[K, asyncio.Task[T]] = {}

    def get(self, key: K) -> asyncio.Task[T] | None:
        return self._jobs.get(key)

    def in_flight(self, key: K) -> bool:
        return key in self._jobs

    def __len__(self) -> int:
        return len(self._jobs)

    def run(self, key: K, factory: Callable[[], Coroutine[Any, Any, T]]) -> asyncio.Task[T]:
        job = self._jobs.get(key)
        if job is not None:
            log.debug("inflight_coalesced map=%s key=%s", self.name, key)
            return job
        loop = asyncio.get_running_loop()
        job = loop.create_task(factory())
        self._jobs[key] = job
        job.add_done_callback(lambda done, key=key: self._release(key, done))
        return job

    def _release(self, key: K, job: asyncio.Task[T]) -> None:
        if self._jobs.get(key) is job:
            del self._jobs[key]

    async def wait_all(self) -> None:
        while self._jobs:
            await asyncio.gather(*list(self._jobs.values()), return_exceptions=True)
