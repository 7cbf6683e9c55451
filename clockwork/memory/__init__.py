from clockwork.memory.coalesce import InFlightMap
from clockwork.memory.witness import MemoryWitnessSystem, factual_fallback, silent_fallback

__all__ = [
    "InFlightMap",
    "MemoryWitnessSystem",
    "factual_fallback",
    "silent_fallback",
]
