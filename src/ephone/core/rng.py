"""Random source port for the stop-resolution draw."""

from __future__ import annotations

import random
from collections.abc import Iterable
from typing import Protocol


class RandomSource(Protocol):
    def next(self) -> float:
        """Return a float in [0, 1)."""
        ...


class SystemRandomSource:
    def __init__(self, seed: int | None = None) -> None:
        self._random = random.Random(seed)

    def next(self) -> float:
        return self._random.random()


class ScriptedRandomSource:
    """Replays a fixed sequence of draws, then raises ``LookupError``."""

    def __init__(self, draws: Iterable[float]) -> None:
        self._draws = list(draws)
        for value in self._draws:
            if not 0.0 <= value < 1.0:
                raise ValueError(f"draw {value!r} outside [0, 1)")
        self._index = 0

    def next(self) -> float:
        if self._index >= len(self._draws):
            raise LookupError("scripted random source exhausted")
        value = self._draws[self._index]
        self._index += 1
        return value
