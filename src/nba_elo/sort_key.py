"""Composite K-factor/date key for the secondary sort.

A ``SortKey`` answers two different questions and keeps them apart:

- ``group_key()`` / ``same_group()``: which worker a record belongs to.
  Only the K-factor takes part, the date is ignored.
- ``less()`` / ``order_key()``: the sequence records are delivered in.
  K-factor first, then season year, year, month and day ascending.

Dataclass equality (``==``) is full-field equality, i.e. "order-equal".
It is never used for grouping.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

from .models import INVALID_DATE, INVALID_STAT, GameRecord


@dataclass(frozen=True)
class SortKey:
    k_factor: int = int(INVALID_STAT)
    season_year: int = INVALID_DATE
    year: int = INVALID_DATE
    month: int = INVALID_DATE
    day: int = INVALID_DATE

    @classmethod
    def for_game(cls, k_factor: int, game: GameRecord) -> "SortKey":
        return cls(k_factor, game.season_year, game.year, game.month, game.day)

    def group_key(self) -> int:
        return self.k_factor

    def same_group(self, other: "SortKey") -> bool:
        return self.group_key() == other.group_key()

    def order_key(self) -> Tuple[int, int, int, int, int]:
        return (self.k_factor, self.season_year, self.year, self.month, self.day)

    def less(self, other: "SortKey") -> bool:
        return self.order_key() < other.order_key()

    def __lt__(self, other: "SortKey") -> bool:
        if not isinstance(other, SortKey):
            return NotImplemented
        return self.less(other)

    def __str__(self) -> str:
        return f"{self.k_factor} {self.year}/{self.month}/{self.day}"
