"""Partition & order stage.

Games are sorted once by date. Each K-factor then gets a ``Partition``: a
lazy view over that single ordered list which keys every game with
``SortKey.for_game(k, game)`` and hands out a fresh deep copy per game as
the worker asks for it. Only one copy per worker is alive at a time unless
the worker keeps it.

The sort is stable, so games sharing an exact date keep their arrival order
and repeated runs process them identically.
"""

from __future__ import annotations

import copy
import logging
from typing import Dict, Iterable, Iterator, List, Sequence, Tuple

from .logging_utils import log_json
from .models import GameRecord
from .sort_key import SortKey

logger = logging.getLogger(__name__)

KeyedGame = Tuple[SortKey, GameRecord]


class Partition:
    """One K-factor's games in delivery order.

    Iterating yields deep copies, so Elo fields written by one worker are
    never visible to another or to the caller's input. Iteration can be
    repeated and always starts from the first game.
    """

    def __init__(self, k_factor: int, ordered: Sequence[GameRecord]) -> None:
        self.k_factor = k_factor
        self._ordered = ordered

    def keyed(self) -> Iterator[KeyedGame]:
        for game in self._ordered:
            yield SortKey.for_game(self.k_factor, game), copy.deepcopy(game)

    def __iter__(self) -> Iterator[GameRecord]:
        for _, game in self.keyed():
            yield game

    def __len__(self) -> int:
        return len(self._ordered)


def order_games(games: Iterable[GameRecord]) -> List[GameRecord]:
    """Stable sort by (season year, year, month, day)."""
    return sorted(games, key=lambda g: SortKey.for_game(0, g).order_key())


def partition_index(key: SortKey, min_k: int, k_step: int) -> int:
    """Worker slot for ``key`` in a sweep starting at ``min_k``."""
    offset = key.group_key() - min_k
    if offset < 0 or offset % k_step:
        raise ValueError(f"k={key.group_key()} is not on the sweep grid min_k={min_k} step={k_step}")
    return offset // k_step


def partition_and_order(games: Iterable[GameRecord], k_factors: Sequence[int]) -> Dict[int, Partition]:
    """One ordered ``Partition`` per K-factor, all sharing a single sorted list.

    Every game appears exactly once in every partition.
    """
    ordered = order_games(games)
    partitions = {k: Partition(k, ordered) for k in k_factors}
    log_json(
        logger,
        "partition_stage_done",
        partitions=len(partitions),
        games=len(ordered),
    )
    return partitions
