"""K-factor sweep driver.

Fans the games out over the configured K-factors, runs one ``EloEngine``
per K-factor in a ``ProcessPoolExecutor`` and reduces each partition to its
mean accuracy. Partitions are CPU-bound, so separate processes are what lets
``max_workers`` run in parallel. Workers share nothing mutable; each receives
its own pickled copy of the ordered games and of the league stats table.

At most ``max_workers`` partitions are submitted at once, which also bounds
how many copies of the game list exist at a time.
"""

from __future__ import annotations

import asyncio
import logging
import math
import multiprocessing
from concurrent.futures import ProcessPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from .accuracy import KFactorAccuracy, best_k_factor
from .config import Config
from .engine import PartitionResult, run_partition
from .errors import PartitionCancelled
from .league_stats import LeagueStatsTable
from .logging_utils import log_json, setup_logging
from .models import GameRecord
from .partition import Partition, partition_and_order, partition_index
from .sort_key import SortKey

logger = logging.getLogger(__name__)

# Set in each worker process by ``_init_worker``.
_cancel_event: Any = None


def _init_worker(cancel_event: Any, log_level: str) -> None:
    global _cancel_event
    _cancel_event = cancel_event
    setup_logging(log_level)


def _run_worker(
    partition: Partition,
    league_stats: LeagueStatsTable,
    initial_elo: float,
    tie_policy: str,
    keep_games: bool,
) -> PartitionResult:
    return run_partition(
        partition.k_factor,
        partition,
        league_stats,
        initial_elo,
        tie_policy,
        _cancel_event,
        keep_games,
    )


@dataclass
class SweepResult:
    accuracy: KFactorAccuracy
    games_skipped: int = 0
    degenerate_teams: int = 0
    games: List[GameRecord] = field(default_factory=list)

    @property
    def k_factor(self) -> int:
        return self.accuracy.k_factor

    @property
    def mean_score(self) -> float:
        return self.accuracy.mean_score


class SweepRunner:
    def __init__(self, cfg: Config, league_stats: LeagueStatsTable) -> None:
        self.cfg = cfg
        self.league_stats = league_stats
        self._mp_context = multiprocessing.get_context()
        self._cancel = self._mp_context.Event()

    def cancel(self) -> None:
        """Ask every running worker to stop before its next game."""
        self._cancel.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    async def run_async(self, games: Iterable[GameRecord], keep_games: bool = False) -> List[SweepResult]:
        """Run every partition and collect one result per finished K-factor.

        Rated games are carried back on each ``SweepResult`` only when
        ``keep_games`` is set.
        """
        k_factors = self.cfg.k_factors()
        log_json(logger, "sweep_start", k_factors=len(k_factors), min_k=self.cfg.min_k, max_k=self.cfg.max_k)
        partitions = partition_and_order(games, k_factors)

        workers = max(1, min(self.cfg.max_workers, len(k_factors)))
        semaphore = asyncio.Semaphore(workers)
        loop = asyncio.get_running_loop()
        log_level = logging.getLevelName(logging.getLogger().getEffectiveLevel())

        with ProcessPoolExecutor(
            max_workers=workers,
            mp_context=self._mp_context,
            initializer=_init_worker,
            initargs=(self._cancel, log_level),
        ) as pool:

            async def _worker(k: int) -> PartitionResult:
                async with semaphore:
                    log_json(
                        logger,
                        "partition_start",
                        k_factor=k,
                        slot=partition_index(SortKey(k), self.cfg.min_k, self.cfg.k_step),
                        games=len(partitions[k]),
                    )
                    return await loop.run_in_executor(
                        pool,
                        _run_worker,
                        partitions[k],
                        self.league_stats,
                        self.cfg.initial_elo,
                        self.cfg.tie_policy,
                        keep_games,
                    )

            try:
                outcomes = await asyncio.gather(*(_worker(k) for k in k_factors), return_exceptions=True)
            except asyncio.CancelledError:
                self.cancel()
                raise

        results: List[SweepResult] = []
        for k, outcome in zip(k_factors, outcomes):
            if isinstance(outcome, PartitionCancelled):
                log_json(logger, "partition_cancelled", level=logging.WARNING, k_factor=k, games=outcome.games_processed)
                continue
            if isinstance(outcome, BaseException):
                raise outcome
            accuracy = outcome.accuracy()
            if math.isnan(accuracy.mean_score):
                log_json(logger, "partition_unscored", level=logging.WARNING, k_factor=k)
            log_json(
                logger,
                "partition_done",
                k_factor=k,
                mean_score=accuracy.mean_score,
                scored=accuracy.games_scored,
                excluded=accuracy.excluded,
                skipped=outcome.skipped,
            )
            results.append(
                SweepResult(
                    accuracy=accuracy,
                    games_skipped=outcome.skipped,
                    degenerate_teams=outcome.degenerate,
                    games=outcome.games,
                )
            )

        best = best_k(results)
        log_json(
            logger,
            "sweep_done",
            partitions=len(results),
            cancelled=self.cancelled,
            best_k=best.k_factor if best else None,
            best_mean=best.mean_score if best else None,
        )
        return results

    def run(self, games: Iterable[GameRecord], keep_games: bool = False) -> List[SweepResult]:
        return asyncio.run(self.run_async(games, keep_games=keep_games))


def best_k(results: Iterable[SweepResult]) -> Optional[SweepResult]:
    by_k: Dict[int, SweepResult] = {r.k_factor: r for r in results}
    best = best_k_factor(r.accuracy for r in by_k.values())
    return by_k[best.k_factor] if best else None


def format_results(results: Iterable[SweepResult]) -> str:
    """``<k> <mean>`` per line, ordered by K."""
    lines = [r.accuracy.to_line() for r in sorted(results, key=lambda r: r.k_factor)]
    return "\n".join(lines) + ("\n" if lines else "")
