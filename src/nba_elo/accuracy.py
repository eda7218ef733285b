"""Per-game prediction scoring and the per-K-factor accuracy aggregator.

The favourite is the team with the strictly higher pre-game rating. A game
scores ``1 - E`` when the favourite won and ``E`` when it lost, where ``E``
is the favourite's expected score. Lower is better.
"""

from __future__ import annotations

import math
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, Iterable, Optional, Tuple

from .elo_math import expected_scores
from .errors import Exclusion

TIE_POLICY_EXCLUDE = "exclude"
TIE_POLICY_HALF = "half"
TIE_POLICIES = (TIE_POLICY_EXCLUDE, TIE_POLICY_HALF)


@dataclass(frozen=True)
class GameScore:
    k_factor: int
    game_id: str
    score: Optional[float]
    exclusion: Optional[Exclusion] = None

    @property
    def scored(self) -> bool:
        return self.score is not None


def score_prediction(
    rating_home: float,
    rating_away: float,
    points_home: float,
    points_away: float,
    tie_policy: str = TIE_POLICY_EXCLUDE,
) -> Tuple[Optional[float], Optional[Exclusion]]:
    """Score one game from pre-game ratings and the final points.

    Returns ``(score, None)`` for a scored game and ``(None, reason)`` for
    an excluded one. With ``tie_policy="half"`` a game between equally rated
    teams scores 0.5 instead of being excluded.
    """
    tied_ratings = rating_home == rating_away
    if tied_ratings and tie_policy != TIE_POLICY_HALF:
        return None, Exclusion.TIED_PREDICTION
    if points_home == points_away:
        return None, Exclusion.TIED_OUTCOME
    if tied_ratings:
        return 0.5, None

    e_home, e_away = expected_scores(rating_home, rating_away)
    home_won = points_home > points_away
    if rating_home > rating_away:
        e_pred, correct = e_home, home_won
    else:
        e_pred, correct = e_away, not home_won
    return (1.0 - e_pred if correct else e_pred), None


@dataclass(frozen=True)
class KFactorAccuracy:
    k_factor: int
    mean_score: float
    games_scored: int
    excluded: Dict[str, int] = field(default_factory=dict)

    def to_line(self) -> str:
        return f"{self.k_factor} {self.mean_score!r}"


class AccuracyAggregator:
    """Running mean of scored games for one K-factor.

    Excluded games are counted by reason but never enter the sum or the
    denominator.
    """

    def __init__(self, k_factor: int) -> None:
        self.k_factor = k_factor
        self._total = 0.0
        self._count = 0
        self._excluded: Counter = Counter()

    def add(self, game_score: GameScore) -> None:
        if game_score.k_factor != self.k_factor:
            raise ValueError(
                f"score for k={game_score.k_factor} sent to aggregator for k={self.k_factor}"
            )
        if game_score.score is None:
            reason = game_score.exclusion.value if game_score.exclusion else "unknown"
            self._excluded[reason] += 1
            return
        self._total += game_score.score
        self._count += 1

    def extend(self, scores: Iterable[GameScore]) -> "AccuracyAggregator":
        for s in scores:
            self.add(s)
        return self

    @property
    def count(self) -> int:
        return self._count

    def mean(self) -> float:
        """Mean score, NaN when no game was scored."""
        if self._count == 0:
            return math.nan
        return self._total / self._count

    def result(self) -> KFactorAccuracy:
        return KFactorAccuracy(
            k_factor=self.k_factor,
            mean_score=self.mean(),
            games_scored=self._count,
            excluded=dict(self._excluded),
        )


def aggregate_scores(scores: Iterable[GameScore]) -> Dict[int, KFactorAccuracy]:
    """Group a mixed stream of scores by K-factor and reduce each group."""
    aggregators: Dict[int, AccuracyAggregator] = {}
    for s in scores:
        agg = aggregators.get(s.k_factor)
        if agg is None:
            agg = aggregators[s.k_factor] = AccuracyAggregator(s.k_factor)
        agg.add(s)
    return {k: aggregators[k].result() for k in sorted(aggregators)}


def best_k_factor(results: Iterable[KFactorAccuracy]) -> Optional[KFactorAccuracy]:
    """Lowest mean score wins; ties go to the smaller K. NaN means are ignored."""
    candidates = [r for r in results if not math.isnan(r.mean_score)]
    if not candidates:
        return None
    return min(candidates, key=lambda r: (r.mean_score, r.k_factor))
