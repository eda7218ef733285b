"""Pure math for player-level Elo ratings.

No state and no I/O. The engine composes these per game:

- **Expected score** is the logistic Elo curve on a 400-point scale,
  ``E_a = Q_a / (Q_a + Q_b)`` with ``Q = 10^(R/400)``. It is evaluated as
  ``1 / (1 + 10^((R_b - R_a)/400))`` so that large ratings do not overflow.
- **Team rating change** is ``k * (actual - expected)``. A team's rating is
  the mean of its players', so the players jointly absorb
  ``change * player_count``.
- **Sharing** splits that total among players in proportion to a weight:
  starting rating for a losing team, box-score performance for a winner.
"""

from __future__ import annotations

import math
from typing import Dict, Iterable, Optional, Tuple

from .league_stats import LeagueSeasonStats
from .models import PlayerGameStat

_SCALE = 400.0


def _logistic(rating: float, other: float) -> float:
    try:
        q = 10.0 ** ((other - rating) / _SCALE)
    except OverflowError:
        return 0.0
    return 1.0 / (1.0 + q)


def expected_scores(rating_home: float, rating_away: float) -> Tuple[float, float]:
    """Win probabilities for (home, away). They sum to 1."""
    e_home = _logistic(rating_home, rating_away)
    e_away = _logistic(rating_away, rating_home)
    return e_home, e_away


def rating_change(k_factor: float, actual: float, expected: float) -> float:
    return k_factor * (actual - expected)


def mean_rating(ratings: Iterable[float]) -> float:
    """Arithmetic mean, 0.0 for an empty roster."""
    values = list(ratings)
    if not values:
        return 0.0
    return math.fsum(values) / len(values)


def performance_score(player: PlayerGameStat, league: LeagueSeasonStats) -> float:
    """Box-score contribution weighted by league eFG% and TO%.

    Possession-ending events (rebounds, steals, turnovers) are scaled by
    ``eFG * (1 - TO)``, the value of a possession; blocks by ``eFG`` alone.
    """
    efg = league.efg_pct
    poss = efg * (1.0 - league.tov_pct)
    return (
        player.points * 1.0
        + player.rebounds * 2.0 * poss
        + player.assists * 2.0
        + player.steals * 2.0 * poss
        + player.blocks * 2.0 * efg
        + player.turnovers * -2.0 * poss
    )


def share_change(
    start: Dict[str, float],
    team_change: float,
    weights: Dict[str, float],
) -> Optional[Dict[str, float]]:
    """Spread ``team_change * len(start)`` across players by ``weights``.

    Args:
        start: Starting rating per player id.
        team_change: Team-level rating change (already multiplied by k).
        weights: Share weight per player id, same keys as ``start``.

    Returns:
        New rating per player id, or ``None`` when the split is undefined
        (empty roster or weights summing to zero). A zero ``team_change``
        returns the starting ratings unchanged.
    """
    if not start:
        return None
    if team_change == 0.0:
        return dict(start)
    total_weight = math.fsum(weights[pid] for pid in start)
    if total_weight == 0.0 or not math.isfinite(total_weight):
        return None
    total_change = team_change * len(start)
    return {
        pid: rating + total_change * (weights[pid] / total_weight)
        for pid, rating in start.items()
    }
