"""Per-partition Elo state machine.

One ``EloEngine`` owns the ratings for one K-factor. It consumes games in
chronological order and, for each game:

1. rates each team as the mean of its players' current ratings,
2. scores the pre-game prediction,
3. moves each team by ``k * (actual - expected)``,
4. shares that move among the players and stores their new ratings.

A game is processed atomically: new ratings are computed first and only
written once nothing else can fail, so a skipped game leaves the state
untouched.
"""

from __future__ import annotations

import logging
import math
import threading
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from .accuracy import TIE_POLICY_EXCLUDE, AccuracyAggregator, GameScore, KFactorAccuracy, score_prediction
from .config import START_ELO
from .elo_math import expected_scores, mean_rating, performance_score, rating_change, share_change
from .errors import MalformedRecordError, MissingSeasonStatsError, PartitionCancelled
from .league_stats import LeagueStatsTable
from .logging_utils import log_json
from .models import GameRecord, TeamGameStat
from .sort_key import SortKey

logger = logging.getLogger(__name__)

_PLAYER_STATS = ("points", "rebounds", "assists", "steals", "blocks", "turnovers")


class RatingState:
    """Current rating per player id, seeded lazily at ``initial_elo``."""

    def __init__(self, initial_elo: float = START_ELO) -> None:
        self.initial_elo = initial_elo
        self._ratings: Dict[str, float] = {}

    def get(self, player_id: str) -> float:
        return self._ratings.get(player_id, self.initial_elo)

    def update(self, ratings: Dict[str, float]) -> None:
        self._ratings.update(ratings)

    def __contains__(self, player_id: object) -> bool:
        return player_id in self._ratings

    def __len__(self) -> int:
        return len(self._ratings)


@dataclass
class GameResult:
    game: GameRecord
    score: GameScore
    degenerate_teams: Tuple[str, ...] = ()


@dataclass
class PartitionResult:
    k_factor: int
    games: List[GameRecord] = field(default_factory=list)
    scores: List[GameScore] = field(default_factory=list)
    skipped: int = 0
    degenerate: int = 0

    def accuracy(self) -> KFactorAccuracy:
        return AccuracyAggregator(self.k_factor).extend(self.scores).result()


class EloEngine:
    def __init__(
        self,
        k_factor: int,
        league_stats: LeagueStatsTable,
        initial_elo: float = START_ELO,
        tie_policy: str = TIE_POLICY_EXCLUDE,
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        self.k_factor = k_factor
        self.league_stats = league_stats
        self.tie_policy = tie_policy
        self.state = RatingState(initial_elo)
        self._cancel = cancel_event
        self._last_key: Optional[SortKey] = None

    def team_rating(self, team: TeamGameStat) -> float:
        return mean_rating(self.state.get(p.player_id) for p in team.iter_players())

    def process_game(self, game: GameRecord) -> GameResult:
        """Rate one game and advance the state.

        Raises:
            MalformedRecordError: A missing, negative or non-finite stat, or a
                player listed on both rosters.
            MissingSeasonStatsError: No league averages for the game's season.
        """
        _validate_game(game)
        league = self.league_stats.get(game.season_year)

        starts = {
            team.team_id: {p.player_id: self.state.get(p.player_id) for p in team.iter_players()}
            for team in game.teams()
        }
        home, away = game.home, game.away
        r_home = mean_rating(starts[home.team_id].values())
        r_away = mean_rating(starts[away.team_id].values())
        e_home, e_away = expected_scores(r_home, r_away)

        value, exclusion = score_prediction(r_home, r_away, home.points, away.points, self.tie_policy)
        score = GameScore(self.k_factor, game.game_id, value, exclusion)

        if home.points == away.points:
            actual_home = actual_away = None
        else:
            actual_home = 1.0 if home.points > away.points else 0.0
            actual_away = 1.0 - actual_home

        ends: Dict[str, Dict[str, float]] = {}
        degenerate: List[str] = []
        for team, actual, expected in ((home, actual_home, e_home), (away, actual_away, e_away)):
            start = starts[team.team_id]
            change = 0.0 if actual is None else rating_change(self.k_factor, actual, expected)
            if change > 0:
                weights = {p.player_id: performance_score(p, league) for p in team.iter_players()}
            else:
                weights = start
            shared = share_change(start, change, weights)
            if shared is None:
                degenerate.append(team.team_id)
                log_json(
                    logger,
                    "degenerate_redistribution",
                    level=logging.WARNING,
                    k_factor=self.k_factor,
                    game_id=game.game_id,
                    team_id=team.team_id,
                    players=len(start),
                    change=change,
                )
                shared = dict(start)
            ends[team.team_id] = shared

        for team in game.teams():
            start, end = starts[team.team_id], ends[team.team_id]
            for player in team.iter_players():
                player.start_elo = start[player.player_id]
                player.end_elo = end[player.player_id]
            team.start_elo = mean_rating(start.values())
            team.end_elo = mean_rating(end.values())
            self.state.update(end)

        return GameResult(game=game, score=score, degenerate_teams=tuple(degenerate))

    def run(self, games: Iterable[GameRecord], keep_games: bool = False) -> PartitionResult:
        """Consume an ordered game stream.

        Per-game failures are logged and skipped. Games must arrive in
        non-decreasing (season, year, month, day) order. Rated games are
        only retained on the result when ``keep_games`` is set.

        Raises:
            PartitionCancelled: The cancel event was set between games.
            ValueError: A game arrived earlier than its predecessor.
        """
        result = PartitionResult(self.k_factor)
        for n, game in enumerate(games):
            if self._cancel is not None and self._cancel.is_set():
                raise PartitionCancelled(self.k_factor, n)
            key = SortKey.for_game(self.k_factor, game)
            if self._last_key is not None and key.less(self._last_key):
                raise ValueError(f"game {game.game_id} keyed {key} arrived after {self._last_key}")
            self._last_key = key
            try:
                game_result = self.process_game(game)
            except (MalformedRecordError, MissingSeasonStatsError) as exc:
                result.skipped += 1
                log_json(
                    logger,
                    "game_skipped",
                    level=logging.WARNING,
                    k_factor=self.k_factor,
                    game_id=game.game_id,
                    error=str(exc),
                )
                continue
            if keep_games:
                result.games.append(game_result.game)
            result.scores.append(game_result.score)
            result.degenerate += len(game_result.degenerate_teams)
        return result


def _validate_game(game: GameRecord) -> None:
    if game.home.team_id == game.away.team_id:
        raise MalformedRecordError(f"game {game.game_id}: home and away are both {game.home.team_id}")
    shared = set(game.home.players) & set(game.away.players)
    if shared:
        raise MalformedRecordError(f"game {game.game_id}: players on both rosters: {sorted(shared)}")
    for team in game.teams():
        if not _valid_stat(team.points):
            raise MalformedRecordError(f"game {game.game_id}: team {team.team_id} has invalid points={team.points}")
        for player in team.iter_players():
            for name in _PLAYER_STATS:
                value = getattr(player, name)
                if not _valid_stat(value):
                    raise MalformedRecordError(
                        f"game {game.game_id}: player {player.player_id} has invalid {name}={value}"
                    )


def _valid_stat(value: Optional[float]) -> bool:
    return value is not None and math.isfinite(value) and value >= 0


def run_partition(
    k_factor: int,
    games: Iterable[GameRecord],
    league_stats: LeagueStatsTable,
    initial_elo: float = START_ELO,
    tie_policy: str = TIE_POLICY_EXCLUDE,
    cancel_event: Optional[threading.Event] = None,
    keep_games: bool = False,
) -> PartitionResult:
    """Build a fresh engine for ``k_factor`` and run it over ``games``."""
    engine = EloEngine(k_factor, league_stats, initial_elo, tie_policy, cancel_event)
    return engine.run(games, keep_games=keep_games)
