"""Shared test fixtures for the nba_elo test suite.

Provides moto-based S3 mocks, a fixed league stats table and factories
for building small, realistic games.
"""

from __future__ import annotations

import os
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import boto3
import pytest
from moto import mock_aws

from nba_elo.config import Config
from nba_elo.league_stats import LeagueSeasonStats, LeagueStatsTable
from nba_elo.models import GameRecord, PlayerGameStat, TeamGameStat


# ---------------------------------------------------------------------------
# Fake AWS credentials so tests never reach real AWS
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True, scope="session")
def aws_credentials():
    """Set fake AWS credentials for the entire test session."""
    os.environ["AWS_ACCESS_KEY_ID"] = "testing"
    os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
    os.environ["AWS_SECURITY_TOKEN"] = "testing"
    os.environ["AWS_SESSION_TOKEN"] = "testing"
    os.environ["AWS_DEFAULT_REGION"] = "us-east-1"
    yield
    for key in (
        "AWS_ACCESS_KEY_ID",
        "AWS_SECRET_ACCESS_KEY",
        "AWS_SECURITY_TOKEN",
        "AWS_SESSION_TOKEN",
        "AWS_DEFAULT_REGION",
    ):
        os.environ.pop(key, None)


@pytest.fixture()
def s3_bucket():
    """Create a moto mock S3 bucket named 'nba-elo' in us-east-1.

    Yields the boto3 S3 client so tests can make additional assertions.
    """
    with mock_aws():
        client = boto3.client("s3", region_name="us-east-1")
        client.create_bucket(Bucket="nba-elo")
        yield client


# ---------------------------------------------------------------------------
# Configuration and league stats
# ---------------------------------------------------------------------------

@pytest.fixture()
def sample_config() -> Config:
    """A small sweep (k = 10, 20, 30) with two workers."""
    return Config({
        "region": "us-east-1",
        "sweep": {"min_k": 10, "max_k": 30, "k_step": 10},
        "initial_elo": 1200,
        "max_workers": 2,
        "league_stats": {2015: {"efg_pct": 0.5, "tov_pct": 0.1}},
    })


@pytest.fixture()
def league_stats() -> LeagueStatsTable:
    """eFG 0.5 and TO 0.1, so a possession is worth 0.45."""
    return LeagueStatsTable({
        2015: LeagueSeasonStats(2015, efg_pct=0.5, tov_pct=0.1),
        2016: LeagueSeasonStats(2016, efg_pct=0.52, tov_pct=0.13),
    })


# ---------------------------------------------------------------------------
# Game factories
# ---------------------------------------------------------------------------

def _player(pid: str, line: Sequence[float] = (10, 4, 2, 1, 0, 1)) -> PlayerGameStat:
    points, rebounds, assists, steals, blocks, turnovers = line
    return PlayerGameStat(
        player_id=pid,
        points=points,
        rebounds=rebounds,
        assists=assists,
        steals=steals,
        blocks=blocks,
        turnovers=turnovers,
    )


def _team(team_id: str, points: float, players: Dict[str, Sequence[float]]) -> TeamGameStat:
    team = TeamGameStat(team_id=team_id, points=points, min_played=240)
    for pid, line in players.items():
        team.add_player(_player(pid, line))
    return team


@pytest.fixture()
def make_player() -> Callable[..., PlayerGameStat]:
    return _player


@pytest.fixture()
def make_team() -> Callable[..., TeamGameStat]:
    return _team


@pytest.fixture()
def make_game() -> Callable[..., GameRecord]:
    """Factory: make_game(game_id, date, home=(id, pts, players), away=(...)).

    ``date`` is ``(season_year, year, month, day)``. Players default to two
    per side with a generic box score line.
    """

    def _make(
        game_id: str,
        date: Tuple[int, int, int, int] = (2015, 2014, 11, 1),
        home: Optional[Tuple[str, float, Dict[str, Sequence[float]]]] = None,
        away: Optional[Tuple[str, float, Dict[str, Sequence[float]]]] = None,
    ) -> GameRecord:
        home = home or ("BOS", 110, {"bos_a": (30, 10, 5, 2, 1, 3), "bos_b": (10, 2, 1, 0, 0, 1)})
        away = away or ("NYK", 100, {"nyk_a": (25, 6, 4, 1, 0, 2), "nyk_b": (12, 8, 2, 1, 2, 2)})
        season, year, month, day = date
        return GameRecord(
            game_id=game_id,
            season_year=season,
            year=year,
            month=month,
            day=day,
            home=_team(*home),
            away=_team(*away),
        )

    return _make


@pytest.fixture()
def season_games(make_game) -> List[GameRecord]:
    """Six games between three teams, deliberately out of date order."""
    bos = {"bos_a": (30, 10, 5, 2, 1, 3), "bos_b": (10, 2, 1, 0, 0, 1)}
    nyk = {"nyk_a": (25, 6, 4, 1, 0, 2), "nyk_b": (12, 8, 2, 1, 2, 2)}
    chi = {"chi_a": (18, 12, 3, 1, 3, 4), "chi_b": (22, 3, 7, 2, 0, 2)}
    return [
        make_game("g4", (2015, 2014, 12, 2), ("CHI", 98, chi), ("BOS", 101, bos)),
        make_game("g1", (2015, 2014, 11, 1), ("BOS", 110, bos), ("NYK", 100, nyk)),
        make_game("g3", (2015, 2014, 11, 20), ("NYK", 95, nyk), ("CHI", 90, chi)),
        make_game("g2", (2015, 2014, 11, 5), ("CHI", 104, chi), ("BOS", 99, bos)),
        make_game("g6", (2016, 2015, 11, 3), ("BOS", 88, bos), ("CHI", 92, chi)),
        make_game("g5", (2015, 2015, 1, 15), ("NYK", 107, nyk), ("BOS", 111, bos)),
    ]
