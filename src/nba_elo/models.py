"""Game, team and player records consumed by the rating pipeline.

A ``GameRecord`` is created by ingestion and is immutable apart from the
Elo fields, which the engine fills in as it processes the game.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterator, Optional

from .errors import PlayerNotFoundError

INVALID_ID = "xINVALIDx"
INVALID_STAT = -1.0
INVALID_DATE = 0


@dataclass
class PlayerGameStat:
    """One player's box score line and ratings for a single game."""

    player_id: str = INVALID_ID
    points: float = INVALID_STAT
    rebounds: float = INVALID_STAT
    assists: float = INVALID_STAT
    steals: float = INVALID_STAT
    blocks: float = INVALID_STAT
    turnovers: float = INVALID_STAT
    start_elo: Optional[float] = None
    end_elo: Optional[float] = None


@dataclass
class TeamGameStat:
    """A team's aggregate line for a single game plus its roster.

    Teams compare equal by ``team_id`` only; a default-constructed team
    (``INVALID_ID``) is never equal to anything.
    """

    team_id: str = INVALID_ID
    points: float = INVALID_STAT
    min_played: float = INVALID_STAT
    rebounds: float = INVALID_STAT
    assists: float = INVALID_STAT
    steals: float = INVALID_STAT
    blocks: float = INVALID_STAT
    turnovers: float = INVALID_STAT
    players: Dict[str, PlayerGameStat] = field(default_factory=dict)
    start_elo: Optional[float] = None
    end_elo: Optional[float] = None

    def __eq__(self, other: object) -> bool:
        if self.team_id == INVALID_ID:
            return False
        if isinstance(other, TeamGameStat):
            return self.team_id == other.team_id
        if isinstance(other, str):
            return self.team_id == other
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self.team_id)

    def get_player(self, player_id: Optional[str]) -> PlayerGameStat:
        if player_id is None:
            raise PlayerNotFoundError("Cannot find a null player")
        try:
            return self.players[player_id]
        except KeyError:
            raise PlayerNotFoundError(f"Player with ID: {player_id} was not found") from None

    def has_player(self, player_id: Optional[str]) -> bool:
        if player_id is None:
            return False
        return player_id in self.players

    def add_player(self, player: Optional[PlayerGameStat]) -> None:
        """Add ``player`` to the roster, replacing any entry with the same id."""
        if player is None:
            return
        self.players[player.player_id] = player

    def iter_players(self) -> Iterator[PlayerGameStat]:
        # Sorted so float sums are identical from run to run.
        for pid in sorted(self.players):
            yield self.players[pid]

    @property
    def player_count(self) -> int:
        return len(self.players)


@dataclass
class GameRecord:
    game_id: str
    season_year: int
    year: int
    month: int
    day: int
    home: TeamGameStat
    away: TeamGameStat

    @property
    def date_tuple(self) -> tuple:
        return (self.season_year, self.year, self.month, self.day)

    def teams(self) -> tuple:
        return (self.home, self.away)
