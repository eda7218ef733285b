"""Error kinds raised or reported by the rating pipeline."""

from __future__ import annotations

import enum


class EloError(Exception):
    """Base class for pipeline errors."""


class PlayerNotFoundError(EloError, KeyError):
    """A player id was requested that is not on the team's roster."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else "player not found"


class MalformedRecordError(EloError, ValueError):
    """An input line or row could not be parsed into a record."""

    def __init__(self, message: str, line: str | None = None) -> None:
        super().__init__(message)
        self.line = line


class MissingSeasonStatsError(EloError, KeyError):
    """No league averages are available for a season."""

    def __init__(self, season: int) -> None:
        super().__init__(season)
        self.season = season

    def __reduce__(self):
        return (type(self), (self.season,))

    def __str__(self) -> str:
        return f"no league stats for season {self.season}"


class PartitionCancelled(EloError):
    """Raised inside a worker when the sweep has been cancelled."""

    def __init__(self, k_factor: int, games_processed: int) -> None:
        super().__init__(f"partition k={k_factor} cancelled after {games_processed} games")
        self.k_factor = k_factor
        self.games_processed = games_processed

    def __reduce__(self):
        return (type(self), (self.k_factor, self.games_processed))


class Exclusion(str, enum.Enum):
    """Reasons a game produces no accuracy score."""

    TIED_PREDICTION = "tied_prediction"
    TIED_OUTCOME = "tied_outcome"
