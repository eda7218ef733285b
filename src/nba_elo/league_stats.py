"""Read-only league-average lookup (season -> eFG%, TO%).

The table is built once before a sweep starts and is shared by every
K-factor worker without locking; nothing mutates it after construction.
"""

from __future__ import annotations

import csv
import io
import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Dict, Iterator, Mapping, Optional

from .errors import MissingSeasonStatsError

logger = logging.getLogger(__name__)

_SEASON_COLS = ("season", "season_year", "seasonyear", "year")
_EFG_COLS = ("efg_pct", "efg", "effective_fg_pct", "efgpct")
_TOV_COLS = ("tov_pct", "to_pct", "tov", "turnover_pct", "topct")


@dataclass(frozen=True)
class LeagueSeasonStats:
    season_year: int
    efg_pct: float
    tov_pct: float


class LeagueStatsTable:
    """Immutable season -> ``LeagueSeasonStats`` mapping."""

    def __init__(self, stats: Mapping[int, LeagueSeasonStats]) -> None:
        self._stats = MappingProxyType(dict(stats))

    def get(self, season_year: int) -> LeagueSeasonStats:
        try:
            return self._stats[season_year]
        except KeyError:
            raise MissingSeasonStatsError(season_year) from None

    def __contains__(self, season_year: object) -> bool:
        return season_year in self._stats

    def __iter__(self) -> Iterator[int]:
        return iter(sorted(self._stats))

    def __len__(self) -> int:
        return len(self._stats)

    def __reduce__(self):
        # MappingProxyType cannot be pickled; rebuild from a plain dict.
        return (type(self), (dict(self._stats),))

    @classmethod
    def from_mapping(cls, raw: Mapping[Any, Mapping[str, Any]]) -> "LeagueStatsTable":
        """Build from ``{season: {"efg_pct": .., "tov_pct": ..}}`` (the config.yaml shape)."""
        stats: Dict[int, LeagueSeasonStats] = {}
        for season, vals in raw.items():
            season_year = int(season)
            efg = _first_value(vals, _EFG_COLS)
            tov = _first_value(vals, _TOV_COLS)
            if efg is None or tov is None:
                raise ValueError(f"league stats for season {season_year} need efg_pct and tov_pct")
            stats[season_year] = LeagueSeasonStats(season_year, _as_fraction(efg), _as_fraction(tov))
        return cls(stats)


def load_league_stats_csv(data: str) -> LeagueStatsTable:
    """Parse league averages from CSV text.

    Column names are matched loosely (``season``/``year``, ``efg_pct``/``efg``,
    ``tov_pct``/``to_pct``). Percentages above 1 are treated as 0-100 values.
    """
    reader = csv.DictReader(io.StringIO(data))
    if reader.fieldnames is None:
        return LeagueStatsTable({})

    col_map: Dict[str, str] = {}
    for col in reader.fieldnames:
        cl = col.strip().lower().replace(" ", "_").replace("%", "_pct")
        if cl in _SEASON_COLS:
            col_map.setdefault("season", col)
        elif cl in _EFG_COLS:
            col_map.setdefault("efg_pct", col)
        elif cl in _TOV_COLS:
            col_map.setdefault("tov_pct", col)

    missing = [k for k in ("season", "efg_pct", "tov_pct") if k not in col_map]
    if missing:
        raise ValueError(f"league stats CSV missing columns {missing}; found {reader.fieldnames}")

    raw: Dict[int, Dict[str, float]] = {}
    for row in reader:
        try:
            season = int(row[col_map["season"]])
            raw[season] = {
                "efg_pct": float(row[col_map["efg_pct"]]),
                "tov_pct": float(row[col_map["tov_pct"]]),
            }
        except (TypeError, ValueError):
            logger.warning("Skipping unparsable league stats row: %s", row)
    table = LeagueStatsTable.from_mapping(raw)
    logger.info("Loaded league stats for %d seasons", len(table))
    return table


def _first_value(vals: Mapping[str, Any], names: tuple) -> Optional[float]:
    for name in names:
        if name in vals and vals[name] is not None:
            return float(vals[name])
    return None


def _as_fraction(value: float) -> float:
    if value > 1.0:
        value = value / 100.0
    if not 0.0 <= value <= 1.0:
        raise ValueError(f"league percentage out of range: {value}")
    return value
