"""Text and Parquet encodings of game records.

Two forms are supported:

- **Rated lines**, one per game per K-factor::

      <k>\\t<gameId>,<year>,<month>,<day>,
          <homeId>,<homePts>,<homeStartElo>,<homeEndElo>,
          <awayId>,<awayPts>,<awayStartElo>,<awayEndElo>,
          <homeId>,(<playerId>,<startElo>,<endElo>)*,
          <awayId>,(<playerId>,<startElo>,<endElo>)*

  The repeated team id opens each roster block, so a player id may not
  equal the away team's id.

- **Game tables** (pyarrow / Parquet, or JSON lines of the same rows). Every
  numeric field is stored as its decimal string; floats use ``repr`` so
  they read back to the identical value.
"""

from __future__ import annotations

import gzip
import io
import json
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Optional

import pyarrow as pa
import pyarrow.parquet as pq

from .accuracy import TIE_POLICY_EXCLUDE, GameScore, score_prediction
from .errors import MalformedRecordError
from .logging_utils import log_json
from .models import GameRecord, PlayerGameStat, TeamGameStat

logger = logging.getLogger(__name__)

_HEADER_FIELDS = 12
_TEAM_STATS = ("points", "min_played", "rebounds", "assists", "steals", "blocks", "turnovers")
_PLAYER_STATS = ("points", "rebounds", "assists", "steals", "blocks", "turnovers")

PLAYER_STRUCT = pa.struct(
    [("player_id", pa.string())]
    + [(name, pa.string()) for name in _PLAYER_STATS]
    + [("start_elo", pa.string()), ("end_elo", pa.string())]
)


def _team_fields(side: str) -> List[pa.Field]:
    return (
        [pa.field(f"{side}_team_id", pa.string())]
        + [pa.field(f"{side}_{name}", pa.string()) for name in _TEAM_STATS]
        + [
            pa.field(f"{side}_start_elo", pa.string()),
            pa.field(f"{side}_end_elo", pa.string()),
            pa.field(f"{side}_players", pa.list_(PLAYER_STRUCT)),
        ]
    )


GAME_SCHEMA = pa.schema(
    [
        pa.field("game_id", pa.string()),
        pa.field("season_year", pa.string()),
        pa.field("year", pa.string()),
        pa.field("month", pa.string()),
        pa.field("day", pa.string()),
    ]
    + _team_fields("home")
    + _team_fields("away")
)


# ---------------------------------------------------------------------------
# Decimal string fields
# ---------------------------------------------------------------------------


def encode_number(value: Optional[float]) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return repr(float(value))


def decode_float(raw: Any, name: str = "field") -> float:
    try:
        value = float(raw)
    except (TypeError, ValueError):
        raise MalformedRecordError(f"{name} is not a number: {raw!r}") from None
    if not math.isfinite(value):
        raise MalformedRecordError(f"{name} is not finite: {raw!r}")
    return value


def decode_id(raw: Any, name: str = "id") -> str:
    if raw is None or str(raw).strip() == "":
        raise MalformedRecordError(f"{name} is missing")
    return str(raw)


def decode_int(raw: Any, name: str = "field") -> int:
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise MalformedRecordError(f"{name} is not an integer: {raw!r}") from None


def _decode_optional(raw: Any, name: str) -> Optional[float]:
    if raw is None or raw == "":
        return None
    return decode_float(raw, name)


# ---------------------------------------------------------------------------
# Game rows (Parquet / JSON lines)
# ---------------------------------------------------------------------------


def game_to_row(game: GameRecord) -> Dict[str, Any]:
    row: Dict[str, Any] = {
        "game_id": str(game.game_id),
        "season_year": encode_number(game.season_year),
        "year": encode_number(game.year),
        "month": encode_number(game.month),
        "day": encode_number(game.day),
    }
    for side, team in (("home", game.home), ("away", game.away)):
        row[f"{side}_team_id"] = team.team_id
        for name in _TEAM_STATS:
            row[f"{side}_{name}"] = encode_number(getattr(team, name))
        row[f"{side}_start_elo"] = encode_number(team.start_elo)
        row[f"{side}_end_elo"] = encode_number(team.end_elo)
        row[f"{side}_players"] = [
            {
                "player_id": p.player_id,
                **{name: encode_number(getattr(p, name)) for name in _PLAYER_STATS},
                "start_elo": encode_number(p.start_elo),
                "end_elo": encode_number(p.end_elo),
            }
            for p in team.iter_players()
        ]
    return row


def game_from_row(row: Dict[str, Any]) -> GameRecord:
    """Decode one row; accepts decimal strings or plain numbers."""
    try:
        teams = {}
        for side in ("home", "away"):
            team = TeamGameStat(
                team_id=decode_id(row[f"{side}_team_id"], f"{side}_team_id"),
                **{name: decode_float(row[f"{side}_{name}"], f"{side}_{name}") for name in _TEAM_STATS},
            )
            team.start_elo = _decode_optional(row.get(f"{side}_start_elo"), f"{side}_start_elo")
            team.end_elo = _decode_optional(row.get(f"{side}_end_elo"), f"{side}_end_elo")
            for p in row.get(f"{side}_players") or []:
                pid = decode_id(p["player_id"], f"{side} player_id")
                if team.has_player(pid):
                    raise MalformedRecordError(f"duplicate player {pid} on team {team.team_id}")
                team.add_player(
                    PlayerGameStat(
                        player_id=pid,
                        **{name: decode_float(p[name], f"player {pid} {name}") for name in _PLAYER_STATS},
                        start_elo=_decode_optional(p.get("start_elo"), f"player {pid} start_elo"),
                        end_elo=_decode_optional(p.get("end_elo"), f"player {pid} end_elo"),
                    )
                )
            teams[side] = team
        return GameRecord(
            game_id=decode_id(row["game_id"], "game_id"),
            season_year=decode_int(row["season_year"], "season_year"),
            year=decode_int(row["year"], "year"),
            month=decode_int(row["month"], "month"),
            day=decode_int(row["day"], "day"),
            home=teams["home"],
            away=teams["away"],
        )
    except (KeyError, TypeError) as exc:
        raise MalformedRecordError(f"game row missing field: {exc}") from None


def games_to_table(games: Iterable[GameRecord]) -> pa.Table:
    return pa.Table.from_pylist([game_to_row(g) for g in games], schema=GAME_SCHEMA)


def iter_table_games(table: pa.Table) -> Iterator[GameRecord]:
    """Yield games from a table, logging and skipping malformed rows."""
    for i, row in enumerate(table.to_pylist()):
        try:
            yield game_from_row(row)
        except MalformedRecordError as exc:
            log_json(logger, "malformed_record", level=logging.WARNING, row=i, error=str(exc))


def iter_jsonl_games(data: bytes) -> Iterator[GameRecord]:
    if data[:2] == b"\x1f\x8b":
        data = gzip.decompress(data)
    for lineno, raw in enumerate(data.decode("utf-8").splitlines(), start=1):
        if not raw.strip():
            continue
        try:
            yield game_from_row(json.loads(raw))
        except (MalformedRecordError, json.JSONDecodeError) as exc:
            log_json(logger, "malformed_record", level=logging.WARNING, line=lineno, error=str(exc))


def table_to_parquet_bytes(table: pa.Table) -> bytes:
    sink = io.BytesIO()
    pq.write_table(table, sink, compression="snappy")
    return sink.getvalue()


def load_games(data: bytes, name: str) -> List[GameRecord]:
    """Decode a games file; ``name`` picks the format by suffix."""
    if name.endswith(".parquet"):
        return list(iter_table_games(pq.read_table(io.BytesIO(data))))
    return list(iter_jsonl_games(data))


def dump_games_jsonl(games: Iterable[GameRecord]) -> bytes:
    return b"".join(json.dumps(game_to_row(g)).encode("utf-8") + b"\n" for g in games)


def dump_games(games: Iterable[GameRecord], name: str) -> bytes:
    """Encode games in the format ``load_games`` picks for ``name``."""
    if name.endswith(".parquet"):
        return table_to_parquet_bytes(games_to_table(games))
    data = dump_games_jsonl(games)
    if name.endswith(".gz"):
        return gzip.compress(data)
    return data


# ---------------------------------------------------------------------------
# Rated lines
# ---------------------------------------------------------------------------


@dataclass
class RatedPlayer:
    player_id: str
    start_elo: float
    end_elo: float


@dataclass
class RatedTeam:
    team_id: str
    points: float
    start_elo: float
    end_elo: float
    players: List[RatedPlayer] = field(default_factory=list)


@dataclass
class RatedLine:
    k_factor: int
    game_id: str
    year: int
    month: int
    day: int
    home: RatedTeam
    away: RatedTeam


def format_rated_line(k_factor: int, game: GameRecord) -> str:
    fields: List[str] = [str(game.game_id), str(game.year), str(game.month), str(game.day)]
    for team in game.teams():
        fields += [team.team_id, encode_number(team.points), _elo(team.start_elo), _elo(team.end_elo)]
    for team in game.teams():
        fields.append(team.team_id)
        for p in team.iter_players():
            fields += [p.player_id, _elo(p.start_elo), _elo(p.end_elo)]
    return f"{k_factor}\t{','.join(fields)}"


def _elo(value: Optional[float]) -> str:
    if value is None:
        raise ValueError("game has not been rated")
    return encode_number(value)


def parse_rated_line(line: str) -> RatedLine:
    parts = line.strip().split(None, 1)
    if len(parts) != 2:
        raise MalformedRecordError("expected '<k>\\t<fields>'", line)
    k_raw, body = parts
    tokens = body.split(",")
    if len(tokens) < _HEADER_FIELDS + 2:
        raise MalformedRecordError(f"expected at least {_HEADER_FIELDS + 2} fields, got {len(tokens)}", line)
    try:
        home = RatedTeam(tokens[4], decode_float(tokens[5]), decode_float(tokens[6]), decode_float(tokens[7]))
        away = RatedTeam(tokens[8], decode_float(tokens[9]), decode_float(tokens[10]), decode_float(tokens[11]))
        rated = RatedLine(
            k_factor=decode_int(k_raw, "k"),
            game_id=tokens[0],
            year=decode_int(tokens[1], "year"),
            month=decode_int(tokens[2], "month"),
            day=decode_int(tokens[3], "day"),
            home=home,
            away=away,
        )
        _parse_rosters(tokens[_HEADER_FIELDS:], home, away)
    except MalformedRecordError as exc:
        raise MalformedRecordError(str(exc), line) from None
    return rated


def _parse_rosters(tokens: List[str], home: RatedTeam, away: RatedTeam) -> None:
    if tokens[0] != home.team_id:
        raise MalformedRecordError(f"roster section must open with home team {home.team_id}")
    i = 1
    current = home
    while i < len(tokens):
        if current is home and tokens[i] == away.team_id:
            current = away
            i += 1
            continue
        if i + 3 > len(tokens):
            raise MalformedRecordError(f"truncated player block for team {current.team_id}")
        pid, start, end = tokens[i : i + 3]
        current.players.append(RatedPlayer(pid, decode_float(start, pid), decode_float(end, pid)))
        i += 3
    if current is not away:
        raise MalformedRecordError(f"roster section missing away team {away.team_id}")


def score_rated_line(line: RatedLine, tie_policy: str = TIE_POLICY_EXCLUDE) -> GameScore:
    """Re-score a rated line from its stored pre-game team ratings."""
    value, exclusion = score_prediction(
        line.home.start_elo, line.away.start_elo, line.home.points, line.away.points, tie_policy
    )
    return GameScore(line.k_factor, line.game_id, value, exclusion)


def iter_rated_lines(lines: Iterable[str]) -> Iterator[RatedLine]:
    """Parse rated lines, logging and skipping malformed ones."""
    for lineno, raw in enumerate(lines, start=1):
        if not raw.strip():
            continue
        try:
            yield parse_rated_line(raw)
        except MalformedRecordError as exc:
            log_json(logger, "malformed_record", level=logging.WARNING, line=lineno, error=str(exc))
