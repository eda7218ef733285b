from __future__ import annotations

import argparse
import sys
from typing import List, Optional

from .accuracy import aggregate_scores, best_k_factor
from .codec import dump_games, format_rated_line, iter_rated_lines, load_games, score_rated_line
from .config import Config, load_config
from .league_stats import LeagueStatsTable, load_league_stats_csv
from .logging_utils import log_json, setup_logging
from .s3_io import make_part_key, read_bytes, write_bytes
from .sweep import SweepResult, SweepRunner, best_k, format_results
from .utils import run_tag

GAME_FORMATS = ("parquet", "jsonl", "jsonl.gz")


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="nba_elo")
    parser.add_argument("--config", default=None, help="Path to config.yaml (defaults are used when omitted)")
    parser.add_argument("--log-level", default="INFO")
    sub = parser.add_subparsers(dest="command", required=True)

    sweep = sub.add_parser("sweep", help="Rate every game for each K-factor and score the predictions")
    sweep.add_argument("--games", required=True, help="Games file (.parquet or .jsonl[.gz]); local path or s3:// URI")
    sweep.add_argument("--league-stats", help="CSV of season,efg_pct,tov_pct (overrides config league_stats)")
    sweep.add_argument("--output", help="Where to write '<k> <mean>' lines")
    sweep.add_argument("--rated-output", help="Where to write rated game lines")
    sweep.add_argument(
        "--rated-games",
        help="Directory or s3:// prefix for rated games, written as <prefix>/k=<k>/games.<format>",
    )
    sweep.add_argument("--rated-games-format", choices=GAME_FORMATS, default="parquet")

    score = sub.add_parser("score", help="Re-score previously written rated game lines")
    score.add_argument("--rated", required=True, help="Rated lines file; local path or s3:// URI")
    score.add_argument("--output", help="Where to write '<k> <mean>' lines")

    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> None:
    args = _parse_args(argv)
    logger = setup_logging(args.log_level)
    cfg = load_config(args.config)

    if args.command == "sweep":
        _run_sweep(args, cfg, logger)
    elif args.command == "score":
        _run_score(args, cfg, logger)


def _load_league_stats(args: argparse.Namespace, cfg: Config) -> LeagueStatsTable:
    if args.league_stats:
        return load_league_stats_csv(read_bytes(args.league_stats, cfg.region).decode("utf-8"))
    return LeagueStatsTable.from_mapping(cfg.league_stats)


def _run_sweep(args: argparse.Namespace, cfg: Config, logger) -> None:
    league_stats = _load_league_stats(args, cfg)
    games = load_games(read_bytes(args.games, cfg.region), args.games)
    log_json(logger, "games_loaded", games=len(games), seasons=len(league_stats))

    runner = SweepRunner(cfg, league_stats)
    try:
        results = runner.run(games, keep_games=bool(args.rated_output or args.rated_games))
    except KeyboardInterrupt:
        runner.cancel()
        log_json(logger, "sweep_interrupted")
        sys.exit(130)

    _emit(format_results(results), args.output, cfg, "results.txt", args.games)
    if args.rated_output:
        lines = [format_rated_line(r.k_factor, g) for r in results for g in r.games]
        _emit("".join(line + "\n" for line in lines), args.rated_output, cfg, "rated.txt", args.games)
    if args.rated_games:
        _write_rated_games(results, args.rated_games, args.rated_games_format, cfg)
    best = best_k(results)
    if best is not None:
        log_json(logger, "best_k_factor", k_factor=best.k_factor, mean_score=best.mean_score)


def _write_rated_games(results: List[SweepResult], prefix: str, fmt: str, cfg: Config) -> None:
    for r in results:
        location = f"{prefix.rstrip('/')}/k={r.k_factor}/games.{fmt}"
        write_bytes(location, dump_games(r.games, location), cfg.region)


def _run_score(args: argparse.Namespace, cfg: Config, logger) -> None:
    text = read_bytes(args.rated, cfg.region).decode("utf-8")
    scores = (score_rated_line(line, cfg.tie_policy) for line in iter_rated_lines(text.splitlines()))
    accuracy = aggregate_scores(scores)
    lines = [accuracy[k].to_line() for k in accuracy]
    _emit("".join(line + "\n" for line in lines), args.output, cfg, "scores.txt", args.rated)
    best = best_k_factor(accuracy.values())
    if best is not None:
        log_json(logger, "best_k_factor", k_factor=best.k_factor, mean_score=best.mean_score)


def _emit(text: str, location: Optional[str], cfg: Config, name: str, source: str) -> None:
    """Write to ``location``, else to the configured output bucket, else stdout."""
    if location is None:
        bucket = cfg.output.get("bucket")
        if not bucket:
            sys.stdout.write(text)
            return
        tag = run_tag({"config": cfg.raw, "source": source})
        location = f"s3://{bucket}/{make_part_key(cfg.output.get('prefix', 'nba_elo'), tag, name)}"
    write_bytes(location, text.encode("utf-8"), cfg.region)


if __name__ == "__main__":
    main()
