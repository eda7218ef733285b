#!/usr/bin/env python3
"""Rank K-factors by prediction accuracy and recommend one.

Runs the full sweep over a games file, prints a ranked table of mean
accuracy scores and a config.yaml snippet for the winner.

Usage:
    python scripts/tune_k_factor.py --games games.parquet --league-stats league.csv
    python scripts/tune_k_factor.py --games s3://bucket/games.jsonl.gz --config config.yaml --top 10
"""

from __future__ import annotations

import argparse
import logging
import math
import sys
from pathlib import Path
from typing import List

# Add project root to path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "src"))

from nba_elo.codec import load_games
from nba_elo.config import Config, load_config
from nba_elo.league_stats import LeagueStatsTable, load_league_stats_csv
from nba_elo.s3_io import read_bytes
from nba_elo.sweep import SweepResult, SweepRunner, best_k

logging.basicConfig(level=logging.WARNING, format="%(levelname)s %(message)s")
logger = logging.getLogger(__name__)


def print_ranking(results: List[SweepResult], top: int) -> None:
    ranked = sorted(
        results,
        key=lambda r: (math.isnan(r.mean_score), r.mean_score, r.k_factor),
    )
    print(f"\n{'='*64}")
    print(f"  K-factor ranking ({len(results)} partitions)")
    print(f"{'='*64}")
    print(f"  {'Rk':>3} {'K':>4} {'MeanScore':>10} {'Scored':>7} {'Excluded':>9} {'Skipped':>8}")
    print(f"  {'-'*3} {'-'*4} {'-'*10} {'-'*7} {'-'*9} {'-'*8}")
    for i, r in enumerate(ranked[:top]):
        excluded = sum(r.accuracy.excluded.values())
        print(
            f"  {i+1:>3} {r.k_factor:>4} {r.mean_score:>10.6f} "
            f"{r.accuracy.games_scored:>7} {excluded:>9} {r.games_skipped:>8}"
        )


def main():
    parser = argparse.ArgumentParser(description="Tune the Elo K-factor")
    parser.add_argument("--games", required=True)
    parser.add_argument("--league-stats", type=str, default=None,
                        help="CSV of season league averages (else config league_stats)")
    parser.add_argument("--config", type=str, default=None)
    parser.add_argument("--top", type=int, default=15)
    args = parser.parse_args()

    cfg: Config = load_config(args.config)

    print("\n[1/3] Loading data...")
    if args.league_stats:
        league = load_league_stats_csv(read_bytes(args.league_stats, cfg.region).decode("utf-8"))
    else:
        league = LeagueStatsTable.from_mapping(cfg.league_stats)
    games = load_games(read_bytes(args.games, cfg.region), args.games)
    print(f"  Loaded {len(games)} games, league stats for {len(league)} seasons")
    print(f"  Sweep: k={cfg.min_k}..{cfg.max_k} step {cfg.k_step} ({len(cfg.k_factors())} values)")

    print("\n[2/3] Running sweep...")
    results = SweepRunner(cfg, league).run(games)
    print_ranking(results, args.top)

    print("\n[3/3] Recommendation")
    best = best_k(results)
    if best is None:
        print("  No K-factor produced a scored game; check the input and league stats.")
        return
    print(f"  Best K-factor: {best.k_factor} (mean score {best.mean_score:.6f})")
    print(f"\n  config.yaml snippet:")
    print(f"    sweep:")
    print(f"      min_k: {best.k_factor}")
    print(f"      max_k: {best.k_factor}")
    print(f"      k_step: 1")
    print(f"    initial_elo: {cfg.initial_elo}")


if __name__ == "__main__":
    main()
