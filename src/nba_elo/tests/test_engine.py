"""Tests for the per-partition Elo engine."""

from __future__ import annotations

import pickle
import threading

import pytest

from nba_elo.elo_math import expected_scores
from nba_elo.engine import EloEngine, RatingState, run_partition
from nba_elo.errors import Exclusion, PartitionCancelled
from nba_elo.partition import partition_and_order


def _deltas(team):
    return {p.player_id: p.end_elo - p.start_elo for p in team.iter_players()}


class TestRatingState:
    def test_unseen_player_gets_initial_rating(self):
        state = RatingState(1200.0)
        assert state.get("new_guy") == 1200.0
        assert "new_guy" not in state

    def test_update(self):
        state = RatingState(1500.0)
        state.update({"a": 1510.0})
        assert state.get("a") == 1510.0
        assert len(state) == 1
        assert "a" in state

    def test_team_rating_is_player_mean(self, make_team, league_stats):
        engine = EloEngine(20, league_stats)
        engine.state.update({"bos_a": 1300.0})
        team = make_team("BOS", 100, {"bos_a": (1, 1, 1, 1, 1, 1), "bos_b": (1, 1, 1, 1, 1, 1)})
        assert engine.team_rating(team) == 1250.0
        assert engine.team_rating(make_team("NYK", 90, {})) == 0.0


class TestFirstGame:
    """Both rosters start at 1200; home wins 110-100 with k=20."""

    def test_tied_ratings_produce_no_score(self, make_game, league_stats):
        engine = EloEngine(20, league_stats)
        result = engine.process_game(make_game("g1"))
        assert result.score.score is None
        assert result.score.exclusion is Exclusion.TIED_PREDICTION
        assert not result.score.scored

    def test_half_tie_policy_scores_half(self, make_game, league_stats):
        engine = EloEngine(20, league_stats, tie_policy="half")
        result = engine.process_game(make_game("g1"))
        assert result.score.score == 0.5

    def test_team_ratings_recorded(self, make_game, league_stats):
        game = make_game("g1")
        EloEngine(20, league_stats).process_game(game)
        assert game.home.start_elo == 1200.0
        assert game.away.start_elo == 1200.0
        assert abs(game.home.end_elo - 1210.0) < 1e-9
        assert abs(game.away.end_elo - 1190.0) < 1e-9

    def test_winner_shares_by_performance(self, make_game, league_stats):
        game = make_game("g1")
        EloEngine(20, league_stats).process_game(game)
        # Performance scores 49.1 and 12.9; team change 10 * 2 players.
        deltas = _deltas(game.home)
        assert abs(deltas["bos_a"] - 20 * 49.1 / 62.0) < 1e-9
        assert abs(deltas["bos_b"] - 20 * 12.9 / 62.0) < 1e-9

    def test_loser_shares_by_rating(self, make_game, league_stats):
        game = make_game("g1")
        EloEngine(20, league_stats).process_game(game)
        assert _deltas(game.away) == pytest.approx({"nyk_a": -10.0, "nyk_b": -10.0})

    def test_state_carries_to_next_game(self, make_game, league_stats):
        engine = EloEngine(20, league_stats)
        first = make_game("g1")
        engine.process_game(first)
        second = make_game("g2", (2015, 2014, 11, 3))
        result = engine.process_game(second)

        assert second.home.get_player("bos_a").start_elo == first.home.get_player("bos_a").end_elo
        e_home, _ = expected_scores(first.home.end_elo, first.away.end_elo)
        # Home was favoured and won again.
        assert abs(result.score.score - (1.0 - e_home)) < 1e-12


class TestScoring:
    def test_wrong_prediction_scores_expected(self, make_game, league_stats):
        engine = EloEngine(20, league_stats)
        engine.state.update({"bos_a": 1300.0, "bos_b": 1300.0})
        game = make_game("g1", home=("BOS", 90, {"bos_a": (20, 5, 3, 1, 0, 2), "bos_b": (10, 3, 1, 0, 0, 1)}))
        result = engine.process_game(game)
        e_home, _ = expected_scores(1300.0, 1200.0)
        assert abs(result.score.score - e_home) < 1e-12

    def test_tied_outcome_excluded_and_ratings_unchanged(self, make_game, league_stats):
        engine = EloEngine(20, league_stats)
        engine.state.update({"bos_a": 1250.0})
        game = make_game("g1", away=("NYK", 110, {"nyk_a": (25, 6, 4, 1, 0, 2), "nyk_b": (12, 8, 2, 1, 2, 2)}))
        result = engine.process_game(game)
        assert result.score.exclusion is Exclusion.TIED_OUTCOME
        for team in game.teams():
            for p in team.iter_players():
                assert p.end_elo == p.start_elo


class TestZeroSum:
    @pytest.mark.parametrize("k", [1, 7, 20, 40])
    def test_player_deltas_sum_to_team_change(self, k, make_game, league_stats):
        engine = EloEngine(k, league_stats)
        engine.state.update({"bos_a": 1234.5, "nyk_b": 1170.25})
        game = make_game("g1")
        r_home = (1234.5 + 1200.0) / 2
        r_away = (1200.0 + 1170.25) / 2
        e_home, e_away = expected_scores(r_home, r_away)
        engine.process_game(game)

        home_total = sum(_deltas(game.home).values())
        away_total = sum(_deltas(game.away).values())
        assert abs(home_total - k * (1.0 - e_home) * 2) < 1e-9
        assert abs(away_total - k * (0.0 - e_away) * 2) < 1e-9
        assert abs(home_total + away_total) < 1e-9


class TestDegenerate:
    def test_empty_roster_rates_zero_and_is_guarded(self, make_game, league_stats):
        engine = EloEngine(20, league_stats)
        game = make_game("g1", home=("BOS", 101, {}))
        result = engine.process_game(game)
        assert game.home.start_elo == 0.0
        assert game.home.end_elo == 0.0
        assert result.degenerate_teams == ("BOS",)
        # Away was favoured (1200 vs 0) and lost.
        _, e_away = expected_scores(0.0, 1200.0)
        assert abs(result.score.score - e_away) < 1e-12
        assert all(d < 0 for d in _deltas(game.away).values())

    def test_zero_performance_winner_keeps_ratings(self, make_game, league_stats):
        engine = EloEngine(20, league_stats)
        zero = (0, 0, 0, 0, 0, 0)
        game = make_game("g1", home=("BOS", 101, {"bos_a": zero, "bos_b": zero}))
        result = engine.process_game(game)
        assert result.degenerate_teams == ("BOS",)
        assert _deltas(game.home) == {"bos_a": 0.0, "bos_b": 0.0}
        assert engine.state.get("bos_a") == 1200.0
        # The losing side is still updated.
        assert engine.state.get("nyk_a") == pytest.approx(1190.0)


class TestRun:
    def test_run_isolates_bad_games(self, make_game, league_stats):
        bad_stat = make_game("g2", (2015, 2014, 11, 2), home=("BOS", 100, {"bos_a": (10, -1, 0, 0, 0, 0)}))
        no_season = make_game("g4", (2020, 2019, 11, 3))
        games = [make_game("g1"), bad_stat, make_game("g3", (2015, 2014, 11, 4)), no_season]

        result = EloEngine(20, league_stats).run(games, keep_games=True)
        assert result.skipped == 2
        assert [g.game_id for g in result.games] == ["g1", "g3"]
        assert len(result.scores) == 2

    @pytest.mark.parametrize(
        "home",
        [
            ("BOS", float("nan"), {"bos_a": (30, 10, 5, 2, 1, 3), "bos_b": (10, 2, 1, 0, 0, 1)}),
            ("BOS", float("inf"), {"bos_a": (30, 10, 5, 2, 1, 3), "bos_b": (10, 2, 1, 0, 0, 1)}),
            ("BOS", 110, {"bos_a": (30, float("nan"), 5, 2, 1, 3), "bos_b": (10, 2, 1, 0, 0, 1)}),
            ("BOS", 110, {"bos_a": (30, 10, 5, 2, 1, float("-inf")), "bos_b": (10, 2, 1, 0, 0, 1)}),
        ],
    )
    def test_non_finite_values_skip_the_game(self, home, make_game, league_stats):
        engine = EloEngine(20, league_stats)
        engine.state.update({"bos_a": 1300.0, "bos_b": 1300.0})
        result = engine.run([make_game("g1", home=home)])
        assert result.skipped == 1
        assert result.scores == []
        assert engine.state.get("bos_a") == 1300.0
        assert "nyk_a" not in engine.state

    def test_player_on_both_rosters_skips_the_game(self, make_game, league_stats):
        away = ("NYK", 100, {"bos_a": (25, 6, 4, 1, 0, 2), "nyk_b": (12, 8, 2, 1, 2, 2)})
        engine = EloEngine(20, league_stats)
        result = engine.run([make_game("g1", away=away)])
        assert result.skipped == 1
        assert len(engine.state) == 0

    def test_skipped_game_leaves_state_untouched(self, make_game, league_stats):
        engine = EloEngine(20, league_stats)
        engine.run([make_game("g1", (1999, 1998, 11, 1))])
        assert len(engine.state) == 0

    def test_out_of_order_input_rejected(self, make_game, league_stats):
        games = [make_game("g2", (2015, 2014, 11, 5)), make_game("g1", (2015, 2014, 11, 1))]
        with pytest.raises(ValueError, match="arrived after"):
            EloEngine(20, league_stats).run(games)

    def test_same_day_games_allowed(self, make_game, league_stats):
        games = [make_game("g1"), make_game("g2")]
        assert len(EloEngine(20, league_stats).run(games).scores) == 2

    def test_cancel_event_stops_partition(self, make_game, league_stats):
        cancel = threading.Event()
        cancel.set()
        with pytest.raises(PartitionCancelled) as exc_info:
            run_partition(20, [make_game("g1")], league_stats, cancel_event=cancel)
        assert exc_info.value.k_factor == 20
        assert exc_info.value.games_processed == 0

    def test_cancellation_survives_pickling(self):
        restored = pickle.loads(pickle.dumps(PartitionCancelled(12, 340)))
        assert (restored.k_factor, restored.games_processed) == (12, 340)
        assert str(restored) == "partition k=12 cancelled after 340 games"

    def test_games_dropped_unless_kept(self, season_games, league_stats):
        result = run_partition(15, partition_and_order(season_games, [15])[15], league_stats)
        assert result.games == []
        assert len(result.scores) == 6

    def test_rerun_is_identical(self, season_games, league_stats):
        partition = partition_and_order(season_games, [15])[15]
        first = run_partition(15, partition, league_stats, keep_games=True)
        second = run_partition(15, partition, league_stats, keep_games=True)
        assert [s.score for s in first.scores] == [s.score for s in second.scores]
        for a, b in zip(first.games, second.games):
            for ta, tb in zip(a.teams(), b.teams()):
                assert [p.end_elo for p in ta.iter_players()] == [p.end_elo for p in tb.iter_players()]

    def test_accuracy_mean_ignores_exclusions(self, season_games, league_stats):
        result = run_partition(15, partition_and_order(season_games, [15])[15], league_stats)
        accuracy = result.accuracy()
        scored = [s.score for s in result.scores if s.scored]
        # The opening game is between two unseen rosters.
        assert accuracy.excluded == {"tied_prediction": 1}
        assert accuracy.games_scored == len(scored) == 5
        assert abs(accuracy.mean_score - sum(scored) / len(scored)) < 1e-12
