import unittest
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from engine import (
    Board, GameEngine, GameState, Player, Tile,
    IllegalModeConfiguration, make_players, set_size, full_set,
)
from modes import ALL_POSITIONS, MODES, available_modes, get_mode, mode_info
import ai


def seats(mode):
    return mode.player_count or 2


def state_with_hands(mode_id, hands, board=None, boneyard=None, winner=None):
    mode = get_mode(mode_id)
    players = [Player(player_id=f"p{i}", hand=[Tile(*t) for t in h]) for i, h in enumerate(hands)]
    st = GameState(
        mode_id=mode.mode_id,
        players=players,
        board=board if board is not None else Board(kind=mode.board_kind),
        boneyard=[Tile(*t) for t in (boneyard or [])],
    )
    st.round_winner = winner
    return mode, st


class TestRegistry(unittest.TestCase):
    def test_all_variants_registered(self):
        self.assertEqual(
            sorted(available_modes()),
            sorted(["all_fives", "block", "cuba", "draw", "cross", "cutthroat", "partner", "six_love"]),
        )

    def test_aliases(self):
        self.assertIs(get_mode("muggins"), MODES["all_fives"])
        self.assertIs(get_mode("Six-Love"), MODES["six_love"])
        self.assertIs(get_mode(" BLOCK "), MODES["block"])

    def test_unknown_mode_is_rejected(self):
        with self.assertRaises(IllegalModeConfiguration) as ctx:
            get_mode("chicken_foot")
        self.assertIn("not supported", str(ctx.exception))
        self.assertIn("all_fives", str(ctx.exception))
        with self.assertRaises(IllegalModeConfiguration):
            get_mode("")

    def test_mode_info(self):
        info = mode_info("cuba")
        self.assertEqual(info["max_pips"], 9)
        self.assertEqual(info["set_size"], 55)
        self.assertEqual(info["player_count"], 4)
        self.assertEqual(mode_info("partner")["players"], "4 players (2 teams)")

    def test_deal_fits_set(self):
        for mode in MODES.values():
            n = mode.player_count or mode.max_players
            self.assertLessEqual(mode.tiles_per_player * n, set_size(mode.max_pips), mode.mode_id)


class TestLegality(unittest.TestCase):
    def assert_consistent(self, mode, st):
        for p in st.players:
            listed = {(m.tile.key(), m.position) for m in mode.get_valid_moves(p, st.board, st, score=False)}
            grid = {
                (t.key(), pos)
                for t in p.hand for pos in ALL_POSITIONS
                if mode.validate_move(t, pos, st.board, st)
            }
            self.assertEqual(listed, grid, mode.mode_id)
            self.assertEqual(bool(listed), mode.has_legal_move(p, st.board, st))

    def test_valid_moves_match_validate_through_play(self):
        for mode_id in available_modes():
            mode = get_mode(mode_id)
            eng = GameEngine(seed=2024)
            n = seats(mode)
            st = eng.start_round(mode, make_players([f"p{i}" for i in range(n)], [True] * n))
            for _ in range(60):
                self.assert_consistent(mode, st)
                if not st.round_active():
                    break
                ai.play_automated_turn(eng)

    def test_validate_is_idempotent(self):
        mode, st = state_with_hands("block", [[(5, 4), (4, 1)], [(6, 6)]])
        st.board.place_tile(Tile(5, 4), "center")
        before = st.board.snapshot()
        t = Tile(4, 1)
        first = mode.validate_move(t, "right", st.board, st)
        second = mode.validate_move(t, "right", st.board, st)
        self.assertTrue(first)
        self.assertEqual(first, second)
        self.assertEqual(st.board.snapshot(), before)

    def test_empty_board_needs_center(self):
        mode, st = state_with_hands("block", [[(3, 2)], [(1, 1)]])
        self.assertTrue(mode.validate_move(Tile(3, 2), "center", st.board, st))
        self.assertFalse(mode.validate_move(Tile(3, 2), "left", st.board, st))

    def test_played_or_oversized_tiles_rejected(self):
        mode, st = state_with_hands("block", [[(4, 5)], [(1, 1)]])
        st.board.place_tile(Tile(5, 4), "center")
        self.assertFalse(mode.validate_move(Tile(4, 5), "left", st.board, st))
        self.assertFalse(mode.validate_move(Tile(7, 5), "left", st.board, st))

    def test_cross_opens_with_double(self):
        mode, st = state_with_hands("cross", [[(6, 5), (3, 3)], [(1, 1)]])
        self.assertFalse(mode.validate_move(Tile(6, 5), "center", st.board, st))
        self.assertTrue(mode.validate_move(Tile(3, 3), "center", st.board, st))

    def test_cross_positions_are_directions(self):
        mode, st = state_with_hands("cross", [[(6, 4)], [(1, 1)]])
        st.board.place_tile(Tile(6, 6), "center")
        moves = mode.get_valid_moves(st.players[0], st.board, st)
        self.assertEqual(sorted(m.position for m in moves), sorted(["north", "south", "east", "west"]))
        self.assertFalse(mode.validate_move(Tile(6, 4), "left", st.board, st))

    def test_highest_double_opening(self):
        for mode_id, top in (("cutthroat", 6), ("cuba", 9)):
            mode, st = state_with_hands(mode_id, [[(top, top), (1, 2)], [(top, 1)], [(0, 0)]])
            self.assertEqual(mode.required_opening_tile(), Tile(top, top))
            self.assertTrue(mode.validate_move(Tile(top, top), "center", st.board, st))
            self.assertFalse(mode.validate_move(Tile(1, 2), "center", st.board, st))
            self.assertFalse(mode.validate_move(Tile(top, 1), "center", st.board, st))

    def test_on_move_executed_checks_board(self):
        from engine import StructuralInvariantViolation
        mode, st = state_with_hands("block", [[(5, 4)], [(1, 1)]])
        with self.assertRaises(StructuralInvariantViolation):
            mode.on_move_executed(Tile(5, 4), "center", st.board, st)


class TestScoring(unittest.TestCase):
    def test_fives_scoring(self):
        mode, st = state_with_hands("all_fives", [[], []])
        b = st.board
        b.place_tile(Tile(5, 4), "center")
        self.assertEqual(mode.calculate_score(Tile(5, 4), b, st), 0)
        b.place_tile(Tile(4, 3), "right")
        self.assertEqual(mode.calculate_score(Tile(4, 3), b, st), 0)
        b.place_tile(Tile(3, 5), "right")
        self.assertEqual(mode.calculate_score(Tile(3, 5), b, st), 10)
        b.place_tile(Tile(5, 5), "left")
        self.assertEqual(mode.calculate_score(Tile(5, 5), b, st), 15)

    def test_cross_scoring(self):
        mode, st = state_with_hands("cross", [[], []])
        b = st.board
        b.place_tile(Tile(6, 6), "center")
        b.place_tile(Tile(6, 4), "north")
        self.assertEqual(mode.calculate_score(Tile(6, 4), b, st), 0)
        b.place_tile(Tile(4, 2), "north")
        self.assertEqual(mode.calculate_score(Tile(4, 2), b, st), 20)

    def test_non_scoring_variants(self):
        for mode_id in ("block", "cuba", "cutthroat", "partner", "six_love"):
            mode, st = state_with_hands(mode_id, [[], [], [], []])
            st.board.place_tile(Tile(5, 5), "center")
            self.assertEqual(mode.calculate_score(Tile(5, 5), st.board, st), 0, mode_id)


class TestSettlement(unittest.TestCase):
    def test_nearest_five(self):
        mode, st = state_with_hands("all_fives", [[], [(6, 6), (5, 0)]], winner=0)
        self.assertEqual(mode.calculate_round_score(st), 15)
        mode, st = state_with_hands("all_fives", [[], [(6, 6), (5, 1)]], winner=0)
        self.assertEqual(mode.calculate_round_score(st), 20)

    def test_floor_five(self):
        mode, st = state_with_hands("draw", [[], [(6, 6), (6, 1)]], winner=0)
        self.assertEqual(mode.calculate_round_score(st), 15)
        mode, st = state_with_hands("cross", [[], [(2, 2)]], winner=0)
        self.assertEqual(mode.calculate_round_score(st), 0)

    def test_raw(self):
        mode, st = state_with_hands("block", [[], [(6, 6), (6, 1)], [(0, 1)]], winner=0)
        self.assertEqual(mode.calculate_round_score(st), 20)

    def test_blocked_winner_excluded(self):
        mode, st = state_with_hands("block", [[(1, 0)], [(6, 6)], [(3, 2)]], winner=0)
        self.assertEqual(mode.calculate_round_score(st), 17)

    def test_all_remaining_includes_blocked_winner(self):
        mode, st = state_with_hands("cutthroat", [[], [(2, 3)], [(4, 3)]], winner=0)
        self.assertEqual(mode.calculate_round_score(st), 12)
        mode, st = state_with_hands("cutthroat", [[(1, 2)], [(2, 3)], [(4, 3)]], winner=0)
        self.assertEqual(mode.calculate_round_score(st), 15)

    def test_team_settlement_excludes_partner(self):
        mode, st = state_with_hands("partner", [[], [(6, 6)], [(5, 5)], [(1, 2)]], winner=0)
        self.assertEqual(mode.calculate_round_score(st), 15)
        self.assertEqual(mode.beneficiaries(0, 4), [0, 2])
        self.assertEqual(mode.beneficiaries(3, 4), [1, 3])

    def test_round_winner(self):
        mode, st = state_with_hands("block", [[(1, 1)], [], [(0, 0)]])
        self.assertEqual(mode.round_winner(st), 1)
        mode, st = state_with_hands("block", [[(1, 1)], [(3, 3)], [(0, 1)]])
        self.assertEqual(mode.round_winner(st), 2)
        mode, st = state_with_hands("block", [[(1, 1)], [(0, 2)]])
        self.assertEqual(mode.round_winner(st), 0)
        mode, st = state_with_hands("block", [[(3, 3)], [(0, 2)], [(1, 1)]])
        self.assertEqual(mode.round_winner(st), 1)

    def test_team_round_winner(self):
        # team (1,3) holds 3 pips, team (0,2) holds 4
        mode, st = state_with_hands("partner", [[(0, 0)], [(1, 1)], [(2, 2)], [(0, 1)]])
        self.assertEqual(mode.round_winner(st), 3)
        # both teams hold 3 pips; the team with seat 0 takes it
        mode, st = state_with_hands("partner", [[(0, 1)], [(0, 0)], [(1, 1)], [(0, 3)]])
        self.assertEqual(mode.round_winner(st), 0)

    def test_streaks_and_game_end(self):
        mode, st = state_with_hands("six_love", [[], [], [], []])
        st.match_target = 1000
        st.team_streaks = [0, 0]
        for _ in range(5):
            mode.update_streaks(st, 2)
        self.assertEqual(st.team_streaks, [5, 0])
        self.assertFalse(mode.is_game_over(st))
        mode.update_streaks(st, 0)
        self.assertEqual(st.team_streaks, [6, 0])
        self.assertTrue(mode.is_game_over(st))
        mode.update_streaks(st, 1)
        self.assertEqual(st.team_streaks, [0, 1])

    def test_game_over_by_score_or_rounds(self):
        mode, st = state_with_hands("block", [[], []])
        st.match_target = 100
        self.assertFalse(mode.is_game_over(st))
        st.players[1].score = 100
        self.assertTrue(mode.is_game_over(st))
        st.players[1].score = 0
        st.max_rounds = 2
        st.round_index = 2
        self.assertTrue(mode.is_game_over(st))


class TestOpener(unittest.TestCase):
    def test_required_tile_holder_opens(self):
        mode = get_mode("cutthroat")
        players = [
            Player("a", hand=[Tile(5, 5)]),
            Player("b", hand=[Tile(6, 6)]),
            Player("c", hand=[Tile(1, 1)]),
        ]
        self.assertEqual(mode.opening_player(players, 1), 1)

    def test_highest_double_then_rotation(self):
        mode = get_mode("block")
        players = [Player("a", hand=[Tile(2, 2)]), Player("b", hand=[Tile(4, 4), Tile(6, 5)])]
        self.assertEqual(mode.opening_player(players, 1), 1)
        players = [Player("a", hand=[Tile(2, 1)]), Player("b", hand=[Tile(6, 5)])]
        self.assertEqual(mode.opening_player(players, 1), 0)
        self.assertEqual(mode.opening_player(players, 2), 1)


class TestHeuristic(unittest.TestCase):
    def test_scoring_move_outranks_heavier_tile(self):
        mode, st = state_with_hands("all_fives", [[(4, 0), (4, 2), (6, 6)], [(1, 1)]], boneyard=[(3, 3)])
        st.board.place_tile(Tile(5, 4), "center")
        moves = mode.get_valid_moves(st.players[0], st.board, st)
        by_tile = {m.tile.key(): m.heuristic_score for m in moves}
        self.assertGreater(by_tile[(4, 0)], by_tile[(4, 2)])

    def test_potential_score_does_not_touch_board(self):
        mode, st = state_with_hands("block", [[(4, 1)], [(1, 1)]])
        st.board.place_tile(Tile(5, 4), "center")
        before = st.board.snapshot()
        mode.calculate_potential_score(Tile(4, 1), "right", st.board, st, player_index=0)
        self.assertEqual(st.board.snapshot(), before)

    def test_cross_moves_value_open_directions(self):
        mode, st = state_with_hands("cross", [[(3, 2), (3, 0)], [(0, 0)]])
        st.board.place_tile(Tile(3, 3), "center")
        moves = mode.get_valid_moves(st.players[0], st.board, st)
        self.assertTrue(all(m.heuristic_score > 0 for m in moves))


class TestScoresNeverNegative(unittest.TestCase):
    def test_seeded_games_of_every_variant(self):
        for mode_id in available_modes():
            mode = get_mode(mode_id)
            n = mode.player_count or 3
            for seed in range(6):
                eng = GameEngine(seed=seed)
                st = eng.start_round(mode, make_players([f"p{i}" for i in range(n)], [True] * n), max_rounds=3)
                while True:
                    ai.play_round_automated(eng)
                    st = eng.state
                    for ev in st.events:
                        if ev.type == "play":
                            self.assertGreaterEqual(ev.score_gained, 0, (mode_id, seed))
                    self.assertGreaterEqual(st.last_round_award, 0, (mode_id, seed))
                    self.assertGreaterEqual(mode.calculate_round_score(st), 0, (mode_id, seed))
                    self.assertTrue(all(s >= 0 for s in st.scores()), (mode_id, seed))
                    if st.phase == "game_over":
                        break
                    st = eng.next_round()


class TestDeal(unittest.TestCase):
    def test_deal_sizes_and_conservation(self):
        for mode_id in available_modes():
            mode = get_mode(mode_id)
            n = seats(mode)
            eng = GameEngine(seed=99)
            st = eng.start_round(mode, make_players([f"p{i}" for i in range(n)], [True] * n))
            for p in st.players:
                self.assertEqual(len(p.hand), mode.tiles_per_player, mode_id)
            self.assertEqual(len(st.boneyard), set_size(mode.max_pips) - n * mode.tiles_per_player)
            self.assertEqual(
                sorted(t.key() for t in st.all_tiles_in_play()),
                sorted(t.key() for t in full_set(mode.max_pips)),
            )


if __name__ == '__main__':
    unittest.main()
