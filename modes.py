# FILE: modes.py | version: 2026-10-19.v1
# (variant rules as one tagged record: opening / move scoring / settlement / positional heuristic;
#  no per-variant subclasses, no mode-local mutable state)

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Tuple, Literal

from engine import (
    Board, GameState, Player, Tile,
    CENTER, DIRECTIONS, LINEAR_ENDS,
    BoardKind, IllegalModeConfiguration, StructuralInvariantViolation,
    highest_double, round_down_to_5, round_to_nearest_5, set_size, tile_str,
)

OpeningRule = Literal["any", "double", "highest_double"]
MoveScoring = Literal["none", "fives"]
Settlement = Literal["nearest_five", "floor_five", "raw", "all_remaining", "team"]
Positional = Literal["fives_multiplier", "blocking", "cross_open", "draw_pressure", "team_blocking", "streak"]

ALL_POSITIONS: List[str] = [CENTER] + LINEAR_ENDS + DIRECTIONS

# boneyard size at which draw play turns aggressive
DECK_PRESSURE_THRESHOLD = 5
# team streak at which six-love play gets the pressure bonus
STREAK_PRESSURE_AT = 4


@dataclass(frozen=True)
class HeuristicWeights:
    """Tuning knobs for ranking candidate moves. None of these affect legality or official score."""

    pip_value: float = 1.0
    empty_hand_bonus: float = 100.0
    score_factor: float = 1.0
    double_bonus: float = 10.0
    open_direction_bonus: float = 5.0
    blocking_bonus: float = 15.0
    partner_bonus: float = 25.0
    hand_size_factor: float = 5.0
    deck_pressure_bonus: float = 20.0
    streak_bonus: float = 5.0
    streak_pressure_bonus: float = 20.0

    def scaled(self, positional: float = 1.0, tactical: float = 1.0) -> "HeuristicWeights":
        return replace(
            self,
            score_factor=self.score_factor * tactical,
            double_bonus=self.double_bonus * tactical,
            open_direction_bonus=self.open_direction_bonus * positional,
            blocking_bonus=self.blocking_bonus * positional,
            partner_bonus=self.partner_bonus * positional,
            hand_size_factor=self.hand_size_factor * positional,
            deck_pressure_bonus=self.deck_pressure_bonus * positional,
            streak_bonus=self.streak_bonus * positional,
            streak_pressure_bonus=self.streak_pressure_bonus * positional,
        )

    def to_dict(self) -> Dict[str, float]:
        return dict(self.__dict__)


@dataclass
class ValidMove:
    tile: Tile
    position: str
    heuristic_score: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tile": tile_str(self.tile),
            "position": self.position,
            "heuristic_score": round(float(self.heuristic_score), 3),
        }


@dataclass(frozen=True)
class GameMode:
    mode_id: str
    name: str
    description: str = ""
    board_kind: BoardKind = "linear"
    can_draw: bool = False
    max_pips: int = 6
    tiles_per_player: int = 7
    player_count: Optional[int] = None
    min_players: int = 2
    max_players: int = 4
    match_target: int = 100

    opening: OpeningRule = "any"
    move_scoring: MoveScoring = "none"
    settlement: Settlement = "raw"
    positional: Positional = "blocking"

    teams: Tuple[Tuple[int, ...], ...] = ()
    streak_target: Optional[int] = None
    weights: HeuristicWeights = field(default_factory=HeuristicWeights)

    # -------------------------
    # Metadata
    # -------------------------
    def required_opening_tile(self) -> Optional[Tile]:
        if self.opening == "highest_double":
            return Tile(self.max_pips, self.max_pips)
        return None

    def team_of(self, player_index: int) -> Optional[int]:
        for ti, members in enumerate(self.teams):
            if int(player_index) in members:
                return ti
        return None

    def teammates(self, player_index: int) -> List[int]:
        ti = self.team_of(player_index)
        if ti is None:
            return [int(player_index)]
        return list(self.teams[ti])

    def info(self) -> Dict[str, Any]:
        if self.player_count is not None:
            pc = f"{self.player_count} players"
        else:
            pc = f"{self.min_players}-{self.max_players} players"
        if self.teams:
            pc += f" ({len(self.teams)} teams)"
        return {
            "mode_id": self.mode_id,
            "name": self.name,
            "description": self.description,
            "board_kind": self.board_kind,
            "can_draw": self.can_draw,
            "max_pips": self.max_pips,
            "tiles_per_player": self.tiles_per_player,
            "player_count": self.player_count,
            "players": pc,
            "set_size": set_size(self.max_pips),
            "match_target": self.match_target,
        }

    # -------------------------
    # Legality
    # -------------------------
    def _opening_ok(self, tile: Tile) -> bool:
        if self.opening == "double":
            return tile.is_double()
        if self.opening == "highest_double":
            return tile == self.required_opening_tile()
        return True

    def validate_move(self, tile: Tile, position: str, board: Board, state: GameState) -> bool:
        if not tile.fits_pips(self.max_pips) or board.is_played(tile):
            return False
        if board.is_empty():
            return position == CENTER and self._opening_ok(tile)
        if board.kind == "cross":
            return position in DIRECTIONS and board.can_place_on_cross_end(tile, position)
        left, right = board.get_end_values()
        if position == "left":
            return tile.has_value(left)
        if position == "right":
            return tile.has_value(right)
        return False

    def has_legal_move(self, player: Player, board: Board, state: GameState) -> bool:
        positions = board.open_positions()
        for t in player.hand:
            for pos in positions:
                if self.validate_move(t, pos, board, state):
                    return True
        return False

    def get_valid_moves(self, player: Player, board: Board, state: GameState, score: bool = True) -> List[ValidMove]:
        actor = state.index_of(player)
        moves: List[ValidMove] = []
        for t in player.hand:
            for pos in board.open_positions():
                if not self.validate_move(t, pos, board, state):
                    continue
                h = self.calculate_potential_score(t, pos, board, state, player_index=actor) if score else 0.0
                moves.append(ValidMove(tile=t, position=pos, heuristic_score=h))
        return moves

    def on_move_executed(self, tile: Tile, position: str, board: Board, state: GameState) -> None:
        if not board.is_played(tile):
            raise StructuralInvariantViolation(f"{tile} missing from board after placement")
        if self.board_kind == "cross" and board.center_tile is None:
            raise StructuralInvariantViolation("Cross layout has no center after a move")
        if self.board_kind == "cross" and len(board.open_directions()) != len(DIRECTIONS):
            raise StructuralInvariantViolation("Cross layout lost a direction")

    # -------------------------
    # Scoring
    # -------------------------
    def calculate_score(self, tile: Tile, board: Board, state: GameState) -> int:
        if self.move_scoring != "fives":
            return 0
        s = int(board.ends_sum())
        return s if (s > 0 and s % 5 == 0) else 0

    def round_winner(self, state: GameState) -> int:
        """Empty hand wins; a blocked board goes to the lowest pips, ties to the lower seat."""
        players = state.players
        for i, p in enumerate(players):
            if p.has_empty_hand():
                return i

        if self.teams:
            totals = [sum(players[i].total_pips() for i in members) for members in self.teams]
            team = min(range(len(totals)), key=lambda t: (totals[t], min(self.teams[t])))
            return min(self.teams[team], key=lambda i: (players[i].total_pips(), i))

        return min(range(len(players)), key=lambda i: (players[i].total_pips(), i))

    def calculate_round_score(self, state: GameState) -> int:
        players = state.players
        winner = state.round_winner

        if self.settlement == "all_remaining" or winner is None:
            total = sum(p.total_pips() for p in players if not p.has_empty_hand())
        else:
            excluded = set(self.teammates(winner)) if self.settlement == "team" else {int(winner)}
            total = sum(p.total_pips() for i, p in enumerate(players) if i not in excluded)

        if self.settlement == "nearest_five":
            return max(0, round_to_nearest_5(total))
        if self.settlement == "floor_five":
            return max(0, round_down_to_5(total))
        return max(0, int(total))

    def beneficiaries(self, winner: int, n_players: int) -> List[int]:
        if self.teams:
            return [i for i in self.teammates(winner) if i < n_players]
        return [int(winner)]

    def update_streaks(self, state: GameState, winner: int) -> None:
        if not self.teams:
            return
        if len(state.team_streaks) != len(self.teams):
            state.team_streaks = [0] * len(self.teams)
        won = self.team_of(winner)
        for ti in range(len(self.teams)):
            state.team_streaks[ti] = state.team_streaks[ti] + 1 if ti == won else 0

    def is_game_over(self, state: GameState) -> bool:
        if any(p.score >= state.match_target for p in state.players):
            return True
        if state.max_rounds is not None and state.round_index >= int(state.max_rounds):
            return True
        if self.streak_target is not None and any(s >= self.streak_target for s in state.team_streaks):
            return True
        return False

    def opening_player(self, players: List[Player], round_index: int) -> int:
        req = self.required_opening_tile()
        if req is not None:
            for i, p in enumerate(players):
                if p.has_tile(req):
                    return i

        best: Optional[Tuple[int, int]] = None
        for i, p in enumerate(players):
            d = highest_double(p.hand)
            if d is not None and (best is None or d.left > best[1]):
                best = (i, int(d.left))
        if best is not None:
            return best[0]
        return (int(round_index) - 1) % len(players)

    # -------------------------
    # Heuristic
    # -------------------------
    def calculate_potential_score(
        self,
        tile: Tile,
        position: str,
        board: Board,
        state: GameState,
        weights: Optional[HeuristicWeights] = None,
        player_index: Optional[int] = None,
    ) -> float:
        """
        Rank a candidate move for an automated player:
          pip value + empty-hand bonus + immediate score + double bonus + variant positional term.
        """
        w = weights or self.weights
        me = state.current_index if player_index is None else int(player_index)
        player = state.players[me]

        after = board.clone()
        placed = after.place_tile(tile, position)
        immediate = self.calculate_score(placed, after, state)
        remaining = len(player.hand) - (1 if player.has_tile(tile) else 0)

        sc = w.pip_value * tile.value()
        if remaining == 0:
            sc += w.empty_hand_bonus
        if immediate > 0:
            bonus = w.score_factor * immediate
            if self.positional == "fives_multiplier":
                bonus *= immediate / 5.0
            sc += bonus
        if tile.is_double():
            sc += w.double_bonus

        sc += self._positional_bonus(after, state, w, me, remaining)
        return float(sc)

    def _blocked_opponents(self, after: Board, state: GameState, me: int) -> int:
        mates = set(self.teammates(me))
        n = 0
        for i, opp in enumerate(state.players):
            if i in mates:
                continue
            if not self.has_legal_move(opp, after, state):
                n += 1
        return n

    def _positional_bonus(self, after: Board, state: GameState, w: HeuristicWeights, me: int, remaining: int) -> float:
        if self.positional == "cross_open":
            return len(after.open_directions()) * w.open_direction_bonus

        if self.positional == "blocking":
            return self._blocked_opponents(after, state, me) * w.blocking_bonus

        if self.positional == "draw_pressure":
            others = [len(p.hand) for i, p in enumerate(state.players) if i != me]
            avg = (sum(others) / float(len(others))) if others else 0.0
            bonus = (avg - remaining) * w.hand_size_factor
            if len(state.boneyard) <= DECK_PRESSURE_THRESHOLD:
                bonus += w.deck_pressure_bonus
            return bonus

        if self.positional in ("team_blocking", "streak"):
            bonus = self._blocked_opponents(after, state, me) * w.blocking_bonus
            partners = [i for i in self.teammates(me) if i != me]
            if partners and sum(len(state.players[i].hand) for i in partners) <= 2:
                bonus += w.partner_bonus
            if self.positional == "streak":
                ti = self.team_of(me)
                streak = state.team_streaks[ti] if (ti is not None and ti < len(state.team_streaks)) else 0
                bonus += streak * w.streak_bonus
                if streak >= STREAK_PRESSURE_AT:
                    bonus += w.streak_pressure_bonus
            return bonus

        return 0.0


# =============================================================================
# Registry
# =============================================================================

PARTNER_TEAMS: Tuple[Tuple[int, ...], ...] = ((0, 2), (1, 3))

MODES: Dict[str, GameMode] = {
    "all_fives": GameMode(
        mode_id="all_fives",
        name="All Fives (Muggins)",
        description="Score points when the sum of open ends equals a multiple of 5",
        can_draw=True,
        match_target=150,
        move_scoring="fives",
        settlement="nearest_five",
        positional="fives_multiplier",
        weights=HeuristicWeights(double_bonus=5.0),
    ),
    "block": GameMode(
        mode_id="block",
        name="Block Dominoes",
        description="Classic dominoes - no drawing, pass if you cannot play",
        settlement="raw",
        positional="blocking",
        weights=HeuristicWeights(empty_hand_bonus=50.0, double_bonus=10.0, blocking_bonus=15.0),
    ),
    "cuba": GameMode(
        mode_id="cuba",
        name="Cuban Block Dominoes",
        description="Block dominoes with a double-nine set, opened by the 9|9",
        max_pips=9,
        tiles_per_player=10,
        player_count=4,
        opening="highest_double",
        settlement="raw",
        positional="blocking",
        weights=HeuristicWeights(empty_hand_bonus=50.0, double_bonus=10.0, blocking_bonus=15.0),
    ),
    "draw": GameMode(
        mode_id="draw",
        name="Draw Dominoes",
        description="Draw from the boneyard until you can play",
        can_draw=True,
        move_scoring="fives",
        settlement="floor_five",
        positional="draw_pressure",
        weights=HeuristicWeights(double_bonus=10.0),
    ),
    "cross": GameMode(
        mode_id="cross",
        name="Cross Dominoes",
        description="Play extends in four directions from the center double",
        board_kind="cross",
        opening="double",
        move_scoring="fives",
        settlement="floor_five",
        positional="cross_open",
        weights=HeuristicWeights(double_bonus=15.0, open_direction_bonus=5.0),
    ),
    "cutthroat": GameMode(
        mode_id="cutthroat",
        name="Cutthroat Dominoes",
        description="Three-player individual competition - no partnerships",
        tiles_per_player=9,
        player_count=3,
        opening="highest_double",
        settlement="all_remaining",
        positional="blocking",
        weights=HeuristicWeights(double_bonus=15.0, blocking_bonus=20.0),
    ),
    "partner": GameMode(
        mode_id="partner",
        name="Partner Dominoes",
        description="Four players in two teams - partners sit opposite",
        player_count=4,
        match_target=150,
        settlement="team",
        positional="team_blocking",
        teams=PARTNER_TEAMS,
        weights=HeuristicWeights(empty_hand_bonus=75.0, double_bonus=10.0, blocking_bonus=15.0),
    ),
    "six_love": GameMode(
        mode_id="six_love",
        name="Six-Love Dominoes",
        description="Partner rules - six straight round wins end the game",
        player_count=4,
        match_target=150,
        settlement="team",
        positional="streak",
        teams=PARTNER_TEAMS,
        streak_target=6,
        weights=HeuristicWeights(empty_hand_bonus=75.0, double_bonus=10.0, blocking_bonus=15.0),
    ),
}

ALIASES: Dict[str, str] = {
    "allfives": "all_fives", "all-fives": "all_fives", "muggins": "all_fives",
    "classic": "block",
    "cuban": "cuba",
    "draw-dominoes": "draw",
    "cross-dominoes": "cross",
    "three-hand": "cutthroat",
    "four-hand": "partner", "partnership": "partner",
    "sixlove": "six_love", "six-love": "six_love", "6-love": "six_love",
}


def get_mode(mode_id: str) -> GameMode:
    key = str(mode_id or "").strip().lower()
    key = ALIASES.get(key, key)
    mode = MODES.get(key)
    if mode is None:
        hint = " (chicken foot is not supported)" if key in ("chicken_foot", "chicken-foot", "chickenfoot") else ""
        raise IllegalModeConfiguration(f"Unknown game mode: {mode_id}{hint}. Available: {', '.join(MODES)}")
    return mode


def available_modes() -> List[str]:
    return list(MODES.keys())


def mode_info(mode_id: str) -> Dict[str, Any]:
    return get_mode(mode_id).info()
