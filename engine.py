# FILE: engine.py | version: 2026-10-19.v1
# (multi-variant core: oriented tiles, linear/cross board kinds, round-robin turn machine;
#  legality/scoring delegated to the active GameMode)

from __future__ import annotations

import logging
import os
import random
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple, Literal

logger = logging.getLogger(__name__)

BoardKind = Literal["linear", "cross"]
Phase = Literal["awaiting_move", "move_applied", "round_over", "game_over"]
EventType = Literal["round_start", "play", "draw", "pass", "round_end", "game_end"]

CENTER = "center"
LINEAR_ENDS: List[str] = ["left", "right"]
DIRECTIONS: List[str] = ["north", "south", "east", "west"]

MAX_REDEALS = int(os.environ.get("DOMINO_MAX_REDEALS", "50"))


# =============================================================================
# Errors
# =============================================================================

class DominoError(ValueError):
    """Recoverable rule/config error. Message names the failed precondition only."""


class InvalidMove(DominoError):
    def __init__(self, reason: str, message: str) -> None:
        super().__init__(message)
        self.reason = reason


class IllegalModeConfiguration(DominoError):
    pass


class StructuralInvariantViolation(RuntimeError):
    """Board/mode disagreement. Always a defect; never recovered."""


def now_ts() -> str:
    return datetime.now().isoformat(timespec="seconds")


def round_to_nearest_5(x: int) -> int:
    # ints never sit exactly between two multiples of 5, so round() is unambiguous
    return int(round(float(int(x)) / 5.0) * 5)


def round_down_to_5(x: int) -> int:
    return (int(x) // 5) * 5


# =============================================================================
# Tile
# =============================================================================

@dataclass(frozen=True, eq=False)
class Tile:
    """
    A domino. Equality/hash ignore orientation (3|5 == 5|3) so hand lookups work
    on whatever copy the board produced; `left`/`right` keep the placed orientation.
    """

    left: int
    right: int

    def __post_init__(self) -> None:
        if int(self.left) < 0 or int(self.right) < 0:
            raise ValueError(f"Tile out of range: {self.left}-{self.right}")

    def key(self) -> Tuple[int, int]:
        a, b = int(self.left), int(self.right)
        return (a, b) if a >= b else (b, a)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Tile):
            return NotImplemented
        return self.key() == other.key()

    def __hash__(self) -> int:
        return hash(self.key())

    def __str__(self) -> str:
        return f"[{self.left}|{self.right}]"

    def __repr__(self) -> str:
        return f"Tile({self.left}, {self.right})"

    def has_value(self, v: int) -> bool:
        return self.left == v or self.right == v

    def is_double(self) -> bool:
        return self.left == self.right

    def value(self) -> int:
        return int(self.left + self.right)

    def flip(self) -> "Tile":
        return Tile(self.right, self.left)

    def other_value(self, v: int) -> int:
        if self.left == v:
            return int(self.right)
        if self.right == v:
            return int(self.left)
        raise ValueError(f"{self} does not contain {v}")

    def fits_pips(self, max_pips: int) -> bool:
        return self.key()[0] <= int(max_pips)


def parse_tile(s: Any) -> Tile:
    if isinstance(s, Tile):
        return s
    if isinstance(s, (list, tuple)) and len(s) == 2:
        return Tile(int(s[0]), int(s[1]))
    if isinstance(s, dict) and "left" in s and "right" in s:
        return Tile(int(s["left"]), int(s["right"]))
    s = str(s or "").strip().replace("[", "").replace("]", "").replace(" ", "")
    s = s.replace("|", "-").replace(",", "-")
    if "-" in s:
        a, b = s.split("-", 1)
        return Tile(int(a), int(b))
    if len(s) == 2 and s.isdigit():
        return Tile(int(s[0]), int(s[1]))
    raise ValueError(f"Cannot parse tile: {s}")


def tile_str(t: Tile) -> str:
    return f"{t.left}-{t.right}"


def set_size(max_pips: int) -> int:
    n = int(max_pips)
    return (n + 1) * (n + 2) // 2


def full_set(max_pips: int) -> List[Tile]:
    out: List[Tile] = []
    for hi in range(int(max_pips) + 1):
        for lo in range(hi + 1):
            out.append(Tile(hi, lo))
    return out


def highest_double(tiles: List[Tile]) -> Optional[Tile]:
    doubles = [t for t in tiles if t.is_double()]
    if not doubles:
        return None
    return max(doubles, key=lambda t: t.left)


# =============================================================================
# Board
# =============================================================================

@dataclass
class Board:
    """
    Append-only layout for one round.

    linear: `tiles` is the oriented chain, left to right. Open ends are
            tiles[0].left and tiles[-1].right.
    cross:  `center_tile` is a double; `cross_ends` maps each direction to the
            pip currently exposed there, `arms` keeps the tiles per direction.
    """

    kind: BoardKind = "linear"
    tiles: List[Tile] = field(default_factory=list)

    center_tile: Optional[Tile] = None
    cross_ends: Dict[str, int] = field(default_factory=dict)
    arms: Dict[str, List[Tile]] = field(default_factory=lambda: {d: [] for d in DIRECTIONS})

    played_order: List[Tile] = field(default_factory=list)

    def is_empty(self) -> bool:
        return len(self.played_order) == 0

    def is_played(self, t: Tile) -> bool:
        return t in self.played_order

    # -------------------------
    # Ends
    # -------------------------
    def get_end_values(self) -> Tuple[int, ...]:
        if self.is_empty():
            raise StructuralInvariantViolation("Board has no open ends yet")
        if self.kind == "cross":
            return tuple(int(self.cross_ends[d]) for d in self.open_directions())
        return (int(self.tiles[0].left), int(self.tiles[-1].right))

    def get_ends(self) -> List[Tuple[str, int, bool]]:
        """(position, exposed value, end tile is a double)"""
        if self.is_empty():
            return []
        if self.kind == "cross":
            out: List[Tuple[str, int, bool]] = []
            for d in self.open_directions():
                arm = self.arms.get(d, [])
                is_dbl = arm[-1].is_double() if arm else False
                out.append((d, int(self.cross_ends[d]), is_dbl))
            return out
        first, last = self.tiles[0], self.tiles[-1]
        return [
            ("left", int(first.left), first.is_double()),
            ("right", int(last.right), last.is_double()),
        ]

    def open_directions(self) -> List[str]:
        return [d for d in DIRECTIONS if d in self.cross_ends]

    def open_positions(self) -> List[str]:
        if self.is_empty():
            return [CENTER]
        if self.kind == "cross":
            return self.open_directions()
        return list(LINEAR_ENDS)

    def open_end_values(self) -> List[int]:
        if self.is_empty():
            return []
        return [v for (_p, v, _d) in self.get_ends()]

    def ends_sum(self) -> int:
        if self.is_empty():
            return 0
        if self.kind == "cross":
            return int(sum(int(self.cross_ends[d]) for d in self.open_directions()))
        total = 0
        for _pos, value, is_dbl in self.get_ends():
            total += (value * 2) if is_dbl else value
        return int(total)

    # -------------------------
    # Placement
    # -------------------------
    def place_tile(self, t: Tile, position: str) -> Tile:
        """Attach `t` at `position`; returns the oriented copy that was placed."""
        if self.is_played(t):
            raise StructuralInvariantViolation(f"Tile already on board: {t}")

        if self.kind == "cross":
            if self.is_empty():
                return self.place_cross_center(t)
            return self.place_tile_on_cross(t, position)

        if self.is_empty():
            self.tiles.append(t)
            self.played_order.append(t)
            return t

        if position == "left":
            end = int(self.tiles[0].left)
            if not t.has_value(end):
                raise StructuralInvariantViolation(f"{t} has no pip matching left end {end}")
            placed = t if t.right == end else t.flip()
            self.tiles.insert(0, placed)
        elif position == "right":
            end = int(self.tiles[-1].right)
            if not t.has_value(end):
                raise StructuralInvariantViolation(f"{t} has no pip matching right end {end}")
            placed = t if t.left == end else t.flip()
            self.tiles.append(placed)
        else:
            raise StructuralInvariantViolation(f"No open end tracked at {position!r}")

        self.played_order.append(placed)
        return placed

    def place_cross_center(self, t: Tile) -> Tile:
        if not t.is_double():
            raise StructuralInvariantViolation("Center tile must be a double")
        if self.center_tile is not None:
            raise StructuralInvariantViolation("Cross center already placed")
        self.kind = "cross"
        self.center_tile = t
        self.cross_ends = {d: int(t.left) for d in DIRECTIONS}
        self.arms = {d: [] for d in DIRECTIONS}
        self.played_order.append(t)
        return t

    def can_place_on_cross_end(self, t: Tile, direction: str) -> bool:
        if self.center_tile is None or direction not in self.cross_ends:
            return False
        return t.has_value(int(self.cross_ends[direction]))

    def place_tile_on_cross(self, t: Tile, direction: str) -> Tile:
        if not self.can_place_on_cross_end(t, direction):
            raise StructuralInvariantViolation(f"Cannot attach {t} to cross end {direction!r}")
        end = int(self.cross_ends[direction])
        placed = t if t.left == end else t.flip()
        self.cross_ends[direction] = int(placed.right)
        self.arms[direction].append(placed)
        self.played_order.append(placed)
        return placed

    def reset(self) -> None:
        self.tiles = []
        self.center_tile = None
        self.cross_ends = {}
        self.arms = {d: [] for d in DIRECTIONS}
        self.played_order = []

    # -------------------------
    # Snapshot / clone
    # -------------------------
    def snapshot(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "tiles": [tile_str(t) for t in self.tiles],
            "center_tile": tile_str(self.center_tile) if self.center_tile else None,
            "cross_ends": {d: int(v) for d, v in self.cross_ends.items()},
            "arms": {d: [tile_str(t) for t in self.arms.get(d, [])] for d in DIRECTIONS},
            "played_tiles": [tile_str(t) for t in self.played_order],
            "ends_sum": self.ends_sum(),
            "is_empty": self.is_empty(),
        }

    @classmethod
    def from_snapshot(cls, d: Dict[str, Any]) -> "Board":
        b = cls(kind=d.get("kind", "linear"))
        b.tiles = [parse_tile(s) for s in (d.get("tiles", []) or [])]
        ct = d.get("center_tile")
        b.center_tile = parse_tile(ct) if ct else None
        b.cross_ends = {}
        for k, v in (d.get("cross_ends", {}) or {}).items():
            if k in DIRECTIONS:
                b.cross_ends[k] = int(v)
        arms_raw = d.get("arms", {}) or {}
        b.arms = {k: [parse_tile(s) for s in (arms_raw.get(k, []) or [])] for k in DIRECTIONS}
        b.played_order = [parse_tile(s) for s in (d.get("played_tiles", []) or [])]
        return b

    def clone(self) -> "Board":
        b = Board(kind=self.kind)
        b.tiles = list(self.tiles)
        b.center_tile = self.center_tile
        b.cross_ends = dict(self.cross_ends)
        b.arms = {k: list(v) for k, v in self.arms.items()}
        b.played_order = list(self.played_order)
        return b


# =============================================================================
# Player
# =============================================================================

@dataclass
class Player:
    player_id: str
    name: str = ""
    hand: List[Tile] = field(default_factory=list)
    score: int = 0
    is_automated: bool = False
    rounds_won: int = 0

    def has_tile(self, t: Tile) -> bool:
        return t in self.hand

    def add_tile(self, t: Tile) -> None:
        if t in self.hand:
            raise ValueError(f"Duplicate tile in hand: {t}")
        self.hand.append(t)

    def remove_tile(self, t: Tile) -> bool:
        for i, h in enumerate(self.hand):
            if h == t:
                del self.hand[i]
                return True
        return False

    def total_pips(self) -> int:
        return int(sum(t.value() for t in self.hand))

    def has_empty_hand(self) -> bool:
        return len(self.hand) == 0

    def sort_hand(self) -> None:
        self.hand.sort(key=lambda t: (0 if t.is_double() else 1, -t.value(), -t.key()[0]))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "player_id": self.player_id,
            "name": self.name,
            "hand": [tile_str(t) for t in self.hand],
            "score": int(self.score),
            "is_automated": bool(self.is_automated),
            "rounds_won": int(self.rounds_won),
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Player":
        return cls(
            player_id=str(d["player_id"]),
            name=str(d.get("name", "")),
            hand=[parse_tile(s) for s in (d.get("hand", []) or [])],
            score=int(d.get("score", 0)),
            is_automated=bool(d.get("is_automated", False)),
            rounds_won=int(d.get("rounds_won", 0)),
        )


def make_players(names: List[str], automated: Optional[List[bool]] = None) -> List[Player]:
    flags = list(automated) if automated is not None else [False] + [True] * (len(names) - 1)
    return [
        Player(player_id=f"p{i}", name=str(n), is_automated=bool(flags[i]) if i < len(flags) else True)
        for i, n in enumerate(names)
    ]


# =============================================================================
# Events / state
# =============================================================================

@dataclass
class GameEvent:
    type: EventType
    ts: str = field(default_factory=now_ts)
    ply: int = 0
    round_index: int = 1
    player_index: Optional[int] = None
    tile: Optional[str] = None
    position: Optional[str] = None
    score_gained: int = 0
    open_ends: List[int] = field(default_factory=list)
    end_reason: Optional[str] = None
    award: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "ts": self.ts,
            "ply": self.ply,
            "round_index": self.round_index,
            "player_index": self.player_index,
            "tile": self.tile,
            "position": self.position,
            "score_gained": int(self.score_gained),
            "open_ends": list(self.open_ends),
            "end_reason": self.end_reason,
            "award": int(self.award),
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "GameEvent":
        pi = d.get("player_index")
        return cls(
            type=d["type"],
            ts=d.get("ts", now_ts()),
            ply=int(d.get("ply", 0)),
            round_index=int(d.get("round_index", 1)),
            player_index=int(pi) if pi is not None else None,
            tile=d.get("tile"),
            position=d.get("position"),
            score_gained=int(d.get("score_gained", 0)),
            open_ends=list(d.get("open_ends", [])),
            end_reason=d.get("end_reason"),
            award=int(d.get("award", 0)),
        )


@dataclass
class GameState:
    mode_id: str = "block"
    players: List[Player] = field(default_factory=list)
    board: Board = field(default_factory=Board)
    boneyard: List[Tile] = field(default_factory=list)

    current_index: int = 0
    phase: Phase = "awaiting_move"

    round_index: int = 1
    match_target: int = 100
    max_rounds: Optional[int] = None

    round_winner: Optional[int] = None
    round_end_reason: Optional[str] = None
    last_round_award: int = 0
    team_streaks: List[int] = field(default_factory=list)
    game_winner: Optional[int] = None

    events: List[GameEvent] = field(default_factory=list)

    def ply(self) -> int:
        return len(self.events)

    def current_player(self) -> Player:
        return self.players[self.current_index]

    def index_of(self, player: Player) -> int:
        for i, p in enumerate(self.players):
            if p.player_id == player.player_id:
                return i
        return self.current_index

    def round_active(self) -> bool:
        return self.phase == "awaiting_move"

    def all_tiles_in_play(self) -> List[Tile]:
        out: List[Tile] = []
        for p in self.players:
            out.extend(p.hand)
        out.extend(self.board.played_order)
        out.extend(self.boneyard)
        return out

    def scores(self) -> List[int]:
        return [int(p.score) for p in self.players]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "meta": {
                "mode_id": self.mode_id,
                "current_index": int(self.current_index),
                "phase": self.phase,
                "round_index": int(self.round_index),
                "match_target": int(self.match_target),
                "max_rounds": self.max_rounds,
                "round_winner": self.round_winner,
                "round_end_reason": self.round_end_reason,
                "last_round_award": int(self.last_round_award),
                "team_streaks": list(self.team_streaks),
                "game_winner": self.game_winner,
            },
            "players": [p.to_dict() for p in self.players],
            "board": self.board.snapshot(),
            "boneyard": [tile_str(t) for t in self.boneyard],
            "events": [e.to_dict() for e in self.events],
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "GameState":
        st = cls()
        meta = d.get("meta", {}) or {}
        st.mode_id = str(meta.get("mode_id", "block"))
        st.current_index = int(meta.get("current_index", 0))
        st.phase = meta.get("phase", "awaiting_move")
        if st.phase not in ("awaiting_move", "move_applied", "round_over", "game_over"):
            st.phase = "awaiting_move"
        st.round_index = int(meta.get("round_index", 1))
        st.match_target = int(meta.get("match_target", 100))
        mr = meta.get("max_rounds")
        st.max_rounds = int(mr) if mr is not None else None
        rw = meta.get("round_winner")
        st.round_winner = int(rw) if rw is not None else None
        st.round_end_reason = meta.get("round_end_reason")
        st.last_round_award = int(meta.get("last_round_award", 0))
        st.team_streaks = [int(x) for x in (meta.get("team_streaks", []) or [])]
        gw = meta.get("game_winner")
        st.game_winner = int(gw) if gw is not None else None

        st.players = [Player.from_dict(x) for x in (d.get("players", []) or [])]
        st.board = Board.from_snapshot(d.get("board", {}) or {})
        st.boneyard = [parse_tile(s) for s in (d.get("boneyard", []) or [])]
        st.events = [GameEvent.from_dict(x) for x in (d.get("events", []) or [])]
        return st


@dataclass
class MoveResult:
    event: GameEvent
    placed: Tile
    score: int
    phase: Phase

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": self.event.to_dict(),
            "placed": tile_str(self.placed),
            "score": int(self.score),
            "phase": self.phase,
        }


# =============================================================================
# Engine
# =============================================================================

class GameEngine:
    """
    Single owner of GameState. Turn order is round-robin by player index;
    a player with nothing to play is passed through by advance_if_no_legal_moves().

    The mode object is duck-typed (see modes.GameMode); nothing here knows
    variant rules.
    """

    def __init__(self, seed: Optional[int] = None, rng: Optional[random.Random] = None) -> None:
        self.rng = rng if rng is not None else random.Random(seed)
        self.mode: Any = None
        self.state: Optional[GameState] = None

    def reseed(self, seed: Optional[int]) -> None:
        self.rng.seed(seed)

    @classmethod
    def resume(cls, state: GameState, mode: Any, seed: Optional[int] = None) -> "GameEngine":
        if state.mode_id != mode.mode_id:
            raise IllegalModeConfiguration(f"State was saved for mode {state.mode_id!r}, not {mode.mode_id!r}")
        eng = cls(seed=seed)
        eng.mode = mode
        eng.state = state
        return eng

    # ---- helpers ----

    def _require_state(self) -> GameState:
        if self.state is None or self.mode is None:
            raise DominoError("No round has been started")
        return self.state

    def _event(self, st: GameState, type_: EventType, **kw: Any) -> GameEvent:
        ev = GameEvent(
            type=type_,
            ply=st.ply(),
            round_index=st.round_index,
            open_ends=sorted(st.board.open_end_values()),
            **kw,
        )
        st.events.append(ev)
        return ev

    def _check_configuration(self, mode: Any, players: List[Player]) -> None:
        n = len(players)
        if mode.player_count is not None:
            if n != int(mode.player_count):
                raise IllegalModeConfiguration(f"{mode.name} requires exactly {mode.player_count} players")
        elif n < int(mode.min_players) or n > int(mode.max_players):
            raise IllegalModeConfiguration(
                f"{mode.name} supports {mode.min_players}-{mode.max_players} players"
            )
        if int(mode.tiles_per_player) * n > set_size(mode.max_pips):
            raise IllegalModeConfiguration(
                f"Cannot deal {mode.tiles_per_player} tiles to {n} players from a double-{mode.max_pips} set"
            )
        ids = [p.player_id for p in players]
        if len(set(ids)) != len(ids):
            raise IllegalModeConfiguration("Player ids must be unique")

    def _deal(self, mode: Any, n_players: int) -> Tuple[List[List[Tile]], List[Tile]]:
        deck = full_set(mode.max_pips)
        self.rng.shuffle(deck)
        hands: List[List[Tile]] = [[] for _ in range(n_players)]
        for _ in range(int(mode.tiles_per_player)):
            for i in range(n_players):
                hands[i].append(deck.pop())
        return hands, deck

    # ---- lifecycle ----

    def start_round(
        self,
        game_mode: Any,
        players: List[Player],
        match_target: Optional[int] = None,
        max_rounds: Optional[int] = None,
    ) -> GameState:
        """
        Validate the mode/player configuration, deal and open round 1 of a game.
        Nothing is mutated (players included) if the configuration is rejected.
        """
        return self._open_round(game_mode, players, None, match_target, max_rounds)

    def _open_round(
        self,
        game_mode: Any,
        players: List[Player],
        prev: Optional[GameState],
        match_target: Optional[int] = None,
        max_rounds: Optional[int] = None,
    ) -> GameState:
        self._check_configuration(game_mode, players)

        round_index = (prev.round_index + 1) if prev is not None else 1

        board = Board(kind=game_mode.board_kind)
        for attempt in range(MAX_REDEALS + 1):
            hands, boneyard = self._deal(game_mode, len(players))
            probe = [Player(player_id=p.player_id, hand=h) for p, h in zip(players, hands)]
            probe_state = GameState(mode_id=game_mode.mode_id, players=probe, board=board, boneyard=boneyard)
            if any(game_mode.has_legal_move(p, board, probe_state) for p in probe):
                break
            logger.warning("no legal opening for %s (deal %d); redealing", game_mode.mode_id, attempt + 1)
        else:
            raise IllegalModeConfiguration(f"{game_mode.name}: no playable opening after {MAX_REDEALS} redeals")

        for p, h in zip(players, hands):
            p.hand = list(h)
            p.sort_hand()

        st = GameState(
            mode_id=game_mode.mode_id,
            players=list(players),
            board=board,
            boneyard=boneyard,
            round_index=round_index,
            match_target=int(match_target) if match_target is not None else (
                prev.match_target if prev is not None else int(game_mode.match_target)
            ),
            max_rounds=max_rounds if max_rounds is not None else (prev.max_rounds if prev is not None else None),
            team_streaks=list(prev.team_streaks) if prev is not None else [0] * len(game_mode.teams),
            events=list(prev.events) if prev is not None else [],
        )
        st.current_index = int(game_mode.opening_player(st.players, round_index))
        st.phase = "awaiting_move"

        self.mode = game_mode
        self.state = st
        self._event(st, "round_start", player_index=st.current_index)
        logger.debug(
            "round %d started: mode=%s players=%d opener=%d",
            round_index, game_mode.mode_id, len(players), st.current_index,
        )
        return st

    def next_round(self) -> GameState:
        st = self._require_state()
        if st.phase != "round_over":
            raise DominoError("Next round is only available once the round is over")
        return self._open_round(self.mode, st.players, st)

    # ---- queries ----

    def current_player(self) -> Player:
        return self._require_state().current_player()

    def valid_moves(self, player_index: Optional[int] = None) -> List[Any]:
        st = self._require_state()
        if not st.round_active():
            return []
        idx = st.current_index if player_index is None else int(player_index)
        return self.mode.get_valid_moves(st.players[idx], st.board, st)

    def can_draw(self, player_index: int) -> bool:
        st = self._require_state()
        return bool(self.mode.can_draw) and len(st.boneyard) > 0 and st.round_active() \
            and int(player_index) == st.current_index

    def is_blocked(self) -> bool:
        st = self._require_state()
        if self.mode.can_draw and st.boneyard:
            return False
        return not any(self.mode.has_legal_move(p, st.board, st) for p in st.players)

    # ---- actions ----

    def submit_move(self, player_index: int, tile: Tile, position: str) -> MoveResult:
        st = self._require_state()
        idx = int(player_index)

        if not st.round_active():
            raise InvalidMove("round_not_active", "The round is not accepting moves")
        if idx != st.current_index:
            raise InvalidMove("not_your_turn", "It is not this player's turn")
        player = st.players[idx]
        if not player.has_tile(tile):
            raise InvalidMove("tile_not_in_hand", "That tile is not in the player's hand")
        if not self.mode.validate_move(tile, position, st.board, st):
            raise InvalidMove("illegal_move", "That tile cannot be played there")

        player.remove_tile(tile)
        placed = st.board.place_tile(tile, position)
        st.phase = "move_applied"
        self.mode.on_move_executed(placed, position, st.board, st)

        pts = int(self.mode.calculate_score(placed, st.board, st))
        player.score += pts

        ev = self._event(
            st, "play",
            player_index=idx,
            tile=tile_str(placed),
            position=position,
            score_gained=pts,
        )

        if player.has_empty_hand():
            self._end_round("domino")
        elif self.is_blocked():
            self._end_round("blocked")
        else:
            st.current_index = (idx + 1) % len(st.players)
            st.phase = "awaiting_move"

        return MoveResult(event=ev, placed=placed, score=pts, phase=st.phase)

    def draw_tile(self, player_index: int) -> Tile:
        st = self._require_state()
        idx = int(player_index)

        if not st.round_active():
            raise InvalidMove("round_not_active", "The round is not accepting moves")
        if not self.mode.can_draw:
            raise InvalidMove("drawing_not_allowed", "This variant does not allow drawing")
        if idx != st.current_index:
            raise InvalidMove("not_your_turn", "It is not this player's turn")
        player = st.players[idx]
        if self.mode.has_legal_move(player, st.board, st):
            raise InvalidMove("has_legal_move", "Drawing is only allowed without a legal move")
        if not st.boneyard:
            raise InvalidMove("boneyard_empty", "The boneyard is empty")

        t = st.boneyard.pop()
        player.add_tile(t)
        self._event(st, "draw", player_index=idx)

        if self.is_blocked():
            self._end_round("blocked")
        return t

    def advance_if_no_legal_moves(self) -> bool:
        """Pass the acting player when they can neither play nor draw. True if a pass happened."""
        st = self._require_state()
        if not st.round_active():
            return False
        player = st.current_player()
        if self.mode.has_legal_move(player, st.board, st):
            return False
        if self.mode.can_draw and st.boneyard:
            return False

        idx = st.current_index
        self._event(st, "pass", player_index=idx)
        if self.is_blocked():
            self._end_round("blocked")
        else:
            st.current_index = (idx + 1) % len(st.players)
        return True

    # ---- round / game end ----

    def _end_round(self, reason: str) -> None:
        st = self._require_state()
        mode = self.mode

        winner = mode.round_winner(st)
        st.round_winner = winner
        award = int(mode.calculate_round_score(st))
        for i in mode.beneficiaries(winner, len(st.players)):
            st.players[i].score += award
        st.players[winner].rounds_won += 1
        mode.update_streaks(st, winner)

        st.round_end_reason = reason
        st.last_round_award = award
        st.phase = "round_over"
        self._event(st, "round_end", player_index=winner, end_reason=reason, award=award)
        logger.info("round %d over: reason=%s winner=%s award=%d", st.round_index, reason, winner, award)

        if mode.is_game_over(st):
            st.phase = "game_over"
            st.game_winner = max(range(len(st.players)), key=lambda i: (st.players[i].score, -i))
            self._event(st, "game_end", player_index=st.game_winner)
            logger.info("game over after %d rounds: winner=%d scores=%s", st.round_index, st.game_winner, st.scores())
