# FILE: ai.py | version: 2026-10-19.v1
# (automated opponent: mode heuristic + difficulty presets; argmax keeps enumeration order on ties;
#  greedy baseline kept for evaluation)

from __future__ import annotations

import logging
import os
from typing import Any, Dict, List, Optional, Literal

import numpy as np

from engine import DominoError, GameEngine, InvalidMove, StructuralInvariantViolation, Tile, tile_str
from modes import GameMode, HeuristicWeights, ValidMove

logger = logging.getLogger(__name__)

Level = Literal["easy", "medium", "hard"]

# (positional scale, tactical scale) applied to each mode's default weights
LEVEL_SCALES: Dict[str, Dict[str, float]] = {
    "easy": {"positional": 0.0, "tactical": 0.5},
    "medium": {"positional": 1.0, "tactical": 1.0},
    "hard": {"positional": 1.5, "tactical": 1.25},
}

DEFAULT_LEVEL: str = os.environ.get("DOMINO_AI_LEVEL", "medium").strip().lower() or "medium"
if DEFAULT_LEVEL not in LEVEL_SCALES:
    DEFAULT_LEVEL = "medium"

# drawing stops after this many tiles in one turn (guard for misconfigured boneyards)
MAX_DRAWS_PER_TURN = 64


def weights_for(mode: GameMode, level: Optional[str] = None) -> HeuristicWeights:
    lv = (level or DEFAULT_LEVEL).strip().lower()
    if lv not in LEVEL_SCALES:
        raise ValueError(f"Unknown difficulty level: {level}")
    sc = LEVEL_SCALES[lv]
    return mode.weights.scaled(positional=sc["positional"], tactical=sc["tactical"])


def _scored_moves(engine: GameEngine, player_index: int, level: Optional[str]) -> List[ValidMove]:
    st = engine.state
    if st is None or not st.round_active():
        return []
    mode: GameMode = engine.mode
    w = weights_for(mode, level)
    moves = mode.get_valid_moves(st.players[int(player_index)], st.board, st, score=False)
    for m in moves:
        m.heuristic_score = mode.calculate_potential_score(
            m.tile, m.position, st.board, st, weights=w, player_index=int(player_index)
        )
    return moves


def rank_moves(engine: GameEngine, player_index: int, level: Optional[str] = None) -> List[ValidMove]:
    """Legal moves for `player_index` scored at the requested level, best first (stable)."""
    moves = _scored_moves(engine, player_index, level)
    order = sorted(range(len(moves)), key=lambda i: -moves[i].heuristic_score)
    return [moves[i] for i in order]


def select_best_move(moves: List[ValidMove]) -> Optional[ValidMove]:
    if not moves:
        return None
    scores = np.array([float(m.heuristic_score) for m in moves], dtype=np.float64)
    return moves[int(np.argmax(scores))]


def immediate_points(engine: GameEngine, tile: Tile, position: str) -> int:
    st = engine.state
    if st is None:
        raise DominoError("No round has been started")
    after = st.board.clone()
    placed = after.place_tile(tile, position)
    return int(engine.mode.calculate_score(placed, after, st))


def pick_move_greedy(engine: GameEngine, player_index: int) -> Optional[ValidMove]:
    """Baseline: most immediate points, then shed the heaviest tile."""
    st = engine.state
    if st is None:
        return None
    mode: GameMode = engine.mode
    moves = mode.get_valid_moves(st.players[int(player_index)], st.board, st, score=False)
    best: Optional[ValidMove] = None
    best_key = None
    for m in moves:
        key = (immediate_points(engine, m.tile, m.position), m.tile.value())
        if best_key is None or key > best_key:
            best, best_key = m, key
    return best


def choose_move(engine: GameEngine, player_index: int, level: Optional[str] = None, policy: str = "ai") -> Optional[ValidMove]:
    if policy == "greedy":
        return pick_move_greedy(engine, player_index)
    if policy != "ai":
        raise ValueError(f"Unknown policy: {policy}")
    return select_best_move(_scored_moves(engine, player_index, level))


def play_automated_turn(engine: GameEngine, level: Optional[str] = None, policy: str = "ai") -> Dict[str, Any]:
    """
    Drive one full turn for the acting player: draw while stuck (draw variants),
    then play the chosen move or pass. The engine re-validates the pick.
    """
    st = engine.state
    if st is None or not st.round_active():
        return {"action": "none", "phase": st.phase if st is not None else None}

    idx = st.current_index
    drawn: List[str] = []
    for _ in range(MAX_DRAWS_PER_TURN):
        if engine.mode.has_legal_move(st.players[idx], st.board, st) or not engine.can_draw(idx):
            break
        drawn.append(tile_str(engine.draw_tile(idx)))
        if not st.round_active():
            return {"action": "draw", "player_index": idx, "drawn": drawn, "phase": st.phase}

    mv = choose_move(engine, idx, level=level, policy=policy)
    if mv is None:
        passed = engine.advance_if_no_legal_moves()
        return {"action": "pass" if passed else "none", "player_index": idx, "drawn": drawn, "phase": st.phase}

    try:
        res = engine.submit_move(idx, mv.tile, mv.position)
    except InvalidMove as e:
        logger.error("automated pick rejected: player=%d tile=%s position=%s reason=%s",
                     idx, tile_str(mv.tile), mv.position, e.reason)
        raise StructuralInvariantViolation("Move enumeration and validation disagree") from e

    return {
        "action": "play",
        "player_index": idx,
        "drawn": drawn,
        "move": mv.to_dict(),
        "score": res.score,
        "phase": res.phase,
    }


def play_round_automated(
    engine: GameEngine,
    levels: Optional[List[Optional[str]]] = None,
    policies: Optional[List[str]] = None,
    max_turns: int = 2000,
) -> int:
    """Run automated turns until the round ends; returns the number of turns taken."""
    st = engine.state
    if st is None:
        raise ValueError("No round started")
    turns = 0
    while st.round_active():
        if turns >= max_turns:
            raise StructuralInvariantViolation(f"Round did not terminate within {max_turns} turns")
        i = st.current_index
        lv = levels[i] if levels is not None and i < len(levels) else DEFAULT_LEVEL
        pol = policies[i] if policies is not None and i < len(policies) else "ai"
        play_automated_turn(engine, level=lv, policy=pol)
        turns += 1
    return turns
