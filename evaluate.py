# FILE: evaluate.py | version: 2026-10-19.v1
# (headless evaluator: seeded automated matches per variant; tile-conservation asserts;
#  per-match seed = base_seed + index*10007 so --jobs N reproduces --jobs 1)

from __future__ import annotations

import argparse
import json
import logging
import multiprocessing as mp
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import numpy as np

from engine import GameEngine, GameState, StructuralInvariantViolation, full_set, make_players
from modes import GameMode, available_modes, get_mode
import ai

logger = logging.getLogger(__name__)

SEED_STRIDE = 10007


@dataclass
class EvalConfig:
    matches: int = 200
    mode: str = "block"
    base_seed: int = 12345
    players: Optional[int] = None

    # per seat; missing seats fall back to ai.DEFAULT_LEVEL / "ai"
    levels: List[str] = field(default_factory=list)
    policies: List[str] = field(default_factory=list)

    target: Optional[int] = None
    max_rounds_per_match: int = 50
    max_turns_per_round: int = 2000
    strict_asserts: bool = True
    assert_every: int = 1

    # global index of this chunk's first match (set by run_eval_parallel)
    index_offset: int = 0


def seat_count(mode: GameMode, requested: Optional[int]) -> int:
    if mode.player_count is not None:
        return int(mode.player_count)
    n = int(requested) if requested is not None else int(mode.min_players)
    return max(int(mode.min_players), min(n, int(mode.max_players)))


def assert_conservation(st: GameState, mode: GameMode) -> None:
    """Hands + board + boneyard must be exactly the deck, each tile once."""
    have = sorted(t.key() for t in st.all_tiles_in_play())
    want = sorted(t.key() for t in full_set(mode.max_pips))
    if have != want:
        raise StructuralInvariantViolation(
            f"Tile conservation broken: {len(have)} tiles in play, {len(want)} in the set"
        )
    if mode.board_kind == "cross" and not st.board.is_empty() and st.board.center_tile is None:
        raise StructuralInvariantViolation("Cross layout without a center")


def play_one_match(cfg: EvalConfig, index: int) -> Dict[str, Any]:
    mode = get_mode(cfg.mode)
    n = seat_count(mode, cfg.players)
    eng = GameEngine(seed=int(cfg.base_seed + index * SEED_STRIDE))
    players = make_players([f"seat{i}" for i in range(n)], [True] * n)
    st = eng.start_round(mode, players, match_target=cfg.target, max_rounds=cfg.max_rounds_per_match)

    levels: List[Optional[str]] = [cfg.levels[i] if i < len(cfg.levels) else None for i in range(n)]
    policies = [cfg.policies[i] if i < len(cfg.policies) else "ai" for i in range(n)]
    check = cfg.strict_asserts and cfg.assert_every > 0 and (index % int(cfg.assert_every) == 0)

    rounds = 0
    turns = 0
    blocked = 0
    round_awards: List[int] = []
    while True:
        if check:
            assert_conservation(st, mode)
        turns += ai.play_round_automated(eng, levels=levels, policies=policies, max_turns=cfg.max_turns_per_round)
        st = eng.state
        assert st is not None
        if check:
            assert_conservation(st, mode)

        rounds += 1
        if st.round_end_reason == "blocked":
            blocked += 1
        round_awards.append(int(st.last_round_award))

        if st.phase == "game_over":
            break
        st = eng.next_round()

    winner = st.game_winner
    return {
        "index": int(index),
        "winner": winner,
        "winner_team": mode.team_of(winner) if (winner is not None and mode.teams) else None,
        "scores": st.scores(),
        "rounds": rounds,
        "turns": turns,
        "blocked_rounds": blocked,
        "award_sum": int(sum(round_awards)),
    }


def _run_chunk(cfg: EvalConfig, progress_every: int = 0) -> List[Dict[str, Any]]:
    out: List[Dict[str, Any]] = []
    t0 = time.perf_counter()
    for j in range(int(cfg.matches)):
        out.append(play_one_match(cfg, int(cfg.index_offset) + j))
        done = j + 1
        if progress_every > 0 and (done % progress_every == 0 or done == cfg.matches):
            mps = done / max(1e-9, time.perf_counter() - t0)
            print(f"[eval] progress matches_done={done}/{cfg.matches} mps={mps:.2f}", flush=True)
    return out


def _chunk_worker(cfg: EvalConfig) -> List[Dict[str, Any]]:
    return _run_chunk(cfg)


def summarize(cfg: EvalConfig, records: List[Dict[str, Any]], elapsed: float) -> Dict[str, Any]:
    mode = get_mode(cfg.mode)
    n = seat_count(mode, cfg.players)
    records = sorted(records, key=lambda r: r["index"])
    m = len(records)

    scores = np.array([r["scores"] for r in records], dtype=np.float64).reshape(m, n)
    wins = np.zeros(n, dtype=np.int64)
    for r in records:
        if r["winner"] is not None:
            wins[int(r["winner"])] += 1
    rounds = np.array([r["rounds"] for r in records], dtype=np.float64)
    turns = np.array([r["turns"] for r in records], dtype=np.float64)
    total_rounds = float(rounds.sum())

    results: Dict[str, Any] = {
        "matches": m,
        "wins": wins.tolist(),
        "win_rate": (wins / max(1, m)).round(4).tolist(),
        "score_mean": (scores.mean(axis=0) if m else np.zeros(n)).round(2).tolist(),
        "score_std": (scores.std(axis=0) if m else np.zeros(n)).round(2).tolist(),
        "rounds_mean": round(float(rounds.mean()) if m else 0.0, 3),
        "turns_per_round": round(float(turns.sum() / total_rounds) if total_rounds else 0.0, 3),
        "blocked_rate": round(sum(r["blocked_rounds"] for r in records) / total_rounds, 4) if total_rounds else 0.0,
        "award_mean": round(sum(r["award_sum"] for r in records) / total_rounds, 3) if total_rounds else 0.0,
        "elapsed_sec": round(float(elapsed), 3),
    }
    if mode.teams:
        team_wins = np.zeros(len(mode.teams), dtype=np.int64)
        for r in records:
            if r["winner_team"] is not None:
                team_wins[int(r["winner_team"])] += 1
        results["team_wins"] = team_wins.tolist()
        results["team_win_rate"] = (team_wins / max(1, m)).round(4).tolist()

    return {
        "config": {
            "mode": mode.mode_id,
            "matches": m,
            "base_seed": int(cfg.base_seed),
            "players": n,
            "levels": [cfg.levels[i] if i < len(cfg.levels) else ai.DEFAULT_LEVEL for i in range(n)],
            "policies": [cfg.policies[i] if i < len(cfg.policies) else "ai" for i in range(n)],
            "target": cfg.target if cfg.target is not None else mode.match_target,
            "max_rounds_per_match": int(cfg.max_rounds_per_match),
            "strict_asserts": bool(cfg.strict_asserts),
        },
        "results": results,
    }


def run_eval(cfg: EvalConfig, progress_every: int = 0) -> Dict[str, Any]:
    t0 = time.perf_counter()
    records = _run_chunk(cfg, progress_every=progress_every)
    return summarize(cfg, records, time.perf_counter() - t0)


def run_eval_parallel(cfg: EvalConfig, jobs: int, progress_every: int) -> Dict[str, Any]:
    jobs = max(1, int(jobs))
    matches = int(cfg.matches)
    if jobs == 1 or matches < 2 * jobs:
        return run_eval(cfg, progress_every=progress_every)

    per = matches // jobs
    rem = matches % jobs

    chunks: List[EvalConfig] = []
    start = 0
    for j in range(jobs):
        c = EvalConfig(**{**cfg.__dict__})
        c.matches = per + (1 if j < rem else 0)
        c.index_offset = int(cfg.index_offset) + start
        chunks.append(c)
        start += c.matches

    t0 = time.perf_counter()
    records: List[Dict[str, Any]] = []

    with mp.get_context("spawn").Pool(processes=jobs) as pool:
        for part in pool.imap_unordered(_chunk_worker, chunks, chunksize=1):
            records.extend(part)
            done = len(records)
            if progress_every > 0:
                mps = done / max(1e-9, time.perf_counter() - t0)
                print(f"[eval] progress matches_done={done}/{matches} mps={mps:.2f}", flush=True)

    return summarize(cfg, records, time.perf_counter() - t0)


def _csv(s: Optional[str]) -> List[str]:
    if not s:
        return []
    return [x.strip().lower() for x in s.split(",") if x.strip()]


def build_arg_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Run seeded automated domino matches and report statistics.")
    ap.add_argument("--mode", choices=available_modes(), default="block")
    ap.add_argument("--matches", type=int, default=200)
    ap.add_argument("--seed", type=int, default=12345)
    ap.add_argument("--players", type=int, default=None, help="seat count for variants without a fixed count.")
    ap.add_argument("--levels", type=str, default="", help="comma list per seat: easy,medium,hard")
    ap.add_argument("--policies", type=str, default="", help="comma list per seat: ai,greedy")
    ap.add_argument("--target", type=int, default=None, help="match target (default: the variant's)")
    ap.add_argument("--max_rounds", type=int, default=50)
    ap.add_argument("--no_asserts", action="store_true")
    ap.add_argument("--assert_every", type=int, default=1)
    ap.add_argument("--jobs", type=int, default=1, help="parallel workers (spawn).")
    ap.add_argument("--progress_every", type=int, default=50, help="print progress every N matches (0=off).")
    ap.add_argument("--log_level", type=str, default="WARNING")
    return ap


def main() -> None:
    ap = build_arg_parser()
    args = ap.parse_args()
    logging.basicConfig(level=str(args.log_level).upper(), format="%(levelname)s %(name)s: %(message)s")

    levels = _csv(args.levels)
    for lv in levels:
        if lv not in ai.LEVEL_SCALES:
            ap.error(f"unknown level {lv!r}")
    policies = _csv(args.policies)
    for pol in policies:
        if pol not in ("ai", "greedy"):
            ap.error(f"unknown policy {pol!r}")

    cfg = EvalConfig(
        matches=int(args.matches),
        mode=str(args.mode),
        base_seed=int(args.seed),
        players=args.players,
        levels=levels,
        policies=policies,
        target=args.target,
        max_rounds_per_match=int(args.max_rounds),
        strict_asserts=(not bool(args.no_asserts)),
        assert_every=int(args.assert_every),
    )
    print(f"[eval] mode={cfg.mode} matches={cfg.matches} seed={cfg.base_seed} jobs={args.jobs}", flush=True)

    rep = run_eval_parallel(cfg, jobs=int(args.jobs), progress_every=int(args.progress_every))

    print(json.dumps(rep, ensure_ascii=False), flush=True)
    print(json.dumps(rep, ensure_ascii=False, indent=2), flush=True)


if __name__ == "__main__":
    main()
