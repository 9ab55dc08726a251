# FILE: storage.py | version: 2026-10-19.v1
# (GameState snapshots on disk: plain .json or zstd-compressed .json.zst; names confined to SAVE_DIR)

from __future__ import annotations

import json
import logging
import os
import random
import re
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import zstandard as zstd

from engine import GameEngine, GameState
from modes import get_mode

logger = logging.getLogger(__name__)

SAVE_DIR = Path(os.environ.get("DOMINO_SAVE_DIR", "saves"))
ZSTD_LEVEL = 3

JSON_EXT = ".json"
ZST_EXT = ".json.zst"


def _ensure_dir() -> None:
    SAVE_DIR.mkdir(parents=True, exist_ok=True)


def safe_name(name: str) -> str:
    """Base name without path parts or odd characters (spaces become _)."""
    name = (name or "").strip()
    name = re.sub(r"[^a-zA-Z0-9_\-\. ]+", "", name)
    name = name.replace(" ", "_").strip("._-")
    return name or "game"


def _normalize_save_filename(filename: str, compress: Optional[bool] = None) -> str:
    """
    basename only; appends .json (or .json.zst when compress=True) unless the
    name already carries one of the two extensions.
    """
    fn = (filename or "").strip()
    fn = Path(fn).name
    if not fn:
        raise ValueError("Empty filename")
    if fn.endswith(ZST_EXT) or fn.endswith(JSON_EXT):
        return fn
    return fn + (ZST_EXT if compress else JSON_EXT)


def _resolve_save_path(filename: str, compress: Optional[bool] = None) -> Path:
    _ensure_dir()
    fn = _normalize_save_filename(filename, compress)

    base_dir = SAVE_DIR.resolve()
    path = (SAVE_DIR / fn).resolve()
    try:
        path.relative_to(base_dir)
    except ValueError:
        raise ValueError("Unauthorized path access")
    return path


def _encode(state: GameState, compressed: bool) -> bytes:
    raw = json.dumps(state.to_dict(), ensure_ascii=False, indent=None if compressed else 2).encode("utf-8")
    if not compressed:
        return raw
    return zstd.ZstdCompressor(level=ZSTD_LEVEL).compress(raw)


def _decode(path: Path) -> Dict[str, Any]:
    if path.name.endswith(ZST_EXT):
        dctx = zstd.ZstdDecompressor()
        with open(path, "rb") as fh:
            with dctx.stream_reader(fh) as reader:
                raw = reader.read()
    else:
        raw = path.read_bytes()
    return json.loads(raw.decode("utf-8"))


def save_game(state: GameState, name: Optional[str] = None, compress: bool = False) -> str:
    _ensure_dir()
    ts = datetime.now().strftime("%Y%m%d_%H%M%S")
    base = safe_name(name) if name else state.mode_id
    # same-second saves get a random suffix
    suffix = f"{random.randint(0, 9999):04d}"
    fn = f"{base}_{ts}_{suffix}" + (ZST_EXT if compress else JSON_EXT)

    (SAVE_DIR / fn).write_bytes(_encode(state, compress))
    logger.info("saved %s (round %d, phase=%s)", fn, state.round_index, state.phase)
    return fn


def save_game_as(state: GameState, filename: str, overwrite: bool = True, compress: Optional[bool] = None) -> str:
    """
    Save to a specific filename inside SAVE_DIR. 'x', 'x.json' and 'x.json.zst'
    are accepted; a bare name is compressed only when compress=True.
    """
    path = _resolve_save_path(filename, compress)
    if path.exists() and not overwrite:
        raise FileExistsError(f"Save already exists: {path.name}")

    path.write_bytes(_encode(state, path.name.endswith(ZST_EXT)))
    logger.info("saved %s (overwrite=%s)", path.name, overwrite)
    return path.name


def _find_existing(filename: str) -> Path:
    fn = (filename or "").strip()
    if Path(fn).name.endswith(ZST_EXT) or Path(fn).name.endswith(JSON_EXT):
        candidates = [_resolve_save_path(fn)]
    else:
        candidates = [_resolve_save_path(fn, compress=False), _resolve_save_path(fn, compress=True)]
    for path in candidates:
        if path.exists():
            return path
    raise FileNotFoundError(f"Save not found: {candidates[0].name}")


def load_game(filename: str) -> GameState:
    path = _find_existing(filename)
    st = GameState.from_dict(_decode(path))
    logger.debug("loaded %s: mode=%s round=%d", path.name, st.mode_id, st.round_index)
    return st


def load_engine(filename: str, seed: Optional[int] = None) -> GameEngine:
    """Load a save and bind it to its registered mode."""
    st = load_game(filename)
    return GameEngine.resume(st, get_mode(st.mode_id), seed=seed)


def list_saves() -> List[str]:
    _ensure_dir()
    names = [p.name for p in SAVE_DIR.iterdir() if p.is_file() and (p.name.endswith(JSON_EXT) or p.name.endswith(ZST_EXT))]
    return sorted(names, reverse=True)


def delete_save(filename: str) -> str:
    path = _find_existing(filename)
    path.unlink()
    logger.info("deleted save %s", path.name)
    return path.name


def delete_saves(filenames: List[str]) -> Dict[str, Any]:
    deleted: List[str] = []
    missing: List[str] = []

    for name in filenames:
        try:
            deleted.append(delete_save(str(name)))
        except FileNotFoundError:
            missing.append(Path(str(name)).name)

    return {"deleted": deleted, "missing": missing}


def export_log_text(state: GameState) -> str:
    d = state.to_dict()
    meta = d.get("meta", {})
    board = d.get("board", {})
    lines: List[str] = []
    lines.append("=== Domino Game Log ===")
    lines.append(f"mode: {meta.get('mode_id')} | round: {meta.get('round_index')} | phase: {meta.get('phase')}")
    lines.append(f"target: {meta.get('match_target')} | max_rounds: {meta.get('max_rounds')}")
    lines.append("scores: " + ", ".join(f"{p['name'] or p['player_id']}={p['score']}" for p in d.get("players", [])))
    lines.append(f"board: kind={board.get('kind')} ends_sum={board.get('ends_sum')} played={len(board.get('played_tiles', []))}")
    lines.append(f"boneyard: {len(d.get('boneyard', []))}")
    if meta.get("round_end_reason"):
        lines.append(
            f"last round: reason={meta.get('round_end_reason')} winner={meta.get('round_winner')} "
            f"award={meta.get('last_round_award')}"
        )
    if meta.get("game_winner") is not None:
        lines.append(f"game winner: {meta.get('game_winner')}")
    lines.append("")
    lines.append("=== Events ===")
    for i, ev in enumerate(d.get("events", []), start=1):
        who = ev.get("player_index")
        parts = [f"{i:03d}.", f"r{ev.get('round_index')}", str(ev.get("type"))]
        if who is not None:
            parts.append(f"p{who}")
        if ev.get("tile"):
            parts.append(f"{ev.get('tile')}@{ev.get('position')}")
        if ev.get("score_gained"):
            parts.append(f"+{ev.get('score_gained')}")
        if ev.get("end_reason"):
            parts.append(f"reason={ev.get('end_reason')} award={ev.get('award')}")
        lines.append(" ".join(parts))
    lines.append("")
    lines.append("=== Snapshot (JSON) ===")
    lines.append(json.dumps(d, ensure_ascii=False, indent=2))
    return "\n".join(lines)
