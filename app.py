# FILE: app.py | version: 2026-10-19.v1
# (JSON routes over GameEngine; one engine per session; per-session locks serialize moves)

from __future__ import annotations

from flask import Flask, request, jsonify, Response
from typing import Dict, Any, Optional, List
import logging
import os
import threading
import time
from collections import OrderedDict

from engine import (
    GameEngine, DominoError, InvalidMove, StructuralInvariantViolation,
    make_players, parse_tile,
)
from modes import GameMode, available_modes, get_mode
import ai
import storage

logger = logging.getLogger(__name__)

app = Flask(__name__)

SESSION_MAX = int(os.environ.get("DOMINO_SESSION_MAX", "200"))
SESSION_TTL = int(os.environ.get("DOMINO_SESSION_TTL", str(6 * 3600)))

# =============================================================================
# Sessions (LRU + TTL) + per-session locks
# =============================================================================

class SessionStore:
    """Thread-safe engine store with TTL+LRU eviction and one lock per session."""

    def __init__(self, max_size: int = 200, ttl_seconds: int = 6 * 3600):
        self.max_size = int(max_size)
        self.ttl_seconds = int(ttl_seconds)
        self._lock = threading.Lock()
        self._data: "OrderedDict[str, GameEngine]" = OrderedDict()
        self._ts: Dict[str, float] = {}
        self._locks: Dict[str, threading.Lock] = {}

    def _session_lock(self, key: str) -> threading.Lock:
        lk = self._locks.get(key)
        if lk is None:
            lk = threading.Lock()
            self._locks[key] = lk
        return lk

    def _drop(self, key: str) -> None:
        self._data.pop(key, None)
        self._ts.pop(key, None)
        self._locks.pop(key, None)

    def lock_for(self, key: str) -> threading.Lock:
        with self._lock:
            return self._session_lock(key)

    def get(self, key: str) -> Optional[GameEngine]:
        now = time.time()
        with self._lock:
            eng = self._data.get(key)
            if eng is None:
                return None
            if now - self._ts.get(key, 0.0) > self.ttl_seconds:
                self._drop(key)
                return None
            self._data.move_to_end(key)
            self._ts[key] = now
            return eng

    def set(self, key: str, value: GameEngine) -> None:
        now = time.time()
        with self._lock:
            if key not in self._data:
                while len(self._data) >= self.max_size:
                    oldest, _ = self._data.popitem(last=False)
                    self._ts.pop(oldest, None)
                    self._locks.pop(oldest, None)
                    logger.debug("session %s evicted (lru)", oldest)
            self._data[key] = value
            self._data.move_to_end(key)
            self._ts[key] = now
            self._session_lock(key)

    def cleanup(self) -> int:
        now = time.time()
        removed = 0
        with self._lock:
            for k in list(self._data.keys()):
                if now - self._ts.get(k, 0.0) > self.ttl_seconds:
                    self._drop(k)
                    removed += 1
        return removed

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)


SESSIONS = SessionStore(max_size=SESSION_MAX, ttl_seconds=SESSION_TTL)
SESSION_CLEANUP_INTERVAL = 900
_LAST_SESSION_CLEANUP = time.time()


def cleanup_old_sessions() -> None:
    global _LAST_SESSION_CLEANUP
    now = time.time()
    if now - _LAST_SESSION_CLEANUP < SESSION_CLEANUP_INTERVAL:
        return
    removed = SESSIONS.cleanup()
    if removed:
        logger.info("expired %d sessions", removed)
    _LAST_SESSION_CLEANUP = now


# =============================================================================
# Helpers
# =============================================================================

def ok(payload: Dict[str, Any] | None = None):
    return jsonify({"ok": True, **(payload or {})})


def err(msg: str, code: int = 400, reason: Optional[str] = None):
    body: Dict[str, Any] = {"ok": False, "error": msg}
    if reason:
        body["reason"] = reason
    return jsonify(body), code


def domino_err(e: DominoError):
    return err(str(e), 400, reason=getattr(e, "reason", None) or type(e).__name__)


def body() -> Dict[str, Any]:
    data = request.get_json(silent=True) if request.is_json else None
    return data if isinstance(data, dict) else {}


def sid() -> str:
    return body().get("session_id") or request.args.get("session_id") or "default"


def _opt_int(x: Any) -> Optional[int]:
    if x is None or x == "":
        return None
    return int(x)


def _state_payload(session_id: str, eng: GameEngine) -> Dict[str, Any]:
    st = eng.state
    assert st is not None
    return {
        "session_id": session_id,
        "mode": eng.mode.info(),
        "state": st.to_dict(),
        "can_draw": eng.can_draw(st.current_index),
    }


def _players_from_request(mode: GameMode, raw: Any) -> List[Any]:
    if raw is None:
        n = mode.player_count or mode.min_players
        return make_players([f"Player {i + 1}" for i in range(n)])
    if not isinstance(raw, list) or not raw:
        raise ValueError("players must be a non-empty list")
    names: List[str] = []
    flags: List[bool] = []
    for i, p in enumerate(raw):
        if isinstance(p, dict):
            names.append(str(p.get("name") or f"Player {i + 1}"))
            flags.append(bool(p.get("automated", False)))
        else:
            names.append(str(p))
            flags.append(False)
    return make_players(names, flags)


# =============================================================================
# Routes
# =============================================================================

@app.get("/api/modes")
def api_modes():
    return ok({"modes": [get_mode(m).info() for m in available_modes()]})


@app.post("/api/new_game")
def api_new_game():
    """Bind a fresh engine to the session and open round 1."""
    try:
        data = body()
        session_id = sid()
        mode = get_mode(str(data.get("mode", "block")))
        players = _players_from_request(mode, data.get("players"))

        match_target = _opt_int(data.get("match_target"))
        if match_target is not None:
            match_target = max(1, min(match_target, 1000))
        max_rounds = _opt_int(data.get("max_rounds"))
        if max_rounds is not None and max_rounds < 1:
            return err("max_rounds must be >= 1")

        eng = GameEngine(seed=_opt_int(data.get("seed")))
        eng.start_round(mode, players, match_target=match_target, max_rounds=max_rounds)
        SESSIONS.set(session_id, eng)
        logger.info("session %s: new %s game, %d players", session_id, mode.mode_id, len(players))
        return ok(_state_payload(session_id, eng))

    except DominoError as e:
        return domino_err(e)
    except (TypeError, ValueError) as e:
        return err(str(e))


@app.post("/api/next_round")
def api_next_round():
    session_id = sid()
    eng = SESSIONS.get(session_id)
    if eng is None:
        return err("no active session", 404)
    try:
        with SESSIONS.lock_for(session_id):
            eng.next_round()
            return ok(_state_payload(session_id, eng))
    except DominoError as e:
        return domino_err(e)


@app.get("/api/state")
def api_state():
    session_id = request.args.get("session_id", "default")
    eng = SESSIONS.get(session_id)
    if eng is None:
        return err("no active session", 404)

    with SESSIONS.lock_for(session_id):
        payload = _state_payload(session_id, eng)
    return ok(payload)


@app.get("/api/valid_moves")
def api_valid_moves():
    session_id = request.args.get("session_id", "default")
    eng = SESSIONS.get(session_id)
    if eng is None:
        return err("no active session", 404)
    try:
        idx = _opt_int(request.args.get("player_index"))
        with SESSIONS.lock_for(session_id):
            st = eng.state
            assert st is not None
            if idx is not None and not (0 <= idx < len(st.players)):
                return err("player_index out of range")
            moves = eng.valid_moves(idx)
            return ok({
                "player_index": st.current_index if idx is None else idx,
                "moves": [m.to_dict() for m in moves],
            })
    except DominoError as e:
        return domino_err(e)
    except ValueError as e:
        return err(str(e))


@app.post("/api/move")
def api_move():
    session_id = sid()
    eng = SESSIONS.get(session_id)
    if eng is None:
        return err("no active session", 404)
    try:
        data = body()
        with SESSIONS.lock_for(session_id):
            st = eng.state
            assert st is not None
            idx = _opt_int(data.get("player_index"))
            if idx is None:
                idx = st.current_index
            if not (0 <= idx < len(st.players)):
                return err("player_index out of range")
            position = str(data.get("position") or "").strip().lower()
            if not position:
                return err("position required")

            try:
                tile = parse_tile(data.get("tile", ""))
            except ValueError as e:
                return err(f"Invalid tile: {str(e)}")

            res = eng.submit_move(idx, tile, position)
            return ok({"result": res.to_dict(), **_state_payload(session_id, eng)})

    except DominoError as e:
        return domino_err(e)
    except ValueError as e:
        return err(str(e))


@app.post("/api/draw")
def api_draw():
    session_id = sid()
    eng = SESSIONS.get(session_id)
    if eng is None:
        return err("no active session", 404)
    try:
        data = body()
        with SESSIONS.lock_for(session_id):
            st = eng.state
            assert st is not None
            idx = _opt_int(data.get("player_index"))
            t = eng.draw_tile(st.current_index if idx is None else idx)
            return ok({"drawn": f"{t.left}-{t.right}", **_state_payload(session_id, eng)})
    except DominoError as e:
        return domino_err(e)
    except ValueError as e:
        return err(str(e))


@app.post("/api/pass")
def api_pass():
    session_id = sid()
    eng = SESSIONS.get(session_id)
    if eng is None:
        return err("no active session", 404)
    try:
        with SESSIONS.lock_for(session_id):
            if not eng.advance_if_no_legal_moves():
                return err("Passing is only allowed with no legal move and nothing to draw", reason="cannot_pass")
            return ok(_state_payload(session_id, eng))
    except DominoError as e:
        return domino_err(e)


@app.post("/api/ai_move")
def api_ai_move():
    """Play one automated turn for whoever is to act."""
    session_id = sid()
    eng = SESSIONS.get(session_id)
    if eng is None:
        return err("no active session", 404)
    try:
        data = body()
        level = data.get("level")
        if level is not None and str(level).strip().lower() not in ai.LEVEL_SCALES:
            return err(f"level must be one of {sorted(ai.LEVEL_SCALES)}")
        with SESSIONS.lock_for(session_id):
            st = eng.state
            assert st is not None
            if not st.round_active():
                raise InvalidMove("round_not_active", "The round is not accepting moves")
            turn = ai.play_automated_turn(eng, level=level)
            return ok({"turn": turn, **_state_payload(session_id, eng)})
    except DominoError as e:
        return domino_err(e)


@app.post("/api/save")
def api_save():
    session_id = sid()
    eng = SESSIONS.get(session_id)
    if eng is None:
        return err("no active session", 404)
    try:
        data = body()
        with SESSIONS.lock_for(session_id):
            st = eng.state
            assert st is not None
            name = (data.get("filename") or data.get("name") or "").strip() or None
            overwrite = bool(data.get("overwrite", False))
            compress = bool(data.get("compress", False))

            if overwrite:
                if not name:
                    return err("name required for overwrite=true")
                fn = storage.save_game_as(st, filename=name, overwrite=True, compress=compress)
            else:
                fn = storage.save_game(st, name=name, compress=compress)

            return ok({"saved_as": fn, "saves": storage.list_saves()})

    except FileExistsError as e:
        return err(str(e), 409)
    except ValueError as e:
        return err(str(e))


@app.post("/api/load")
def api_load():
    try:
        data = body()
        session_id = sid()
        name = (data.get("filename") or data.get("name") or "").strip()
        if not name:
            return err("name required")

        eng = storage.load_engine(name, seed=_opt_int(data.get("seed")))
        SESSIONS.set(session_id, eng)
        return ok({**_state_payload(session_id, eng), "saves": storage.list_saves()})

    except FileNotFoundError as e:
        return err(str(e), 404)
    except DominoError as e:
        return domino_err(e)
    except (KeyError, ValueError) as e:
        return err(f"Unreadable save: {e}")


@app.get("/api/list_saves")
def api_list_saves():
    return ok({"saves": storage.list_saves()})


@app.post("/api/delete_save")
def api_delete_save():
    try:
        data = body()
        name = (data.get("filename") or data.get("name") or "").strip()
        if not name:
            return err("filename required")
        deleted = storage.delete_save(name)
        return ok({"deleted": deleted, "saves": storage.list_saves()})
    except FileNotFoundError as e:
        return err(str(e), 404)
    except ValueError as e:
        return err(str(e))


@app.get("/api/export_log")
def api_export_log():
    session_id = request.args.get("session_id", "default")
    eng = SESSIONS.get(session_id)
    if eng is None or eng.state is None:
        return err("no active session", 404)

    with SESSIONS.lock_for(session_id):
        txt = storage.export_log_text(eng.state)

    return Response(txt, mimetype="text/plain; charset=utf-8")


@app.errorhandler(StructuralInvariantViolation)
def on_structural_violation(e: StructuralInvariantViolation):
    logger.exception("structural invariant violated: %s", e)
    return err("Internal rule engine error", 500, reason="structural_invariant_violation")


@app.before_request
def before_request():
    cleanup_old_sessions()


if __name__ == "__main__":
    logging.basicConfig(
        level=os.environ.get("DOMINO_LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app.run(host="127.0.0.1", port=5000, debug=False)
