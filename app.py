from flask import Flask, jsonify, request, session

from flask_cors import CORS

import logging
import os
import threading

from dotenv import load_dotenv

from game_config import load_config
from game_engine import get_castle_progress, monotonic_ms
from game_session import GameSession
from harmony import (
    HARMONY_CONFIG,
    get_locked_harmonies,
    get_next_unlock,
    get_unlocked_harmonies,
)
from storage import FirestoreStore, MemoryStore, ProgressStore, create_firestore_client

load_dotenv()

logger = logging.getLogger(__name__)

app = Flask(__name__)
app.secret_key = os.getenv("SECRET_KEY", "dev_secret_key")

CORS(app, supports_credentials=True)

GAME_CONFIG = load_config()

# Firestore is opt-in; local play keeps progress in memory
STORAGE_BACKEND = os.getenv("CHROMATIC_STORAGE", "memory")
db_firestore = create_firestore_client() if STORAGE_BACKEND == "firestore" else None

# Engines read this clock; tests swap it for a manual one
session_clock = monotonic_ms

_active_sessions = {}
_memory_progress = {}
_registry_lock = threading.Lock()


def get_progress(player_id):
    """ProgressStore for a player, Firestore-backed when available."""
    if db_firestore:
        return ProgressStore(FirestoreStore(db_firestore, player_id))
    with _registry_lock:
        if player_id not in _memory_progress:
            _memory_progress[player_id] = ProgressStore(MemoryStore())
        return _memory_progress[player_id]


def _player_id(data):
    return str(data.get('player_id') or session.get('user_id') or 'guest')


def _get_session(session_id):
    with _registry_lock:
        return _active_sessions.get(session_id)


def _drop_session(session_id, game):
    """Forget a session, unless a newer game already replaced it."""
    with _registry_lock:
        if _active_sessions.get(session_id) is game:
            del _active_sessions[session_id]
    game.close()


def _state_response(session_id, game, **extra):
    """
    Serialize the session. Called with `game.lock` held; a game that has
    ended is removed once its final state is in the response.
    """
    body = {
        "status": "success",
        **game.engine.snapshot(),
        "report": game.last_report,
        **extra,
    }
    if game.ended:
        _drop_session(session_id, game)
        logger.info("Session %s ended and was released", session_id)
    return jsonify(body)


def _no_session():
    return jsonify({"status": "error", "message": "No active session"}), 404


# ── Game ──────────────────────────────────────────────────────

@app.route('/api/game/start', methods=['POST'])
def game_start():
    """Start (or restart) a game for a session id."""
    data = request.get_json(silent=True) or {}
    session_id = data.get('session_id', 'default')
    mode = data.get('mode', 'unified')
    zen_filter = data.get('zen_filter', 'all')
    progress = get_progress(_player_id(data))

    while True:
        with _registry_lock:
            game = _active_sessions.get(session_id)
            if game is None:
                game = GameSession(progress, GAME_CONFIG, clock=session_clock)
                _active_sessions[session_id] = game

        with game.lock:
            # Lost a race with the request that released this session
            if game.closed:
                continue
            try:
                game.start(mode, zen_filter)
            except ValueError as e:
                return jsonify({"status": "error", "message": str(e)}), 400
            return _state_response(session_id, game)


@app.route('/api/game/choice', methods=['POST'])
def game_choice():
    """Submit a hex string (color-match) or a choice index (other harmonies)."""
    data = request.get_json(silent=True) or {}
    session_id = data.get('session_id', 'default')
    game = _get_session(session_id)
    if game is None:
        return _no_session()

    with game.lock:
        game.advance()
        result = game.engine.handle_choice(data.get('value'))
        if result is None:
            return _state_response(session_id, game, accepted=False)

        return _state_response(
            session_id,
            game,
            accepted=True,
            correct=result.correct,
            points_earned=result.points_earned,
            correct_color=result.correct_color,
        )


@app.route('/api/game/tick', methods=['POST'])
def game_tick():
    data = request.get_json(silent=True) or {}
    session_id = data.get('session_id', 'default')
    game = _get_session(session_id)
    if game is None:
        return _no_session()
    with game.lock:
        game.advance()
        return _state_response(session_id, game)


@app.route('/api/game/state', methods=['GET'])
def game_state():
    session_id = request.args.get('session_id', 'default')
    game = _get_session(session_id)
    if game is None:
        return _no_session()
    with game.lock:
        game.advance()
        return _state_response(session_id, game)


@app.route('/api/game/tutorial', methods=['POST'])
def game_tutorial():
    """Pause or resume the countdown while a tutorial overlay is shown."""
    data = request.get_json(silent=True) or {}
    session_id = data.get('session_id', 'default')
    game = _get_session(session_id)
    if game is None:
        return _no_session()
    with game.lock:
        game.advance()
        game.engine.set_tutorial_active(bool(data.get('active', False)))
        return _state_response(session_id, game)


@app.route('/api/game/reset', methods=['POST'])
def game_reset():
    data = request.get_json(silent=True) or {}
    session_id = data.get('session_id', 'default')
    game = _get_session(session_id)
    if game is None:
        return _no_session()

    with game.lock:
        game.advance()
        report = game.finish()
        if data.get('close'):
            _drop_session(session_id, game)
            return jsonify({"status": "success", "report": report})

        return _state_response(session_id, game, report=report or game.last_report)


# ── Progress ──────────────────────────────────────────────────

@app.route('/api/harmonies', methods=['GET'])
def harmonies():
    progress = get_progress(_player_id(request.args))
    lifetime = progress.lifetime_score
    next_unlock = get_next_unlock(lifetime)

    return jsonify({
        "status": "success",
        "lifetime_score": lifetime,
        "harmonies": [h.to_dict() for h in HARMONY_CONFIG],
        "unlocked": [h.type for h in get_unlocked_harmonies(lifetime)],
        "locked": [h.type for h in get_locked_harmonies(lifetime)],
        "next_unlock": {
            "type": next_unlock[0].type,
            "points_needed": next_unlock[1],
        } if next_unlock else None,
    })


@app.route('/api/progress', methods=['GET'])
def progress_summary():
    progress = get_progress(_player_id(request.args))
    mode = request.args.get('mode')

    return jsonify({
        "status": "success",
        "lifetime_score": progress.lifetime_score,
        "high_score": progress.get_high_score(mode),
        "high_scores": [s.to_dict() for s in progress.high_scores if not mode or s.mode == mode],
        "has_seen_tutorial": progress.has_seen_tutorial,
        "mechanics_seen": progress.mechanics_seen,
        "discovered_colors": progress.discovered_colors,
    })


@app.route('/api/progress/mechanic', methods=['POST'])
def mark_mechanic():
    data = request.get_json(silent=True) or {}
    mechanic = data.get('mechanic')
    if not mechanic:
        return jsonify({"status": "error", "message": "No mechanic provided"}), 400

    progress = get_progress(_player_id(data))
    progress.mark_mechanic_seen(mechanic)
    return jsonify({"status": "success", "mechanics_seen": progress.mechanics_seen})


@app.route('/api/castle', methods=['GET'])
def castle():
    score = request.args.get('score', 0, type=int)
    return jsonify({"status": "success", **get_castle_progress(score).to_dict()})


if __name__ == '__main__':
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    port = int(os.getenv("PORT", 5000))

    app.run(debug=os.getenv("FLASK_DEBUG") == "1", host='0.0.0.0', port=port)
