# ============================================================================
#                                 GAME DOCK
#                         CENTRAL APPLICATION ENGINE
# ----------------------------------------------------------------------------
# Serves the unified library to the web UI:
# 1.  Flask / Socket.io Server: REST API plus push events.
# 2.  Library: Steam, Epic and Xbox scans merged with manual entries.
# 3.  Launcher: platform launch strategies with fallbacks.
# ============================================================================

import sys
import uuid
import logging
import threading

from flask import Blueprint, Flask, current_app, jsonify, request
from flask_socketio import SocketIO
from flask_cors import CORS

from config import (
    ScanSettings, DEFAULT_CONFIG, database_file, initialize_environment, load_config, save_config,
    setup_master_logging, validate_config,
)
from game_scanner import GameScanner, build_scanners
from launcher import LaunchEngine, LaunchSucceeded
from library import ALL_PLATFORMS, GameLibrary
from library_db import LibraryStore

logger = logging.getLogger("GameDock_Core")

socketio = SocketIO()
api = Blueprint('api', __name__)

# ============================================================================
# [1] COMPONENT WIRING
# ============================================================================

def build_scanner(settings: ScanSettings) -> GameScanner:
    scan_logger = logger.getChild("scan")
    return GameScanner(build_scanners(settings, scan_logger), timeout=settings.scan_timeout_seconds, logger=scan_logger)


def build_library(data_dir: str, config: dict) -> GameLibrary:
    settings = ScanSettings.from_config(config)
    store = LibraryStore(database_file(data_dir), logger=logger.getChild("db"))
    return GameLibrary(store, build_scanner(settings), logger=logger.getChild("library"),
                       scan_timeout=settings.scan_timeout_seconds)


def broadcast_launch_event(event) -> None:
    """Pushes launch outcomes to every connected UI."""
    if isinstance(event, LaunchSucceeded):
        socketio.emit('launch_succeeded', event.game.to_dict())
    else:
        socketio.emit('launch_failed', {'game': event.game.to_dict(), 'reason': event.reason})


def create_app(data_dir=None, config=None, library=None, engine=None) -> Flask:
    data_dir = initialize_environment(data_dir)
    if config is None:
        config = load_config(data_dir)
    if library is None:
        library = build_library(data_dir, config)
    if engine is None:
        engine = LaunchEngine(
            logger=logger.getChild("launch"),
            on_played=lambda game, when: library.mark_played(game.id, when),
        )
    engine.add_listener(broadcast_launch_event)

    app = Flask(__name__)
    app.config['SECRET_KEY'] = str(uuid.uuid4())
    app.config['DATA_DIR'] = data_dir
    app.config['GAMEDOCK_CONFIG'] = config
    app.extensions['gamedock_library'] = library
    app.extensions['gamedock_engine'] = engine

    CORS(app, resources={r"/api/*": {"origins": "*"}})
    socketio.init_app(app, cors_allowed_origins="*", async_mode='threading')
    app.register_blueprint(api)
    return app


def _library() -> GameLibrary:
    return current_app.extensions['gamedock_library']


def _engine() -> LaunchEngine:
    return current_app.extensions['gamedock_engine']


def _payload() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}

# ============================================================================
# [2] LIBRARY SCANNING
# ============================================================================

def scan_library_task(library: GameLibrary) -> None:
    """Background rescan; the UI reloads on 'scan_complete'."""
    completed = library.rescan()
    if completed:
        socketio.emit('scan_complete', {'count': len(library.games())})


@api.route('/api/refresh', methods=['POST'])
def route_api_manual_refresh():
    """Manual trigger for the library scanning background task."""
    threading.Thread(target=scan_library_task, args=(_library(),), daemon=True).start()
    return jsonify({"status": "success"}), 202

# ============================================================================
# [3] LIBRARY QUERIES
# ============================================================================

@api.route('/api/games')
def route_api_get_games():
    platform = request.args.get('platform', ALL_PLATFORMS)
    search = request.args.get('q', '')
    try:
        games = _library().filter(platform, search)
    except ValueError as e:
        return jsonify({"status": "error", "message": str(e)}), 400
    return jsonify([g.to_dict() for g in games])


@api.route('/api/games/recent')
def route_api_recent_games():
    limit = request.args.get('limit', 6, type=int)
    return jsonify([g.to_dict() for g in _library().recently_played(limit)])


@api.route('/api/games/favorites')
def route_api_favorite_games():
    return jsonify([g.to_dict() for g in _library().favorites()])

# ============================================================================
# [4] LAUNCH
# ============================================================================

@api.route('/api/launch', methods=['POST'])
def route_api_launch():
    game = _library().get(_payload().get('id'))
    if game is None:
        return jsonify({"status": "error", "message": "Metadata missing for this entry."}), 404

    result = _engine().launch(game)
    if not result.succeeded:
        return jsonify({"status": "error", "message": result.failure_reason}), 500
    return jsonify({"status": "success", "game": game.to_dict()})

# ============================================================================
# [5] USER EDITS
# ============================================================================

@api.route('/api/add_game', methods=['POST'])
def api_add_manual_game():
    """Adds a manually selected executable to the library."""
    data = _payload()
    try:
        game = _library().add_manual(data.get('name') or "", data.get('path') or "", data.get('args') or "")
    except ValueError as e:
        return jsonify({"status": "error", "message": str(e)}), 400
    return jsonify({"status": "success", "game": game.to_dict()})


@api.route('/api/update_game', methods=['POST'])
def route_api_update_game():
    data = _payload()
    try:
        game = _library().update_manual(
            data.get('id'),
            title=data.get('name'),
            executable_path=data.get('path'),
            launch_arguments=data.get('args'),
            category=data.get('category'),
        )
    except ValueError as e:
        return jsonify({"status": "error", "message": str(e)}), 400
    if game is None:
        return jsonify({"status": "error", "message": "Game not found."}), 404
    return jsonify({"status": "success", "game": game.to_dict()})


@api.route('/api/toggle_favorite', methods=['POST'])
def route_api_toggle_favorite():
    game = _library().toggle_favorite(_payload().get('id'))
    if game is None:
        return jsonify({"status": "error", "message": "Game not found."}), 404
    return jsonify({"status": "success", "game": game.to_dict()})


@api.route('/api/delete_game', methods=['POST'])
def api_delete_game():
    if not _library().remove_manual(_payload().get('id')):
        return jsonify({"status": "error", "message": "Only manually added games can be removed."}), 404
    return jsonify({"status": "success"})

# ============================================================================
# [6] CONFIGURATION
# ============================================================================

@api.route('/api/config', methods=['GET'])
def api_get_config():
    return jsonify(current_app.config['GAMEDOCK_CONFIG'])


@api.route('/api/config', methods=['POST'])
def api_update_config():
    updates = _payload()
    problems = validate_config(updates)
    if problems:
        return jsonify({"status": "error", "message": "; ".join(problems)}), 400

    config = current_app.config['GAMEDOCK_CONFIG']
    config.update(updates)
    if not save_config(current_app.config['DATA_DIR'], config):
        return jsonify({"status": "error", "message": "Could not write config."}), 500

    # Next rescan picks up new paths and platforms
    settings = ScanSettings.from_config(config)
    library = _library()
    library.scan_timeout = settings.scan_timeout_seconds
    library.scanner = build_scanner(settings)
    return jsonify({"status": "success"})

# ============================================================================
# [7] APPLICATION LIFECYCLE
# ============================================================================

def main() -> int:
    data_dir = initialize_environment()
    config = load_config(data_dir)
    level = getattr(logging, str(config.get('log_level', 'INFO')).upper(), logging.INFO)
    setup_master_logging(data_dir, level)

    app = create_app(data_dir, config)
    library = app.extensions['gamedock_library']

    logger.info("[Engine] Launching initial library scan...")
    threading.Thread(target=scan_library_task, args=(library,), daemon=True).start()

    host, port = config.get('host') or DEFAULT_CONFIG['host'], config.get('port')
    if validate_config({'host': host, 'port': port}):
        logger.warning(f"[Engine] Invalid host/port in config ({host!r}, {port!r}); using defaults.")
        host, port = DEFAULT_CONFIG['host'], DEFAULT_CONFIG['port']
    logger.info(f"[Engine] Starting Flask/Socket.IO on http://{host}:{port}")
    socketio.run(app, host=host, port=port, allow_unsafe_werkzeug=True, use_reloader=False)
    return 0


if __name__ == "__main__":
    sys.exit(main())
