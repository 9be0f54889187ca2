from __future__ import annotations

import json
import time
from pathlib import Path

import pytest

from app import create_app, socketio
from config import DEFAULT_CONFIG
from conftest import RecordingShell, StaticScanner
from game import GamePlatform
from game_scanner import GameScanner
from launcher import LaunchEngine
from library import GameLibrary
from library_db import LibraryStore


@pytest.fixture
def library(tmp_path: Path) -> GameLibrary:
    store = LibraryStore(str(tmp_path / "library.db"))
    scanner = GameScanner([StaticScanner(GamePlatform.STEAM, ["Portal", "Dota 2"])], timeout=5)
    return GameLibrary(store, scanner)


@pytest.fixture
def recording_shell() -> RecordingShell:
    return RecordingShell()


@pytest.fixture
def app(tmp_path: Path, library: GameLibrary, recording_shell: RecordingShell):
    engine = LaunchEngine(
        opener=recording_shell.open,
        spawner=recording_shell.spawn,
        on_played=lambda game, when: library.mark_played(game.id, when),
    )
    app = create_app(str(tmp_path), dict(DEFAULT_CONFIG), library=library, engine=engine)
    app.config['TESTING'] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()


def test_games_listing_and_filters(client, library: GameLibrary) -> None:
    library.rescan()
    library.add_manual("Doom", "C:\\doom.exe")

    all_games = client.get('/api/games').get_json()
    steam = client.get('/api/games?platform=Steam&q=dota').get_json()

    assert sorted(g['title'] for g in all_games) == ["Doom", "Dota 2", "Portal"]
    assert [g['title'] for g in steam] == ["Dota 2"]
    assert steam[0]['platform'] == "Steam"
    assert steam[0]['unique_id'] == "Steam|1"


def test_unknown_platform_is_bad_request(client) -> None:
    response = client.get('/api/games?platform=Origin')

    assert response.status_code == 400
    assert response.get_json()['status'] == "error"


def test_add_toggle_update_delete_manual_game(client, library: GameLibrary) -> None:
    added = client.post('/api/add_game', json={"name": "Doom", "path": "C:\\doom.exe", "args": "-fast"})
    assert added.status_code == 200
    game_id = added.get_json()['game']['id']

    favored = client.post('/api/toggle_favorite', json={"id": game_id}).get_json()
    assert favored['game']['is_favorite'] is True
    assert [g['title'] for g in client.get('/api/games/favorites').get_json()] == ["Doom"]

    updated = client.post('/api/update_game', json={"id": game_id, "name": "Doom II", "category": "Classics"})
    assert updated.get_json()['game']['title'] == "Doom II"
    assert updated.get_json()['game']['category'] == "Classics"

    assert client.post('/api/delete_game', json={"id": game_id}).status_code == 200
    assert library.games() == []


def test_manual_game_validation(client) -> None:
    assert client.post('/api/add_game', json={"name": "", "path": "C:\\x.exe"}).status_code == 400
    assert client.post('/api/update_game', json={"id": "missing", "name": "x"}).status_code == 404
    assert client.post('/api/toggle_favorite', json={"id": "missing"}).status_code == 404
    assert client.post('/api/delete_game', json={}).status_code == 404


def test_store_games_cannot_be_edited_or_deleted(client, library: GameLibrary) -> None:
    library.rescan()
    portal = library.filter(GamePlatform.STEAM, "Portal")[0]

    assert client.post('/api/update_game', json={"id": portal.id, "name": "x"}).status_code == 400
    assert client.post('/api/delete_game', json={"id": portal.id}).status_code == 404


def test_launch_success_records_play_and_broadcasts(app, client, library: GameLibrary,
                                                    recording_shell: RecordingShell) -> None:
    library.rescan()
    portal = library.filter(GamePlatform.STEAM, "Portal")[0]
    sio = socketio.test_client(app)

    response = client.post('/api/launch', json={"id": portal.id})

    assert response.status_code == 200
    assert recording_shell.opened == ["steam://rungameid/0"]
    assert library.get(portal.id).last_played is not None
    assert [g['title'] for g in client.get('/api/games/recent').get_json()] == ["Portal"]
    received = sio.get_received()
    assert [r['name'] for r in received] == ['launch_succeeded']
    assert received[0]['args'][0]['title'] == "Portal"
    sio.disconnect()


def test_launch_failure_is_reported_to_socket_clients(app, client, library: GameLibrary) -> None:
    ghost = library.add_manual("Ghost", "/nowhere/ghost.exe")
    sio = socketio.test_client(app)

    response = client.post('/api/launch', json={"id": ghost.id})

    assert response.status_code == 500
    assert "Executable not found" in response.get_json()['message']
    received = sio.get_received()
    assert [r['name'] for r in received] == ['launch_failed']
    assert received[0]['args'][0]['game']['id'] == ghost.id
    sio.disconnect()


def test_launch_unknown_id(client) -> None:
    assert client.post('/api/launch', json={"id": "nope"}).status_code == 404


def test_refresh_runs_in_background(client, library: GameLibrary) -> None:
    response = client.post('/api/refresh')
    assert response.status_code == 202

    deadline = time.monotonic() + 5
    while not library.games() and time.monotonic() < deadline:
        time.sleep(0.05)
    assert sorted(g.title for g in library.games()) == ["Dota 2", "Portal"]


def test_config_round_trip(client, tmp_path: Path, library: GameLibrary) -> None:
    response = client.post('/api/config', json={"enabled_platforms": ["Epic Games"], "scan_timeout_seconds": 12})

    assert response.status_code == 200
    assert client.get('/api/config').get_json()['enabled_platforms'] == ["Epic Games"]
    with open(tmp_path / "config.json", encoding="utf-8") as f:
        assert json.load(f)['scan_timeout_seconds'] == 12
    assert library.scan_timeout == 12.0
    assert [s.platform for s in library.scanner.scanners] == [GamePlatform.EPIC]


def test_config_update_with_wrong_types_is_rejected(client, tmp_path: Path, library: GameLibrary) -> None:
    scanner_before = library.scanner

    response = client.post('/api/config', json={"port": "abc", "xbox_drives": "D:\\", "scan_timeout_seconds": -1})

    assert response.status_code == 400
    message = response.get_json()['message']
    assert "port" in message and "xbox_drives" in message and "scan_timeout_seconds" in message
    config = client.get('/api/config').get_json()
    assert config['port'] == DEFAULT_CONFIG['port']
    assert config['xbox_drives'] == []
    assert not (tmp_path / "config.json").exists()
    assert library.scanner is scanner_before
