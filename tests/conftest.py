from __future__ import annotations

import json
from pathlib import Path
import sys

import pytest

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

import steam_scanner
import xbox_scanner
from game import Game, GamePlatform
from library_db import LibraryStore


@pytest.fixture(autouse=True)
def no_registry(monkeypatch):
    """Keep tests off the real Windows registry."""
    monkeypatch.setattr(steam_scanner, "registry_install_path", lambda: None)
    monkeypatch.setattr(xbox_scanner, "registry_package_roots", lambda: [])


@pytest.fixture
def store(tmp_path: Path) -> LibraryStore:
    return LibraryStore(str(tmp_path / "library.db"))


def write_app_manifest(steamapps: Path, appid: str, name: str, installdir: str | None = None) -> Path:
    steamapps.mkdir(parents=True, exist_ok=True)
    lines = ['"AppState"', "{", f'\t"appid"\t\t"{appid}"', f'\t"name"\t\t"{name}"']
    if installdir is not None:
        lines.append(f'\t"installdir"\t\t"{installdir}"')
    lines.append("}")
    path = steamapps / f"appmanifest_{appid}.acf"
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


def write_epic_manifest(folder: Path, filename: str, **fields) -> Path:
    folder.mkdir(parents=True, exist_ok=True)
    path = folder / filename
    path.write_text(json.dumps(fields), encoding="utf-8")
    return path


class StaticScanner:
    """Scanner double returning a fresh copy of fixed records on every scan."""

    def __init__(self, platform: GamePlatform, titles):
        self.platform = platform
        self.titles = list(titles)
        self.calls = 0

    def scan(self, cancel=None):
        self.calls += 1
        return [Game(title=t, platform=self.platform, platform_id=str(i)) for i, t in enumerate(self.titles)]


class RecordingShell:
    """Stands in for the OS shell and process spawner."""

    def __init__(self, fail_with: Exception | None = None):
        self.opened = []
        self.spawned = []
        self.fail_with = fail_with

    def open(self, uri):
        if self.fail_with:
            raise self.fail_with
        self.opened.append(uri)

    def spawn(self, command, cwd=None):
        if self.fail_with:
            raise self.fail_with
        self.spawned.append((command, cwd))


@pytest.fixture
def shell() -> RecordingShell:
    return RecordingShell()
