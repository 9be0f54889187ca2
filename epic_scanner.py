# epic_scanner.py
import os
import json
import logging
import threading
from typing import List, Optional

from config import ScanSettings
from errors import ManifestParseError, ScanError
from game import Game, GamePlatform

MANIFEST_EXTENSION = ".item"

# Engine installs and runtimes that the launcher also writes manifests for
EPIC_DENY_LIST = ("Unreal Engine", "DirectX")


def default_manifests_path() -> str:
    program_data = os.environ.get('ProgramData', r'C:\ProgramData')
    return os.path.join(program_data, 'Epic', 'EpicGamesLauncher', 'Data', 'Manifests')


def build_launch_uri(app_name: str) -> str:
    return f"com.epicgames.launcher://apps/{app_name}?action=launch&silent=true"


def is_denied(title: str) -> bool:
    lowered = title.lower()
    return any(word.lower() in lowered for word in EPIC_DENY_LIST)


def _string_prop(data: dict, key: str) -> str:
    value = data.get(key)
    return value if isinstance(value, str) else ""


class EpicScanner:
    platform = GamePlatform.EPIC

    def __init__(self, settings: Optional[ScanSettings] = None, logger: Optional[logging.Logger] = None):
        self.settings = settings or ScanSettings()
        self.logger = logger or logging.getLogger("GameDock_Epic")

    @property
    def manifests_path(self) -> str:
        return self.settings.epic_manifests_path or default_manifests_path()

    def scan(self, cancel: Optional[threading.Event] = None) -> List[Game]:
        games = []
        path = self.manifests_path
        if not os.path.isdir(path):
            self.logger.info("[Epic] Manifests directory not found.")
            return games

        try:
            files = self.manifest_files(path)
        except ScanError as e:
            self.logger.error(f"Library scan failed: {e}")
            return games

        for name in files:
            if cancel is not None and cancel.is_set():
                self.logger.info("[Epic] Scan cancelled.")
                break
            manifest = os.path.join(path, name)
            try:
                game = self.parse_manifest(manifest)
            except ManifestParseError as e:
                self.logger.error(f"[Epic] Failed to parse manifest: {e}")
                continue
            if game is not None:
                games.append(game)

        self.logger.info(f"[Epic] Scanner found {len(games)} games.")
        return games

    def manifest_files(self, path: str) -> List[str]:
        try:
            return sorted(f for f in os.listdir(path) if f.lower().endswith(MANIFEST_EXTENSION))
        except OSError as e:
            raise ScanError(self.platform.value, f"cannot list {path}: {e}") from e

    def parse_manifest(self, manifest_path: str) -> Optional[Game]:
        try:
            with open(manifest_path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise ManifestParseError(manifest_path, str(e)) from e
        if not isinstance(data, dict):
            raise ManifestParseError(manifest_path, "manifest root is not an object")

        display_name = _string_prop(data, 'DisplayName').strip()
        install_location = _string_prop(data, 'InstallLocation')
        launch_executable = _string_prop(data, 'LaunchExecutable')
        app_name = _string_prop(data, 'AppName')

        if not display_name or is_denied(display_name):
            return None

        exe_path = ""
        if install_location and launch_executable:
            exe_path = os.path.join(install_location, launch_executable)

        return Game(
            title=display_name,
            platform=GamePlatform.EPIC,
            platform_id=_string_prop(data, 'CatalogItemId'),
            install_directory=install_location,
            executable_path=exe_path,
            launch_uri=build_launch_uri(app_name) if app_name else "",
            is_installed=bool(install_location) and os.path.isdir(install_location),
        )
