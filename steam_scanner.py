# steam_scanner.py
import os
import re
import logging
import threading
from typing import Dict, List, Optional

import vdf

try:
    import winreg
except ImportError:  # not on Windows
    winreg = None

from config import ScanSettings
from errors import ManifestParseError
from game import Game, GamePlatform

STEAM_REGISTRY_KEY = r"SOFTWARE\WOW6432Node\Valve\Steam"
MANIFEST_RE = re.compile(r"^appmanifest_(\d+)\.acf$", re.IGNORECASE)
LIBRARY_PATH_RE = re.compile(r'"path"\s+"([^"]+)"', re.IGNORECASE)

# Steamworks redistributables, compatibility tools, runtimes
STEAM_DENY_LIST = ("Redistributable", "Proton", "Steam Linux Runtime")

MANIFEST_KEYS = ("appid", "name", "installdir")


def default_steam_path() -> str:
    program_files = os.environ.get('ProgramFiles(x86)', r"C:\Program Files (x86)")
    return os.path.join(program_files, "Steam")


def registry_install_path() -> Optional[str]:
    """HKLM InstallPath written by the Steam installer, if any."""
    if winreg is None:
        return None
    try:
        with winreg.OpenKey(winreg.HKEY_LOCAL_MACHINE, STEAM_REGISTRY_KEY) as hkey:
            value = winreg.QueryValueEx(hkey, "InstallPath")[0]
            return value if isinstance(value, str) else None
    except OSError:
        return None


def build_launch_uri(appid: str) -> str:
    return f"steam://rungameid/{appid}"


def is_denied(title: str) -> bool:
    lowered = title.lower()
    return any(word.lower() in lowered for word in STEAM_DENY_LIST)


def _ci_get(data: Dict, key: str):
    for k, v in data.items():
        if isinstance(k, str) and k.lower() == key.lower():
            return v
    return None


def _regex_value(content: str, key: str) -> Optional[str]:
    match = re.search(rf'"{re.escape(key)}"\s+"([^"]+)"', content, re.IGNORECASE)
    return match.group(1) if match else None


def parse_library_folders(content: str) -> List[str]:
    """
    Extracts every library path from a libraryfolders.vdf body.
    Handles both the nested {"path": ...} layout and the legacy "1" "D:\\Lib" one;
    falls back to raw "path" matching when the file is not well-formed.
    """
    try:
        data = vdf.loads(content)
    except (SyntaxError, ValueError):
        return [m.replace("\\\\", "\\") for m in LIBRARY_PATH_RE.findall(content)]

    paths = []
    root = _ci_get(data, 'libraryfolders')
    if not isinstance(root, dict):
        root = data
    for key, value in root.items():
        if isinstance(value, dict):
            path = _ci_get(value, 'path')
            if isinstance(path, str) and path:
                paths.append(path)
        elif isinstance(value, str) and str(key).isdigit() and value:
            paths.append(value)
    return paths


def parse_app_manifest(content: str) -> Dict[str, str]:
    """
    Returns whichever of appid / name / installdir can be recovered.
    Keys missing from the parsed tree are looked up with a quoted-pair match.
    """
    source = {}
    try:
        data = vdf.loads(content)
        state = _ci_get(data, 'AppState')
        source = state if isinstance(state, dict) else data
    except (SyntaxError, ValueError):
        pass

    fields = {}
    for key in MANIFEST_KEYS:
        value = _ci_get(source, key)
        if not isinstance(value, str) or not value.strip():
            value = _regex_value(content, key)
        if value and value.strip():
            fields[key] = value.strip()
    return fields


class SteamScanner:
    platform = GamePlatform.STEAM

    def __init__(self, settings: Optional[ScanSettings] = None, logger: Optional[logging.Logger] = None):
        self.settings = settings or ScanSettings()
        self.logger = logger or logging.getLogger("GameDock_Steam")
        self._icon_roots = None

    def scan(self, cancel: Optional[threading.Event] = None) -> List[Game]:
        games = []
        try:
            self._icon_roots = self.client_paths()
            for library in self.library_paths():
                if cancel is not None and cancel.is_set():
                    self.logger.info("[Steam] Scan cancelled.")
                    break
                games.extend(self._scan_library(library, cancel))
        except OSError as e:
            self.logger.error(f"[Steam] Library scan failed: {e}")
        self.logger.info(f"[Steam] Scanner found {len(games)} games.")
        return games

    # --- Library discovery ---

    def client_paths(self) -> List[str]:
        """Steam client installs: configured/default path, then the registry one."""
        candidates = [self.settings.steam_path or default_steam_path(), registry_install_path()]
        return self._unique_dirs(candidates)

    def library_paths(self) -> List[str]:
        paths = []
        clients = self.client_paths()
        paths.extend(clients)

        for client in clients:
            vdf_path = os.path.join(client, "steamapps", "libraryfolders.vdf")
            if not os.path.isfile(vdf_path):
                continue
            try:
                with open(vdf_path, 'r', encoding='utf-8', errors='ignore') as f:
                    paths.extend(parse_library_folders(f.read()))
            except OSError as e:
                self.logger.error(f"[Steam] Failed to read {vdf_path}: {e}")

        paths.extend(self.settings.scan_paths)
        return self._unique_dirs(paths)

    @staticmethod
    def _unique_dirs(candidates) -> List[str]:
        seen = set()
        result = []
        for path in candidates:
            if not path or not os.path.isdir(path):
                continue
            key = os.path.normcase(os.path.normpath(path))
            if key in seen:
                continue
            seen.add(key)
            result.append(path)
        return result

    # --- Manifests ---

    def _scan_library(self, library: str, cancel: Optional[threading.Event]) -> List[Game]:
        games = []
        steamapps = os.path.join(library, "steamapps")
        if not os.path.isdir(steamapps):
            return games

        try:
            entries = sorted(os.listdir(steamapps))
        except PermissionError:
            self.logger.warning(f"[Steam] Cannot access {steamapps} (access denied).")
            return games

        for name in entries:
            if cancel is not None and cancel.is_set():
                break
            if not MANIFEST_RE.match(name):
                continue
            manifest = os.path.join(steamapps, name)
            try:
                game = self.parse_manifest(manifest, steamapps)
            except ManifestParseError as e:
                self.logger.error(f"[Steam] Failed to parse manifest: {e}")
                continue
            if game is not None:
                games.append(game)
        return games

    def parse_manifest(self, manifest_path: str, steamapps: str) -> Optional[Game]:
        try:
            with open(manifest_path, 'r', encoding='utf-8', errors='ignore') as f:
                content = f.read()
        except OSError as e:
            raise ManifestParseError(manifest_path, str(e)) from e

        fields = parse_app_manifest(content)
        appid, name = fields.get('appid'), fields.get('name')
        if not appid or not name:
            self.logger.debug(f"[Steam] Skipping {manifest_path}: appid/name missing.")
            return None
        if is_denied(name):
            return None

        game_dir = os.path.join(steamapps, "common", fields.get('installdir') or name)
        return Game(
            title=name,
            platform=GamePlatform.STEAM,
            platform_id=appid,
            install_directory=game_dir,
            launch_uri=build_launch_uri(appid),
            is_installed=os.path.isdir(game_dir),
            icon_path=self.icon_path(appid),
        )

    def icon_path(self, appid: str) -> str:
        """Best-effort lookup in the client's library artwork cache."""
        try:
            roots = self._icon_roots if self._icon_roots is not None else self.client_paths()
            for client in roots:
                cache = os.path.join(client, "appcache", "librarycache")
                for candidate in (
                    os.path.join(cache, f"{appid}_header.jpg"),
                    os.path.join(cache, f"{appid}_icon.jpg"),
                    os.path.join(cache, appid, "header.jpg"),
                ):
                    if os.path.isfile(candidate):
                        return candidate
        except OSError:
            pass
        return ""
