# xbox_scanner.py
import os
import re
import logging
import threading
from typing import List, Optional

import psutil

try:
    import winreg
except ImportError:  # not on Windows
    winreg = None

from config import ScanSettings
from game import Game, GamePlatform

XBOX_GAMES_DIR = "XboxGames"
WINDOWS_APPS_DIR = os.path.join("Program Files", "WindowsApps")
PACKAGE_REPOSITORY_KEY = r"SOFTWARE\Microsoft\GamingServices\PackageRepository\Package"

# Known gaming publisher fragments in WindowsApps package folder names
GAMING_PUBLISHERS = (
    "Microsoft.Xbox", "BethesdaSoftworks", "ElectronicArts",
    "Ubisoft", "SquareEnix", "CAPCOM", "Bandai",
    "505Games", "DeepSilver", "FocusHome",
    "PlaydaysStudios", "RiotGames", "Playground",
)

# Xbox system components that match "Microsoft.Xbox" but are not games
SYSTEM_PACKAGES = (
    "Microsoft.XboxGamingOverlay", "Microsoft.XboxGameOverlay",
    "Microsoft.XboxIdentityProvider", "Microsoft.XboxSpeechToTextOverlay",
    "Microsoft.Xbox.TCUI", "Microsoft.XboxApp", "Microsoft.XboxGameCallableUI",
    "Microsoft.GamingApp", "Microsoft.GamingServices",
)

_CAPITAL_RE = re.compile(r"\B([A-Z])")


def package_title(folder_name: str) -> str:
    """
    Best-effort human title for a package folder name, e.g.
    'BethesdaSoftworks.Starfield_1.7.0.0_x64__3275kfvn8vcwc' -> 'Starfield'.
    """
    name = folder_name.split('_', 1)[0]
    dot = name.rfind('.')
    if 0 <= dot < len(name) - 1:
        name = name[dot + 1:]
    return _CAPITAL_RE.sub(r" \1", name).strip()


def is_system_package(folder_name: str) -> bool:
    lowered = folder_name.lower()
    return any(lowered.startswith(p.lower()) for p in SYSTEM_PACKAGES)


def is_gaming_package(folder_name: str) -> bool:
    if is_system_package(folder_name):
        return False
    lowered = folder_name.lower()
    return any(p.lower() in lowered for p in GAMING_PUBLISHERS)


def build_launch_uri(folder_name: str) -> str:
    return f"ms-xbl-{folder_name.lower().replace(' ', '')}://"


def fixed_drives() -> List[str]:
    """Root paths of fixed, ready local drives (Windows only)."""
    if os.name != 'nt':
        return []
    drives = []
    for part in psutil.disk_partitions(all=False):
        opts = part.opts.split(',')
        if 'fixed' in opts and 'cdrom' not in opts:
            drives.append(part.mountpoint)
    return drives


def registry_package_roots() -> List[str]:
    """'Root' values under the GamingServices package repository."""
    roots = []
    if winreg is None:
        return roots
    try:
        with winreg.OpenKey(winreg.HKEY_LOCAL_MACHINE, PACKAGE_REPOSITORY_KEY) as key:
            subkey_count = winreg.QueryInfoKey(key)[0]
            for i in range(subkey_count):
                try:
                    name = winreg.EnumKey(key, i)
                    with winreg.OpenKey(key, name) as sub:
                        root = winreg.QueryValueEx(sub, "Root")[0]
                except OSError:
                    continue
                if isinstance(root, str) and root:
                    roots.append(root)
    except OSError:
        pass
    return roots


class XboxScanner:
    platform = GamePlatform.XBOX

    def __init__(self, settings: Optional[ScanSettings] = None, logger: Optional[logging.Logger] = None):
        self.settings = settings or ScanSettings()
        self.logger = logger or logging.getLogger("GameDock_Xbox")

    def drives(self) -> List[str]:
        return list(self.settings.xbox_drives) or fixed_drives()

    def scan(self, cancel: Optional[threading.Event] = None) -> List[Game]:
        games = []
        try:
            drives = self.drives()
        except OSError as e:
            self.logger.error(f"[Xbox] Drive enumeration failed: {e}")
            drives = []

        for drive in drives:
            if cancel is not None and cancel.is_set():
                self.logger.info("[Xbox] Scan cancelled.")
                return dedupe_by_title(games)
            games.extend(self.scan_xbox_games_dir(drive))
        for drive in drives:
            if cancel is not None and cancel.is_set():
                self.logger.info("[Xbox] Scan cancelled.")
                return dedupe_by_title(games)
            games.extend(self.scan_windows_apps(drive))
        games.extend(self.scan_registry())

        games = dedupe_by_title(games)
        self.logger.info(f"[Xbox] Scanner found {len(games)} games.")
        return games

    # --- Strategy 1: <drive>/XboxGames/<Title>/Content ---

    def scan_xbox_games_dir(self, drive: str) -> List[Game]:
        games = []
        xbox_dir = os.path.join(drive, XBOX_GAMES_DIR)
        if not os.path.isdir(xbox_dir):
            return games
        try:
            for entry in sorted(os.listdir(xbox_dir)):
                game_dir = os.path.join(xbox_dir, entry)
                if not os.path.isdir(os.path.join(game_dir, "Content")):
                    continue
                games.append(Game(
                    title=entry,
                    platform=GamePlatform.XBOX,
                    install_directory=game_dir,
                    is_installed=True,
                    launch_uri=build_launch_uri(entry),
                ))
        except PermissionError:
            self.logger.warning(f"[Xbox] Cannot access Xbox games directory: {xbox_dir}")
        except OSError as e:
            self.logger.error(f"[Xbox] Error scanning {xbox_dir}: {e}")
        return games

    # --- Strategy 2: WindowsApps package folders ---

    def scan_windows_apps(self, drive: str) -> List[Game]:
        games = []
        apps_dir = os.path.join(drive, WINDOWS_APPS_DIR)
        if not os.path.isdir(apps_dir):
            return games
        try:
            for folder_name in sorted(os.listdir(apps_dir)):
                if not is_gaming_package(folder_name):
                    continue
                package_dir = os.path.join(apps_dir, folder_name)
                if not os.path.isdir(package_dir):
                    continue
                title = package_title(folder_name)
                if not title:
                    continue
                games.append(Game(
                    title=title,
                    platform=GamePlatform.XBOX,
                    platform_id=folder_name,
                    install_directory=package_dir,
                    is_installed=True,
                ))
        except PermissionError:
            # WindowsApps is normally restricted to TrustedInstaller
            self.logger.warning(f"[Xbox] Cannot access {apps_dir} (access denied).")
        except OSError as e:
            self.logger.error(f"[Xbox] Error scanning WindowsApps: {e}")
        return games

    # --- Strategy 3: GamingServices package repository ---

    def scan_registry(self) -> List[Game]:
        games = []
        try:
            roots = registry_package_roots()
        except OSError as e:
            self.logger.error(f"[Xbox] Failed to scan registry: {e}")
            return games

        for root in roots:
            if not os.path.isdir(root):
                continue
            folder_name = os.path.basename(os.path.normpath(root))
            if is_system_package(folder_name):
                continue
            title = package_title(folder_name)
            if not title:
                continue
            games.append(Game(
                title=title,
                platform=GamePlatform.XBOX,
                install_directory=root,
                is_installed=True,
            ))
        return games


def dedupe_by_title(games: List[Game]) -> List[Game]:
    """Keeps the first game per case-insensitive title."""
    seen = set()
    unique = []
    for game in games:
        key = game.title.casefold()
        if key in seen:
            continue
        seen.add(key)
        unique.append(game)
    return unique
