# config.py
import os
import sys
import json
import logging
import logging.handlers
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from game import GamePlatform

logger = logging.getLogger("GameDock_Config")

# ============================================================================
# [1] DIRECTORY & PATHING CONFIGURATION
# ============================================================================

def get_data_dir() -> str:
    """
    Resolves the persistent storage directory.
    GAMEDOCK_HOME wins, then LocalAppData on Windows, then the home folder.
    """
    override = os.environ.get('GAMEDOCK_HOME')
    if override:
        return override
    if os.name == 'nt' and os.getenv('LOCALAPPDATA'):
        return os.path.join(os.getenv('LOCALAPPDATA'), 'Game Dock')
    return os.path.expanduser('~/Game Dock')


def initialize_environment(data_dir: Optional[str] = None) -> str:
    """Ensures the data directory exists so logs and databases have a home."""
    path = data_dir or get_data_dir()
    os.makedirs(path, exist_ok=True)
    return path


def config_file(data_dir: str) -> str:
    return os.path.join(data_dir, 'config.json')


def database_file(data_dir: str) -> str:
    return os.path.join(data_dir, 'library.db')


def log_file(data_dir: str) -> str:
    return os.path.join(data_dir, 'logs', 'gamedock.log')


DEFAULT_CONFIG = {
    "steam_path": "",
    "epic_manifests_path": "",
    "xbox_drives": [],
    "scan_paths": [],
    "enabled_platforms": [GamePlatform.STEAM.value, GamePlatform.EPIC.value, GamePlatform.XBOX.value],
    "scan_timeout_seconds": 30,
    "host": "127.0.0.1",
    "port": 5000,
    "log_level": "INFO",
}

# ============================================================================
# [2] LOGGING INFRASTRUCTURE
# ============================================================================

LOG_FORMAT = '%(asctime)s - [%(levelname)s] - %(name)s - %(message)s'


def setup_master_logging(data_dir: str, level=logging.INFO) -> None:
    """
    Configures the global logging system.
    Daily rotated log file (seven days kept) plus the standard output stream.
    """
    path = log_file(data_dir)
    os.makedirs(os.path.dirname(path), exist_ok=True)

    file_handler = logging.handlers.TimedRotatingFileHandler(
        path, when='midnight', backupCount=7, encoding='utf-8'
    )
    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        handlers=[file_handler, logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # Silence third-party noise
    logging.getLogger('werkzeug').setLevel(logging.ERROR)
    logging.getLogger('engineio').setLevel(logging.ERROR)
    logging.getLogger('socketio').setLevel(logging.ERROR)

# ============================================================================
# [3] CONFIGURATION FILE
# ============================================================================

def load_config(data_dir: str) -> Dict:
    """
    Loads the global application state from the config JSON.
    Missing keys are filled from DEFAULT_CONFIG; a missing file is created.
    """
    path = config_file(data_dir)
    config = dict(DEFAULT_CONFIG)
    try:
        if os.path.exists(path):
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
            if isinstance(data, dict):
                config.update(data)
            else:
                logger.error(f"[Config] Ignoring non-object config in {path}")
        else:
            save_config(data_dir, config)
    except (OSError, ValueError) as e:
        logger.error(f"[Config] Failure reading config: {e}")
    return config


def save_config(data_dir: str, config: Dict) -> bool:
    """Writes the global application state to disk."""
    try:
        os.makedirs(data_dir, exist_ok=True)
        with open(config_file(data_dir), 'w', encoding='utf-8') as f:
            json.dump(config, f, indent=4)
        return True
    except OSError as e:
        logger.error(f"[Config] Failure writing config: {e}")
        return False


def validate_config(values: Dict) -> List[str]:
    """
    Problems with a config update, one message per offending key.
    Known keys must keep the JSON type of their default; unknown keys pass through.
    """
    problems = []
    for key, value in values.items():
        if key not in DEFAULT_CONFIG:
            continue
        default = DEFAULT_CONFIG[key]
        if isinstance(default, list):
            if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
                problems.append(f"{key} must be a list of strings")
        elif isinstance(default, str):
            if not isinstance(value, str):
                problems.append(f"{key} must be a string")
        elif isinstance(value, bool) or not isinstance(value, (int, float)):
            problems.append(f"{key} must be a number")
        elif key == 'port' and (not isinstance(value, int) or not 0 < value < 65536):
            problems.append("port must be an integer between 1 and 65535")
        elif value <= 0:
            problems.append(f"{key} must be positive")

    platforms = values.get('enabled_platforms')
    for value in platforms if isinstance(platforms, list) else []:
        try:
            GamePlatform.parse(value)
        except ValueError:
            problems.append(f"enabled_platforms has unknown platform {value!r}")
    return problems


def _string_list(config: Dict, key: str) -> List[str]:
    value = config.get(key) or []
    if not isinstance(value, list):
        logger.warning(f"[Config] Ignoring {key}: expected a list, got {value!r}")
        return []
    return [v for v in value if isinstance(v, str) and v]


def _string(config: Dict, key: str) -> str:
    value = config.get(key)
    return value if isinstance(value, str) else ""


@dataclass
class ScanSettings:
    """Typed view of the scanner-related config keys."""
    steam_path: str = ""
    epic_manifests_path: str = ""
    xbox_drives: List[str] = field(default_factory=list)
    scan_paths: List[str] = field(default_factory=list)
    enabled_platforms: List[GamePlatform] = field(
        default_factory=lambda: [GamePlatform.STEAM, GamePlatform.EPIC, GamePlatform.XBOX]
    )
    scan_timeout_seconds: float = 30.0

    @classmethod
    def from_config(cls, config: Dict) -> 'ScanSettings':
        platforms = []
        for value in _string_list(config, 'enabled_platforms'):
            try:
                platform = GamePlatform.parse(value)
            except ValueError:
                logger.warning(f"[Config] Unknown platform in enabled_platforms: {value!r}")
                continue
            if platform is not GamePlatform.MANUAL:
                platforms.append(platform)

        default_timeout = float(DEFAULT_CONFIG['scan_timeout_seconds'])
        try:
            timeout = float(config.get('scan_timeout_seconds') or default_timeout)
        except (TypeError, ValueError):
            timeout = default_timeout
        if timeout <= 0:
            logger.warning(f"[Config] scan_timeout_seconds must be positive; using {default_timeout:g}")
            timeout = default_timeout

        return cls(
            steam_path=_string(config, 'steam_path'),
            epic_manifests_path=_string(config, 'epic_manifests_path'),
            xbox_drives=_string_list(config, 'xbox_drives'),
            scan_paths=_string_list(config, 'scan_paths'),
            enabled_platforms=platforms,
            scan_timeout_seconds=timeout,
        )
