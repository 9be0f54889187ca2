# launcher.py
import os
import sys
import shlex
import logging
import subprocess
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional, Union

from errors import LaunchError
from game import Game, GamePlatform
from steam_scanner import build_launch_uri as steam_launch_uri

PLAN_URI = "uri"
PLAN_APPS_FOLDER = "apps_folder"
PLAN_PROCESS = "process"


@dataclass(frozen=True)
class LaunchPlan:
    kind: str
    target: str
    arguments: str = ""
    working_directory: str = ""


@dataclass(frozen=True)
class LaunchResult:
    succeeded: bool
    failure_reason: str = ""


@dataclass(frozen=True)
class LaunchSucceeded:
    game: Game


@dataclass(frozen=True)
class LaunchFailed:
    game: Game
    reason: str


# ============================================================================
# Strategy table: each step returns a plan, None to fall through, or raises
# LaunchError to stop the chain with a reason.
# ============================================================================

def _uri_step(game: Game) -> Optional[LaunchPlan]:
    return LaunchPlan(PLAN_URI, game.launch_uri) if game.launch_uri else None


def _steam_appid_step(game: Game) -> Optional[LaunchPlan]:
    return LaunchPlan(PLAN_URI, steam_launch_uri(game.platform_id)) if game.platform_id else None


def _apps_folder_step(game: Game) -> Optional[LaunchPlan]:
    if not game.platform_id:
        return None
    return LaunchPlan(PLAN_APPS_FOLDER, f"shell:AppsFolder\\{game.platform_id}")


def _executable_step(game: Game) -> Optional[LaunchPlan]:
    path = game.executable_path
    if not path or not os.path.isfile(path):
        raise LaunchError(f"Executable not found: {path}")
    return LaunchPlan(PLAN_PROCESS, path, game.launch_arguments or "", game.working_directory)


LAUNCH_CHAINS = {
    GamePlatform.STEAM: (_uri_step, _steam_appid_step, _executable_step),
    GamePlatform.EPIC: (_uri_step, _executable_step),
    # Packages are not directly executable, so no executable fallback
    GamePlatform.XBOX: (_uri_step, _apps_folder_step),
    GamePlatform.MANUAL: (_executable_step,),
}


def resolve_launch_plan(game: Game) -> LaunchPlan:
    """First viable step of the game's platform chain; LaunchError if none."""
    for step in LAUNCH_CHAINS.get(game.platform, (_executable_step,)):
        plan = step(game)
        if plan is not None:
            return plan
    raise LaunchError(f"No launch target available for {game.title} ({game.platform.label})")


# ============================================================================
# OS plumbing
# ============================================================================

def open_uri(uri: str) -> None:
    """Hands a protocol URI to the OS shell."""
    if os.name == 'nt':
        os.startfile(uri)
    elif sys.platform == 'darwin':
        subprocess.Popen(["open", uri])
    else:
        subprocess.Popen(["xdg-open", uri], stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL)


def spawn_process(command: Union[str, List[str]], cwd: Optional[str] = None) -> subprocess.Popen:
    return subprocess.Popen(command, cwd=cwd or None, stdin=subprocess.DEVNULL)


def build_command(executable: str, arguments: str = "") -> Union[str, List[str]]:
    if os.name == 'nt':
        # Windows programs parse their own command line
        command = subprocess.list2cmdline([executable])
        return f"{command} {arguments}" if arguments else command
    return [executable, *shlex.split(arguments)]


class LaunchEngine:
    """
    Starts games without waiting on them and reports every outcome to the
    registered listeners. launch() never raises.
    """

    def __init__(self, logger: Optional[logging.Logger] = None,
                 opener: Callable[[str], None] = open_uri,
                 spawner: Callable = spawn_process,
                 on_played: Optional[Callable[[Game, datetime], None]] = None,
                 clock: Callable[[], datetime] = datetime.now):
        self.logger = logger or logging.getLogger("GameDock_Launcher")
        self.opener = opener
        self.spawner = spawner
        self.on_played = on_played
        self.clock = clock
        self._listeners = []

    def add_listener(self, listener: Callable) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Callable) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def launch(self, game: Game) -> LaunchResult:
        self.logger.info(f"[Launch] Launching game: {game}")
        try:
            plan = resolve_launch_plan(game)
            self._execute(plan)
        except LaunchError as e:
            return self._fail(game, str(e))
        except Exception as e:
            return self._fail(game, f"Failed to launch {game.title}: {e}")

        now = self.clock()
        if self.on_played is not None:
            try:
                self.on_played(game, now)
            except Exception as e:
                self.logger.error(f"[Launch] Could not record last played for {game.title}: {e}")
        else:
            game.last_played = now
        self.logger.info(f"[Launch] Game launched successfully: {game.title}")
        self._emit(LaunchSucceeded(game))
        return LaunchResult(True)

    def _execute(self, plan: LaunchPlan) -> None:
        if plan.kind == PLAN_URI:
            self.opener(plan.target)
        elif plan.kind == PLAN_APPS_FOLDER:
            self.spawner(["explorer.exe", plan.target], None)
        elif plan.kind == PLAN_PROCESS:
            self.spawner(build_command(plan.target, plan.arguments), plan.working_directory)
        else:
            raise LaunchError(f"Unsupported launch plan: {plan.kind}")

    def _fail(self, game: Game, reason: str) -> LaunchResult:
        self.logger.error(f"[Launch] {reason}")
        self._emit(LaunchFailed(game, reason))
        return LaunchResult(False, reason)

    def _emit(self, event) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                self.logger.error(f"[Launch] Listener {listener!r} failed: {e}")
