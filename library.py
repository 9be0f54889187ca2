# library.py
import os
import logging
import threading
from datetime import datetime
from typing import List, Optional

from game import Game, GamePlatform
from game_scanner import GameScanner

ALL_PLATFORMS = "All"


class GameLibrary:
    """
    Owns the in-memory catalog.

    Manual entries come from the store and survive every rescan untouched.
    Store entries are replaced wholesale by each rescan; their favorite flag
    and last-played stamp are re-applied from the store's overlay.
    Only methods of this class mutate the catalog, always under `_lock`.
    """

    def __init__(self, store=None, scanner: Optional[GameScanner] = None,
                 logger: Optional[logging.Logger] = None, scan_timeout: float = 30.0):
        self.store = store
        self.scanner = scanner
        self.scan_timeout = scan_timeout
        self.logger = logger or logging.getLogger("GameDock_Library")

        self._lock = threading.RLock()
        self._scan_lock = threading.Lock()
        self._active_cancel: Optional[threading.Event] = None
        self._scanning = False

        self._games: List[Game] = list(store.load_manual_entries()) if store else []
        self.logger.info(f"[Library] Loaded {len(self._games)} manual games.")

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def is_scanning(self) -> bool:
        return self._scanning

    def games(self) -> List[Game]:
        with self._lock:
            return list(self._games)

    def get(self, game_id: str) -> Optional[Game]:
        with self._lock:
            return next((g for g in self._games if g.id == game_id), None)

    def filter(self, platform=ALL_PLATFORMS, search: str = "") -> List[Game]:
        """
        Catalog view restricted to one platform (or "All") and to titles
        containing `search`, favorites first, then by title.
        """
        games = self.games()

        if platform and not (isinstance(platform, str) and platform.strip().lower() == ALL_PLATFORMS.lower()):
            target = GamePlatform.parse(platform)
            games = [g for g in games if g.platform is target]

        query = (search or "").strip().casefold()
        if query:
            games = [g for g in games if query in g.title.casefold()]

        return sorted(games, key=lambda g: (not g.is_favorite, g.title.casefold()))

    def recently_played(self, limit: int = 6) -> List[Game]:
        played = [g for g in self.games() if g.last_played is not None]
        played.sort(key=lambda g: g.last_played, reverse=True)
        return played[:max(0, limit)]

    def favorites(self) -> List[Game]:
        return [g for g in self.games() if g.is_favorite]

    # ------------------------------------------------------------------
    # Scanning
    # ------------------------------------------------------------------

    def rescan(self, scanners=None) -> bool:
        """
        Replaces every non-Manual entry with a fresh scan.
        Starting a rescan cancels the one in flight; overlapping rescans are
        serialized and a superseded one returns False without touching the catalog.
        """
        runner = self.scanner
        if scanners is not None:
            runner = GameScanner(scanners, timeout=self.scan_timeout, logger=self.logger.getChild("scanner"))
        if runner is None:
            self.logger.warning("[Library] No scanners configured.")
            return False

        cancel = threading.Event()
        with self._lock:
            if self._active_cancel is not None:
                self._active_cancel.set()
            self._active_cancel = cancel

        with self._scan_lock:
            if cancel.is_set():
                self.logger.info("[Library] Rescan superseded before it started.")
                return False

            self._scanning = True
            try:
                scanned = [g for g in runner.find_all_games(cancel) if not g.is_manual]
            finally:
                self._scanning = False

            if cancel.is_set():
                self.logger.info("[Library] Rescan superseded; discarding its results.")
                return False

            self._apply_flags(scanned)
            with self._lock:
                manual = [g for g in self._games if g.is_manual]
                self._games = manual + scanned
                if self._active_cancel is cancel:
                    self._active_cancel = None

        self.logger.info(f"[Library] Catalog holds {len(manual)} manual + {len(scanned)} scanned games.")
        return True

    def _apply_flags(self, games: List[Game]) -> None:
        if not self.store:
            return
        flags = self.store.load_flags()
        for g in games:
            saved = flags.get(g.unique_id)
            if saved:
                g.is_favorite = saved['favorite']
                g.last_played = saved['last_played']

    # ------------------------------------------------------------------
    # User edits
    # ------------------------------------------------------------------

    def add_manual(self, title: str, executable_path: str, arguments: str = "") -> Game:
        if not title or not title.strip():
            raise ValueError("Game title is required.")
        if not executable_path or not executable_path.strip():
            raise ValueError("Executable path is required.")

        executable_path = executable_path.strip()
        game = Game(
            title=title,
            platform=GamePlatform.MANUAL,
            executable_path=executable_path,
            install_directory=os.path.dirname(executable_path),
            launch_arguments=arguments or "",
            is_installed=os.path.isfile(executable_path),
        )
        with self._lock:
            self._games.append(game)
            self._persist_manual()
        self.logger.info(f"[Library] Manually registered: {game.title}")
        return game

    def update_manual(self, game_id: str, title: Optional[str] = None, executable_path: Optional[str] = None,
                      launch_arguments: Optional[str] = None, category: Optional[str] = None) -> Optional[Game]:
        with self._lock:
            game = self.get(game_id)
            if game is None:
                return None
            if not game.is_manual:
                raise ValueError("Only manually added games can be edited.")
            if title is not None:
                if not title.strip():
                    raise ValueError("Game title is required.")
                game.title = title.strip()
            if executable_path is not None:
                if not executable_path.strip():
                    raise ValueError("Executable path is required.")
                game.executable_path = executable_path.strip()
                game.install_directory = os.path.dirname(game.executable_path)
                game.is_installed = os.path.isfile(game.executable_path)
            if launch_arguments is not None:
                game.launch_arguments = launch_arguments
            if category is not None:
                game.category = category.strip() or game.category
            self._persist_manual()
        self.logger.info(f"[Library] Updated manual game: {game.title}")
        return game

    def remove_manual(self, game_id: str) -> bool:
        with self._lock:
            game = self.get(game_id)
            if game is None or not game.is_manual:
                return False
            self._games.remove(game)
            self._persist_manual()
        self.logger.info(f"[Library] Removed manual game: {game.title}")
        return True

    def toggle_favorite(self, game_id: str) -> Optional[Game]:
        with self._lock:
            game = self.get(game_id)
            if game is None:
                return None
            game.is_favorite = not game.is_favorite
            self._persist(game)
        return game

    def mark_played(self, game_id: str, when: Optional[datetime] = None) -> Optional[Game]:
        with self._lock:
            game = self.get(game_id)
            if game is None:
                return None
            game.last_played = when or datetime.now()
            self._persist(game)
        return game

    # ------------------------------------------------------------------
    # Persistence (caller holds _lock)
    # ------------------------------------------------------------------

    def _persist(self, game: Game) -> None:
        if game.is_manual:
            self._persist_manual()
        elif self.store:
            self.store.save_flags(game)

    def _persist_manual(self) -> None:
        if self.store:
            self.store.save_manual_entries([g for g in self._games if g.is_manual])
