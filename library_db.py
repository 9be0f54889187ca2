# library_db.py
import sqlite3
import logging
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from game import DEFAULT_CATEGORY, Game, GamePlatform

DATABASE_SCHEMA_VERSION = 1


def _timestamp(value: Optional[datetime]) -> float:
    return value.timestamp() if value else 0


def _datetime(value) -> Optional[datetime]:
    return datetime.fromtimestamp(value) if value else None


class LibraryStore:
    """
    Persistence boundary for user-owned library data.

    manual_games holds every Manual entry in full. game_flags keeps the
    favorite flag and last-played stamp of store entries keyed by
    Game.unique_id, so they can be re-applied after a rescan replaces them.
    Errors are logged and turned into neutral return values.
    """

    def __init__(self, db_path: str, logger: Optional[logging.Logger] = None):
        self.db_path = db_path
        self.logger = logger or logging.getLogger("GameDock_Database")
        self.init_db()

    def get_db_connection(self) -> Optional[sqlite3.Connection]:
        try:
            conn = sqlite3.connect(self.db_path, check_same_thread=False)
            conn.execute("PRAGMA journal_mode=WAL;")
            conn.row_factory = sqlite3.Row
            return conn
        except sqlite3.Error as e:
            self.logger.error(f"[Database] Connection Error: {e}")
            return None

    def init_db(self) -> None:
        conn = self.get_db_connection()
        if not conn:
            return
        try:
            cursor = conn.cursor()
            cursor.execute('''CREATE TABLE IF NOT EXISTS manual_games (
                    id TEXT PRIMARY KEY,
                    position INTEGER DEFAULT 0,
                    title TEXT NOT NULL,
                    executable_path TEXT DEFAULT '',
                    install_directory TEXT DEFAULT '',
                    launch_arguments TEXT DEFAULT '',
                    favorite BOOLEAN DEFAULT 0,
                    installed BOOLEAN DEFAULT 1,
                    last_played REAL DEFAULT 0,
                    icon_path TEXT DEFAULT '',
                    category TEXT DEFAULT 'Uncategorized',
                    playtime_seconds INTEGER DEFAULT 0
                )''')
            cursor.execute('''CREATE TABLE IF NOT EXISTS game_flags (
                    unique_id TEXT PRIMARY KEY,
                    favorite BOOLEAN DEFAULT 0,
                    last_played REAL DEFAULT 0
                )''')
            cursor.execute('CREATE TABLE IF NOT EXISTS meta (version INTEGER)')
            conn.commit()
            self._record_schema_version(conn)
        except sqlite3.Error as e:
            self.logger.error(f"[Database] Schema initialization failed: {e}")
        finally:
            conn.close()

    def _record_schema_version(self, conn: sqlite3.Connection) -> None:
        row = conn.execute('SELECT version FROM meta').fetchone()
        if row is None:
            conn.execute('INSERT INTO meta (version) VALUES (?)', (DATABASE_SCHEMA_VERSION,))
            conn.commit()
        elif row['version'] != DATABASE_SCHEMA_VERSION:
            self.logger.warning(
                f"[Database] Schema version {row['version']} found, expected {DATABASE_SCHEMA_VERSION}."
            )

    # --- Manual entries ---

    def load_manual_entries(self) -> List[Game]:
        conn = self.get_db_connection()
        if not conn:
            return []
        try:
            rows = conn.execute("SELECT * FROM manual_games ORDER BY position").fetchall()
        except sqlite3.Error as e:
            self.logger.error(f"[Database] Failed to load manual games: {e}")
            return []
        finally:
            conn.close()

        games = []
        for r in rows:
            data = dict(r)
            data['platform'] = GamePlatform.MANUAL
            data['is_favorite'] = bool(data.pop('favorite'))
            data['is_installed'] = bool(data.pop('installed'))
            data['category'] = data.get('category') or DEFAULT_CATEGORY
            games.append(Game.from_dict(data))
        self.logger.debug(f"[Database] Loaded {len(games)} manual games.")
        return games

    def save_manual_entries(self, games: Iterable[Game]) -> bool:
        """Replaces the stored manual list with `games`, in order."""
        rows = [
            (g.id, i, g.title, g.executable_path, g.install_directory, g.launch_arguments,
             g.icon_path, g.category, int(g.is_favorite), int(g.is_installed),
             _timestamp(g.last_played), g.playtime_seconds)
            for i, g in enumerate(games) if g.is_manual
        ]
        conn = self.get_db_connection()
        if not conn:
            return False
        try:
            conn.execute("DELETE FROM manual_games")
            conn.executemany('''
                INSERT INTO manual_games (
                    id, position, title, executable_path, install_directory, launch_arguments,
                    icon_path, category, favorite, installed, last_played, playtime_seconds
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ''', rows)
            conn.commit()
            return True
        except sqlite3.Error as e:
            conn.rollback()
            self.logger.error(f"[Database] Failed to save manual games: {e}")
            return False
        finally:
            conn.close()

    # --- Store entry overlay ---

    def load_flags(self) -> Dict[str, dict]:
        conn = self.get_db_connection()
        if not conn:
            return {}
        try:
            rows = conn.execute("SELECT * FROM game_flags").fetchall()
        except sqlite3.Error as e:
            self.logger.error(f"[Database] Failed to load game flags: {e}")
            return {}
        finally:
            conn.close()
        return {
            r['unique_id']: {'favorite': bool(r['favorite']), 'last_played': _datetime(r['last_played'])}
            for r in rows
        }

    def save_flags(self, game: Game) -> bool:
        conn = self.get_db_connection()
        if not conn:
            return False
        try:
            conn.execute('''
                INSERT INTO game_flags (unique_id, favorite, last_played)
                VALUES (?, ?, ?)
                ON CONFLICT(unique_id) DO UPDATE SET
                    favorite = excluded.favorite,
                    last_played = excluded.last_played
            ''', (game.unique_id, int(game.is_favorite), _timestamp(game.last_played)))
            conn.commit()
            return True
        except sqlite3.Error as e:
            self.logger.error(f"[Database] Failed to save flags for {game.title}: {e}")
            return False
        finally:
            conn.close()
