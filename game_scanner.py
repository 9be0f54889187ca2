# game_scanner.py
import time
import logging
import threading
from typing import List, Optional
from concurrent.futures import Future, ThreadPoolExecutor, TimeoutError as FutureTimeout

from config import ScanSettings
from epic_scanner import EpicScanner
from game import Game, GamePlatform
from steam_scanner import SteamScanner
from xbox_scanner import XboxScanner

CANCEL_POLL_SECONDS = 0.1

# One scanner per store platform; Manual entries are never scanned
SCANNERS = {
    GamePlatform.STEAM: SteamScanner,
    GamePlatform.EPIC: EpicScanner,
    GamePlatform.XBOX: XboxScanner,
}


def build_scanners(settings: ScanSettings, logger: Optional[logging.Logger] = None) -> list:
    scanners = []
    for platform in settings.enabled_platforms:
        factory = SCANNERS.get(platform)
        if factory is None:
            continue
        child = logger.getChild(platform.value) if logger else None
        scanners.append(factory(settings, logger=child))
    return scanners


class GameScanner:
    """
    Runs every platform scanner on its own worker and joins them with a
    per-platform deadline. A platform that raises or overruns contributes
    nothing; results keep the scanner order.
    """

    def __init__(self, scanners: list, timeout: float = 30.0, logger: Optional[logging.Logger] = None):
        self.scanners = list(scanners)
        self.timeout = timeout
        self.logger = logger or logging.getLogger("GameDock_Scanner")

    def find_all_games(self, cancel: Optional[threading.Event] = None) -> List[Game]:
        games = []
        if not self.scanners:
            return games
        self.logger.info("--- STARTING GAME SCAN ---")

        # One stop signal per platform, set on overrun, on rescan cancellation and at the end
        stops = [threading.Event() for _ in self.scanners]
        if cancel is not None and cancel.is_set():
            for stop in stops:
                stop.set()

        executor = ThreadPoolExecutor(max_workers=len(self.scanners), thread_name_prefix="scan")
        try:
            futures = [executor.submit(s.scan, stop) for s, stop in zip(self.scanners, stops)]
            deadline = time.monotonic() + self.timeout
            for scanner, stop, future in zip(self.scanners, stops, futures):
                name = _platform_name(scanner)
                try:
                    games.extend(self._wait_for(future, deadline, cancel, stops))
                except FutureTimeout:
                    stop.set()
                    self.logger.warning(f"[{name}] Scan exceeded {self.timeout:g}s; skipping its results.")
                except Exception as e:
                    self.logger.error(f"[{name}] Scan error: {e}")
        finally:
            for stop in stops:
                stop.set()
            # Never wait on a scanner stuck on an unresponsive drive
            executor.shutdown(wait=False, cancel_futures=True)

        self.logger.info(f"--- SCAN COMPLETE. Found {len(games)} games. ---")
        return games

    @staticmethod
    def _wait_for(future: Future, deadline: float, cancel: Optional[threading.Event],
                  stops: List[threading.Event]) -> List[Game]:
        """Waits for one platform, forwarding a rescan cancellation to every worker."""
        while True:
            remaining = deadline - time.monotonic()
            try:
                return future.result(timeout=max(0.0, min(remaining, CANCEL_POLL_SECONDS)))
            except FutureTimeout:
                if remaining <= 0:
                    raise
                if cancel is not None and cancel.is_set():
                    for stop in stops:
                        stop.set()


def _platform_name(scanner) -> str:
    platform = getattr(scanner, 'platform', None)
    return platform.value if isinstance(platform, GamePlatform) else type(scanner).__name__
