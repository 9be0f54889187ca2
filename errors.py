# errors.py
"""
Failure taxonomy for library scanning and launching.

None of these are allowed to escape a scan or a launch: scanners log them
and contribute nothing, the launch engine turns them into LaunchFailed events.
"""


class GameDockError(Exception):
    """Base class for every error raised inside Game Dock."""


class ScanError(GameDockError):
    """A whole platform source could not be read (missing root, I/O failure)."""

    def __init__(self, platform, message):
        super().__init__(f"[{platform}] {message}")
        self.platform = platform


class ManifestParseError(GameDockError):
    """A single manifest file is malformed; siblings are still processed."""

    def __init__(self, path, message):
        super().__init__(f"{path}: {message}")
        self.path = path


class LaunchError(GameDockError):
    """Missing executable, spawn failure or no viable launch strategy."""
