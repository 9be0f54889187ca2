# game.py
import os
import uuid
from datetime import datetime
from enum import Enum
from typing import Optional
from dataclasses import dataclass, field, fields, asdict


class GamePlatform(Enum):
    STEAM = "Steam"
    EPIC = "EpicGames"
    XBOX = "XboxGamePass"
    MANUAL = "Manual"

    @property
    def label(self) -> str:
        return PLATFORM_LABELS[self]

    @classmethod
    def parse(cls, value) -> 'GamePlatform':
        """Accepts an enum member, its value ('EpicGames') or its label ('Epic Games')."""
        if isinstance(value, cls):
            return value
        text = str(value or "").strip().lower().replace(" ", "")
        for member in cls:
            if text in (member.value.lower(), member.label.lower().replace(" ", ""), member.name.lower()):
                return member
        raise ValueError(f"Unknown platform: {value!r}")


PLATFORM_LABELS = {
    GamePlatform.STEAM: "Steam",
    GamePlatform.EPIC: "Epic Games",
    GamePlatform.XBOX: "Xbox Game Pass",
    GamePlatform.MANUAL: "Manual",
}

DEFAULT_CATEGORY = "Uncategorized"


def new_game_id() -> str:
    return uuid.uuid4().hex


@dataclass
class Game:
    title: str
    platform: GamePlatform = GamePlatform.MANUAL
    executable_path: str = ""
    install_directory: str = ""
    platform_id: str = ""
    launch_uri: str = ""
    launch_arguments: str = ""
    icon_path: str = ""

    # --- User Data ---
    is_installed: bool = True
    is_favorite: bool = False
    last_played: Optional[datetime] = None
    playtime_seconds: int = 0
    category: str = DEFAULT_CATEGORY

    id: str = field(default_factory=new_game_id)

    def __post_init__(self):
        if self.title:
            self.title = self.title.strip()
        self.platform = GamePlatform.parse(self.platform)

    @property
    def unique_id(self) -> str:
        # Stable across rescans, unlike `id`
        return f"{self.platform.value}|{self.platform_id or self.title}"

    @property
    def is_manual(self) -> bool:
        return self.platform is GamePlatform.MANUAL

    @property
    def working_directory(self) -> str:
        return os.path.dirname(self.executable_path) if self.executable_path else ""

    def to_dict(self) -> dict:
        d = asdict(self)
        d['platform'] = self.platform.value
        d['last_played'] = self.last_played.timestamp() if self.last_played else None
        d['unique_id'] = self.unique_id
        return d

    @staticmethod
    def from_dict(data: dict) -> 'Game':
        class_fields = {f.name for f in fields(Game)}
        filtered_data = {k: v for k, v in data.items() if k in class_fields}
        last_played = filtered_data.get('last_played')
        if isinstance(last_played, (int, float)):
            filtered_data['last_played'] = datetime.fromtimestamp(last_played) if last_played > 0 else None
        return Game(**filtered_data)

    def __str__(self) -> str:
        return f"{self.title} ({self.platform.label})"
