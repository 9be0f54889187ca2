from __future__ import annotations

import json
import logging
from pathlib import Path

import config
from config import DEFAULT_CONFIG, ScanSettings, load_config, save_config, validate_config
from game import GamePlatform


def test_missing_config_is_created_with_defaults(tmp_path: Path) -> None:
    loaded = load_config(str(tmp_path))

    assert loaded == DEFAULT_CONFIG
    assert json.loads((tmp_path / "config.json").read_text(encoding="utf-8")) == DEFAULT_CONFIG


def test_saved_values_override_defaults(tmp_path: Path) -> None:
    assert save_config(str(tmp_path), {"steam_path": "D:\\Steam", "port": 6000})

    loaded = load_config(str(tmp_path))

    assert loaded["steam_path"] == "D:\\Steam"
    assert loaded["port"] == 6000
    assert loaded["scan_timeout_seconds"] == DEFAULT_CONFIG["scan_timeout_seconds"]


def test_corrupt_config_falls_back_to_defaults(tmp_path: Path, caplog) -> None:
    (tmp_path / "config.json").write_text("{broken", encoding="utf-8")

    with caplog.at_level(logging.ERROR, logger="GameDock_Config"):
        loaded = load_config(str(tmp_path))

    assert loaded == DEFAULT_CONFIG
    assert "Failure reading config" in caplog.text


def test_data_dir_override(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("GAMEDOCK_HOME", str(tmp_path / "home"))

    assert config.get_data_dir() == str(tmp_path / "home")
    assert config.initialize_environment() == str(tmp_path / "home")
    assert (tmp_path / "home").is_dir()


def test_scan_settings_from_config(caplog) -> None:
    settings = ScanSettings.from_config({
        "steam_path": "D:\\Steam",
        "xbox_drives": ["E:\\"],
        "enabled_platforms": ["Steam", "Xbox Game Pass", "Manual", "GOG"],
        "scan_timeout_seconds": "not a number",
    })

    assert settings.steam_path == "D:\\Steam"
    assert settings.xbox_drives == ["E:\\"]
    assert settings.enabled_platforms == [GamePlatform.STEAM, GamePlatform.XBOX]
    assert settings.scan_timeout_seconds == 30.0
    assert "GOG" in caplog.text


def test_setup_master_logging_writes_log_file(tmp_path: Path) -> None:
    root = logging.getLogger()
    saved = root.handlers[:], root.level
    try:
        config.setup_master_logging(str(tmp_path), logging.DEBUG)
        logging.getLogger("GameDock_Test").info("[Test] hello")
        for handler in root.handlers:
            handler.flush()
        content = (tmp_path / "logs" / "gamedock.log").read_text(encoding="utf-8")
        assert "[INFO] - GameDock_Test - [Test] hello" in content
    finally:
        for handler in root.handlers:
            if handler not in saved[0]:
                handler.close()
        root.handlers[:] = saved[0]
        root.setLevel(saved[1])


def test_validate_config_checks_types_of_known_keys() -> None:
    assert validate_config({"port": 8080, "scan_timeout_seconds": 2.5, "xbox_drives": ["D:\\"], "theme": 3}) == []

    problems = validate_config({
        "port": "abc",
        "host": 127,
        "scan_paths": "E:\\Games",
        "scan_timeout_seconds": 0,
        "enabled_platforms": ["Steam", "GOG"],
    })

    assert sorted(problems) == sorted([
        "port must be a number",
        "host must be a string",
        "scan_paths must be a list of strings",
        "scan_timeout_seconds must be positive",
        "enabled_platforms has unknown platform 'GOG'",
    ])
    assert validate_config({"port": True}) == ["port must be a number"]
    assert validate_config({"port": 70000}) == ["port must be an integer between 1 and 65535"]


def test_scan_settings_ignore_malformed_values() -> None:
    settings = ScanSettings.from_config({
        "steam_path": 5,
        "xbox_drives": "D:\\",
        "scan_paths": ["E:\\Games", 7, ""],
        "enabled_platforms": "Steam",
        "scan_timeout_seconds": -1,
    })

    assert settings.steam_path == ""
    assert settings.xbox_drives == []
    assert settings.scan_paths == ["E:\\Games"]
    assert settings.enabled_platforms == []
    assert settings.scan_timeout_seconds == 30.0
