from __future__ import annotations

import os
from pathlib import Path

APP_NAME = "BiomeWatch"

def app_data_dir() -> Path:
    base = os.environ.get("APPDATA") or str(Path.home())
    return Path(base) / APP_NAME

def config_path() -> Path:
    return app_data_dir() / "config.json"

def logs_dir() -> Path:
    return app_data_dir() / "logs"

def log_path() -> Path:
    return logs_dir() / "app.log"

def scratch_dir() -> Path:
    return app_data_dir() / "scratch"

def local_app_data_dir() -> Path:
    base = os.environ.get("LOCALAPPDATA") or str(Path.home())
    return Path(base)

def default_log_dirs() -> list[str]:
    base = local_app_data_dir()
    return [
        str(base / "Roblox" / "logs"),
        str(base / "Bloxstrap" / "Logs"),
        str(base / "Voidstrap" / "Logs"),
    ]

def default_state_log_dir() -> str:
    return str(local_app_data_dir() / "Roblox" / "logs")

def ensure_app_dirs() -> None:
    app_data_dir().mkdir(parents=True, exist_ok=True)
    logs_dir().mkdir(parents=True, exist_ok=True)
    scratch_dir().mkdir(parents=True, exist_ok=True)
