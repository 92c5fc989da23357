"""core.config
Configuration core: load/save helpers for config.ini.

This module provides a small ConfigManager used by the tracker to read and
persist key/value settings: ConfigManager.load(), get(key, fallback),
getint/getfloat and save().
"""

import os
from configparser import ConfigParser
from pathlib import Path
from typing import Optional


DEFAULTS = {
    "log_level": "INFO",
    # Blank means auto-detect the game's log directory
    "game_log_dir": "",
    "data_dir": "",
    "detection_interval_ms": "1500",
    "min_capture_spacing_ms": "300",
    "max_backoff_ms": "5000",
    "cache_ttl_ms": "500",
    "capture_timeout_ms": "2000",
    "min_cards": "2",
    "group_window_ms": "2000",
    "log_poll_interval_ms": "500",
    # Persisted card regions (written by RegionStore)
    "card_regions": "",
    "card_regions_resolution": "",
    "card_regions_relative": "False",
}


class ConfigManager:
    """Simple configuration manager backed by an INI file.

    Behaviour:
    - Uses a single DEFAULT section for lookups.
    - Creates the file with defaults if it does not exist.
    - Defaults to a per-user config path (%APPDATA% on Windows,
      XDG_CONFIG_HOME or ~/.config on other systems) unless an explicit
      path is provided.
    """

    def __init__(self, config_path: Optional[str] = None) -> None:
        if config_path:
            self.config_path = Path(config_path)
        else:
            if os.name == "nt":
                base = Path(os.getenv("APPDATA", Path.home() / "AppData" / "Roaming"))
            else:
                base = Path(os.getenv("XDG_CONFIG_HOME", Path.home() / ".config"))
            self.config_path = base.joinpath("DraftSight", "config.ini")

        self.config = ConfigParser()
        self.load()

    def load(self) -> None:
        """Load configuration from disk, filling in missing defaults."""
        if self.config_path.exists():
            self.config.read(self.config_path)

        if "DEFAULT" not in self.config:
            self.config["DEFAULT"] = {}

        missing = [key for key in DEFAULTS if key not in self.config["DEFAULT"]]
        for key in missing:
            self.config["DEFAULT"][key] = DEFAULTS[key]

        if missing and self.config_path.exists():
            self.save()

    def get(self, key: str, fallback=None):
        """Get a configuration value.

        Precedence is env > config.ini > fallback, except for the persisted
        region keys which are always read from the file so a stray variable
        cannot shadow calibrated geometry.
        """
        if not str(key).lower().startswith("card_regions"):
            try:
                for ek in (f"DS_{str(key).upper()}", str(key).upper()):
                    val = os.environ.get(ek)
                    if val is not None and str(val) != "":
                        return val
            except Exception:
                pass
        return self.config["DEFAULT"].get(key, fallback)

    def getint(self, key: str, fallback: int = 0) -> int:
        try:
            return int(float(self.get(key, fallback)))
        except (TypeError, ValueError):
            return fallback

    def getfloat(self, key: str, fallback: float = 0.0) -> float:
        try:
            return float(self.get(key, fallback))
        except (TypeError, ValueError):
            return fallback

    def set(self, key: str, value) -> None:
        self.config["DEFAULT"][key] = str(value)

    def save(self) -> None:
        """Persist current configuration to disk (creates parent directories)."""
        self.config_path.parent.mkdir(parents=True, exist_ok=True)
        with self.config_path.open("w", encoding="utf-8") as fh:
            self.config.write(fh)
