"""Session logging for DraftSight.

Every run gets its own folder under logs/ next to config.ini holding
draftsight.log and a short session_info.txt; only the newest three sessions
are kept. The root level comes from the caller, else DEFAULT.log_level.

    from draftsight.core.logging_setup import setup_logging
    session_dir = setup_logging(config_manager)
"""
from __future__ import annotations

import logging
import os
import platform
import shutil
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional, Union

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
SESSION_KEYS = [
    "log_level",
    "game_log_dir",
    "data_dir",
    "detection_interval_ms",
    "card_regions_resolution",
]


def _level_from_str(value: Optional[str]) -> int:
    if not value:
        return logging.INFO
    v = str(value).strip().upper()
    if v == "WARN":
        v = "WARNING"
    level = logging.getLevelName(v)
    return level if isinstance(level, int) else logging.INFO


def get_log_dir(config_manager) -> Path:
    """Return the logs directory next to config.ini, creating it if needed."""
    log_dir = Path(getattr(config_manager, "config_path")).parent / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)
    return log_dir


def get_session_dir(config_manager) -> Path:
    """Create and return a new session directory under logs/."""
    session = get_log_dir(config_manager) / datetime.now().strftime("session-%Y%m%d_%H%M%S")
    session.mkdir(parents=True, exist_ok=True)
    return session


def prune_old_sessions(log_dir: Path, keep: int = 3) -> None:
    """Keep only the most recent 'keep' session directories inside log_dir."""
    try:
        entries = [p for p in log_dir.iterdir() if p.is_dir() and p.name.startswith("session-")]
        entries.sort(key=lambda p: p.stat().st_mtime, reverse=True)
        for old in entries[keep:]:
            shutil.rmtree(old, ignore_errors=True)
    except OSError:
        pass


def _write_session_info(session_dir: Path, config_manager) -> None:
    """Record interpreter, platform and the settings that shape detection."""
    try:
        lines = [
            "DRAFTSIGHT SESSION INFORMATION",
            "=" * 40,
            f"Session Started: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}",
            f"Operating System: {platform.system()} {platform.release()}",
            f"Python Version: {sys.version.split()[0]}",
            f"Config File: {getattr(config_manager, 'config_path', 'Unknown')}",
            "",
        ]
        for key in SESSION_KEYS:
            try:
                lines.append(f"{key}: {config_manager.get(key)}")
            except Exception:
                lines.append(f"{key}: <error reading>")
        (session_dir / "session_info.txt").write_text("\n".join(lines) + "\n", encoding="utf-8")
    except OSError:
        # Don't fail logging setup if session info creation fails
        pass


def setup_logging(config_manager, level: Optional[Union[str, int]] = None, console: bool = True) -> Path:
    """Configure root logger with a session-based file and console handler.

    Returns the created session directory Path.

    - File: logs/session-YYYYmmdd_HHMMSS/draftsight.log (keep last 3 sessions)
    - Console: INFO+ by default
    - Level: from parameter if provided, else DEFAULT.log_level in config, else INFO
    """
    if isinstance(level, int):
        lvl = level
    elif isinstance(level, str):
        lvl = _level_from_str(level)
    else:
        lvl = _level_from_str(getattr(config_manager, "get", lambda *_: None)("log_level"))

    root = logging.getLogger()
    root.setLevel(lvl)

    # Clear existing handlers to avoid duplicates on re-run
    for h in root.handlers[:]:
        root.removeHandler(h)

    fmt = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

    log_dir = get_log_dir(config_manager)
    session_dir = get_session_dir(config_manager)
    os.environ["DS_LOG_SESSION_DIR"] = str(session_dir)

    fh = logging.FileHandler(session_dir / "draftsight.log", encoding="utf-8", delay=True)
    fh.setLevel(lvl)
    fh.setFormatter(fmt)
    root.addHandler(fh)
    prune_old_sessions(log_dir, keep=3)
    _write_session_info(session_dir, config_manager)

    if console:
        ch = logging.StreamHandler()
        ch.setLevel(logging.INFO if lvl < logging.INFO else lvl)
        ch.setFormatter(fmt)
        root.addHandler(ch)

    # Quiet down noisy libraries unless in DEBUG
    if lvl > logging.DEBUG:
        for name in ("PIL", "cv2", "mss"):
            logging.getLogger(name).setLevel(logging.WARNING)

    root.debug("Logging initialized (session=%s)", session_dir)
    return session_dir
