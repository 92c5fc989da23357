"""Game log tailer.

Polls Arena.log, Power.log and LoadingScreen.log in the game's log directory
and hands parsed draft markers to a callback. On first attach only the last
16 KiB of each file is read; a file that shrinks (rotation on game restart)
is re-read from the start.

When no directory is configured, the newest Hearthstone_YYYY_MM_DD_HH_MM_SS
session folder under the usual install locations is used and re-checked
periodically so a game restart is followed.
"""
import logging
import os
import re
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from ...core.errors import MalformedLogLine
from .log_events import TRACKED_LOGS, LogEvent, parse_line

logger = logging.getLogger(__name__)

INITIAL_TAIL_BYTES = 16 * 1024
SESSION_DIR = re.compile(r"^Hearthstone_\d{4}_\d{2}_\d{2}_\d{2}_\d{2}_\d{2}$")


def default_log_roots() -> List[Path]:
    roots: List[Path] = []
    local = os.environ.get("LOCALAPPDATA")
    if local:
        roots.append(Path(local) / "Blizzard" / "Hearthstone" / "Logs")
    for drive in ("C:", "D:", "E:"):
        for prog in ("Program Files (x86)", "Program Files"):
            roots.append(Path(f"{drive}\\") / prog / "Hearthstone" / "Logs")
    roots.append(Path.home() / "Library" / "Preferences" / "Blizzard" / "Hearthstone" / "Logs")
    return roots


def find_log_dir(roots: Optional[Iterable[Path]] = None) -> Optional[Path]:
    """Newest session folder holding a tracked log, else the first root that has one."""
    env = os.environ.get("DS_GAME_LOG_DIR", "").strip()
    if env:
        return Path(env)
    for root in roots if roots is not None else default_log_roots():
        try:
            if not root.is_dir():
                continue
            sessions = sorted(
                (p for p in root.iterdir() if p.is_dir() and SESSION_DIR.match(p.name)),
                key=lambda p: p.name,
                reverse=True,
            )
        except OSError:
            continue
        for candidate in sessions + [root]:
            if any((candidate / name).exists() for name in TRACKED_LOGS):
                return candidate
    return None


@dataclass
class _Tail:
    path: Path
    offset: int = 0
    attached: bool = False
    partial: str = ""
    skip_first: bool = False


@dataclass
class LogWatcherStats:
    lines: int = 0
    events: int = 0
    malformed: int = 0
    truncations: int = 0
    per_file: Dict[str, int] = field(default_factory=dict)


class LogWatcher(threading.Thread):
    """Background poller for the tracked game logs."""

    def __init__(
        self,
        on_event: Callable[[LogEvent], None],
        log_dir: Optional[Path] = None,
        interval: float = 0.5,
        rescan_interval: float = 10.0,
        roots: Optional[Iterable[Path]] = None,
    ) -> None:
        super().__init__(daemon=True, name="LogWatcher")
        self.on_event = on_event
        self.interval = interval
        self.rescan_interval = rescan_interval
        self._auto = log_dir is None
        self._roots = list(roots) if roots is not None else None
        self._stop_event = threading.Event()
        self._tails: Dict[str, _Tail] = {}
        self._last_scan = 0.0
        self.stats = LogWatcherStats()
        self.log_dir: Optional[Path] = None
        self._set_dir(Path(log_dir) if log_dir is not None else find_log_dir(self._roots))

    def _set_dir(self, log_dir: Optional[Path]) -> None:
        if log_dir == self.log_dir and self._tails:
            return
        self.log_dir = log_dir
        self._tails = {name: _Tail(log_dir / name) for name in TRACKED_LOGS} if log_dir else {}
        if log_dir is None:
            logger.warning("Game log directory not found; log tracking idle")
        else:
            logger.info("Watching game logs in %s", log_dir)

    def stop(self) -> None:
        """Stop the polling thread."""
        self._stop_event.set()

    def run(self) -> None:
        logger.info("Log watcher started (interval=%.1fs)", self.interval)
        while not self._stop_event.is_set():
            try:
                self.poll()
            except Exception as e:
                logger.warning("Log watcher error: %s", e)
            if self._stop_event.wait(self.interval):
                break
        logger.info("Log watcher stopped")

    def poll(self) -> List[LogEvent]:
        """Read new lines from every tracked file and dispatch parsed events."""
        now = time.monotonic()
        if self._auto and now - self._last_scan >= self.rescan_interval:
            self._last_scan = now
            found = find_log_dir(self._roots)
            if found is not None and found != self.log_dir:
                self._set_dir(found)

        events: List[LogEvent] = []
        for name, tail in self._tails.items():
            for line in self._read_new_lines(tail):
                self.stats.lines += 1
                try:
                    event = parse_line(name, line)
                except MalformedLogLine as e:
                    self.stats.malformed += 1
                    logger.debug("Skipping malformed %s line: %s", name, e)
                    continue
                if event is None:
                    continue
                self.stats.events += 1
                self.stats.per_file[name] = self.stats.per_file.get(name, 0) + 1
                events.append(event)
                try:
                    self.on_event(event)
                except Exception:
                    logger.exception("Log event handler failed for %s", event)
        return events

    def _read_new_lines(self, tail: _Tail) -> List[str]:
        try:
            size = tail.path.stat().st_size
        except OSError:
            if tail.attached:
                logger.debug("%s disappeared; will re-attach", tail.path.name)
            tail.attached, tail.offset, tail.partial = False, 0, ""
            return []

        if not tail.attached:
            tail.offset = max(0, size - INITIAL_TAIL_BYTES)
            tail.skip_first = tail.offset > 0
            tail.partial = ""
            tail.attached = True
            logger.debug("Attached to %s at offset %d", tail.path.name, tail.offset)
        elif size < tail.offset:
            self.stats.truncations += 1
            logger.info("%s was truncated (%d < %d); reading from start", tail.path.name, size, tail.offset)
            tail.offset, tail.partial, tail.skip_first = 0, "", False

        if size == tail.offset:
            return []
        chunk, tail.offset = self._read_from(tail.path, tail.offset)
        text = tail.partial + chunk
        lines = text.split("\n")
        tail.partial = lines.pop()
        if tail.skip_first and lines:
            lines = lines[1:]
            tail.skip_first = False
        return [ln.rstrip("\r") for ln in lines if ln.strip()]

    @staticmethod
    def _read_from(path: Path, offset: int) -> Tuple[str, int]:
        with path.open("rb") as fh:
            fh.seek(offset)
            data = fh.read()
            return data.decode("utf-8", errors="replace"), fh.tell()


__all__ = ["INITIAL_TAIL_BYTES", "LogWatcher", "LogWatcherStats", "default_log_roots", "find_log_dir"]
