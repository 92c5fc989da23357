"""
Tracker facade.

DraftTracker composes the reference data, the matchers, the visual detection
loop, the log watcher and the draft state machine, and exposes the small
control surface callers need. Confirmed visual card sets are routed into the
state machine as fallback evidence. No tracker error escapes this surface:
failures show up as result statuses and log records.
"""
from __future__ import annotations

from pathlib import Path
from typing import Callable, List, Optional
import logging

from .config import vision as vc
from .core.events import CardsDetected, EventBus
from .data.cards import ReferenceStore
from .features.detection.identifier import CardIdentifier
from .features.detection.loop import DetectionLoop, DetectionResult, LoopSettings
from .features.draft.log_watcher import LogWatcher
from .features.draft.state_machine import DraftPick, DraftStateMachine
from .vision.regions import RegionLocator, RegionStore

logger = logging.getLogger(__name__)


def resolve_data_dir(config_manager) -> Path:
    configured = str(config_manager.get("data_dir", "") or "").strip()
    if configured:
        return Path(configured)
    return Path(config_manager.config_path).parent / "data"


class DraftTracker:
    def __init__(
        self,
        store: ReferenceStore,
        capture,
        bus: Optional[EventBus] = None,
        recognizer=None,
        settings: Optional[LoopSettings] = None,
        region_store: Optional[RegionStore] = None,
        group_window_s: float = 2.0,
        log_dir: Optional[Path] = None,
        log_poll_s: float = 0.5,
        watch_logs: bool = True,
    ) -> None:
        self.bus = bus or EventBus()
        self.store = store
        self.state_machine = DraftStateMachine(self.bus, group_window_s=group_window_s)
        self.identifier = CardIdentifier(store, recognizer=recognizer)
        self.locator = RegionLocator(
            template=store.card_template, store=region_store, sample_step=vc.REGION_SCAN_SAMPLE_STEP
        )
        self.loop = DetectionLoop(capture, self.locator, self.identifier, self.bus, settings)
        self._log_dir = log_dir
        self._log_poll_s = log_poll_s
        self.log_watcher: Optional[LogWatcher] = None
        if watch_logs:
            self.log_watcher = self._new_log_watcher()
        self.bus.subscribe(CardsDetected, self._on_cards_detected)

    @classmethod
    def from_config(cls, config_manager, capture=None, recognizer=None, bus: Optional[EventBus] = None) -> "DraftTracker":
        if capture is None:
            from .io.capture import MssCaptureProvider

            capture = MssCaptureProvider()
        log_dir = str(config_manager.get("game_log_dir", "") or "").strip()
        return cls(
            store=ReferenceStore.load(resolve_data_dir(config_manager)),
            capture=capture,
            bus=bus,
            recognizer=recognizer,
            settings=LoopSettings.from_config(config_manager),
            region_store=RegionStore(config_manager),
            group_window_s=config_manager.getint("group_window_ms", 2000) / 1000.0,
            log_dir=Path(log_dir) if log_dir else None,
            log_poll_s=config_manager.getint("log_poll_interval_ms", 500) / 1000.0,
        )

    def _new_log_watcher(self) -> LogWatcher:
        return LogWatcher(self.state_machine.handle, log_dir=self._log_dir, interval=self._log_poll_s)

    def _on_cards_detected(self, event: CardsDetected) -> None:
        self.state_machine.on_visual_detection(event.card_ids)

    def subscribe(self, event_type, handler: Callable[[object], None]) -> Callable[[], None]:
        return self.bus.subscribe(event_type, handler)

    # ------------------------------------------------------------------ lifecycle
    def start(self, detection: bool = True) -> None:
        if self.log_watcher is not None and not self.log_watcher.is_alive():
            if self.log_watcher.ident is not None:
                # Threads run once; a watcher stopped by shutdown() is replaced
                self.log_watcher = self._new_log_watcher()
            self.log_watcher.start()
        if detection:
            self.start_detection()

    def shutdown(self) -> None:
        self.stop_detection()
        if self.log_watcher is not None:
            self.log_watcher.stop()
            if self.log_watcher.is_alive():
                self.log_watcher.join(timeout=2.0)

    # ------------------------------------------------------------------ control surface
    def start_detection(self, interval_ms: Optional[int] = None) -> None:
        if not self.identifier.ready:
            logger.warning("tracker: no matcher has reference data; visual detection will report not_ready")
        self.loop.start(interval_ms)

    def stop_detection(self) -> None:
        self.loop.stop()

    def trigger_manual_detection(self) -> DetectionResult:
        try:
            return self.loop.trigger_manual()
        except Exception:
            logger.exception("tracker: manual detection failed")
            return DetectionResult("error")

    def get_state(self) -> str:
        return self.state_machine.state.value

    def get_draft_picks(self) -> List[DraftPick]:
        return self.state_machine.picks

    def get_selected_hero(self) -> Optional[str]:
        return self.state_machine.selected_hero


__all__ = ["DraftTracker", "resolve_data_dir"]
