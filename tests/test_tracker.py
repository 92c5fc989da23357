import json

import numpy as np

from draftsight.config import vision as vc
from draftsight.core.config import ConfigManager
from draftsight.core.events import CardsDetected, StateChanged
from draftsight.data.cards import ReferenceStore
from draftsight.features.draft.log_events import DraftBegin
from draftsight.tracker import DraftTracker, resolve_data_dir


class DummyCapture:
    def screen_size(self, screen_index=0):
        return (1280, 720)

    def capture(self, region):
        x, y, w, h = region.box
        return np.zeros((h, w, 3), dtype=np.uint8)


def _tracker(**kwargs):
    return DraftTracker(ReferenceStore(), DummyCapture(), watch_logs=False, **kwargs)


def test_initial_state():
    tracker = _tracker()
    assert tracker.get_state() == "INACTIVE"
    assert tracker.get_draft_picks() == []
    assert tracker.get_selected_hero() is None


def test_manual_detection_without_reference_data_reports_not_ready():
    tracker = _tracker()
    try:
        result = tracker.trigger_manual_detection()
        assert result.status == "not_ready"
    finally:
        tracker.shutdown()


def test_manual_detection_never_raises(monkeypatch):
    tracker = _tracker()

    def boom():
        raise RuntimeError("capture backend gone")

    monkeypatch.setattr(tracker.loop, "trigger_manual", boom)
    assert tracker.trigger_manual_detection().status == "error"


def test_confirmed_cards_reach_the_state_machine():
    tracker = _tracker()
    changes = []
    tracker.subscribe(StateChanged, changes.append)
    tracker.state_machine.handle(DraftBegin())
    tracker.bus.publish(CardsDetected(("HERO_01", "HERO_02", "HERO_03")))
    assert tracker.get_state() == "HERO_SELECTION"
    assert tracker.state_machine.hero_options == ("HERO_01", "HERO_02", "HERO_03")
    assert [c.current for c in changes] == ["STARTED", "HERO_SELECTION"]


def test_start_and_shutdown_detection():
    tracker = _tracker()
    tracker.start()
    try:
        assert tracker.loop.is_running
    finally:
        tracker.shutdown()
    assert not tracker.loop.is_running


def test_from_config_loads_data_dir(tmp_path, monkeypatch):
    for key in ("DS_DATA_DIR", "DATA_DIR", "DS_GAME_LOG_DIR", "GAME_LOG_DIR", "DS_DETECTION_INTERVAL_MS"):
        monkeypatch.delenv(key, raising=False)
    data = tmp_path / "data"
    data.mkdir()
    (data / "cards.json").write_text(json.dumps([{"id": "CS2_029", "name": "Fireball"}]), encoding="utf-8")
    logs = tmp_path / "logs"
    logs.mkdir()

    cfg = ConfigManager(str(tmp_path / "config.ini"))
    cfg.set("game_log_dir", str(logs))
    cfg.set("detection_interval_ms", "800")
    assert resolve_data_dir(cfg) == data

    tracker = DraftTracker.from_config(cfg, capture=DummyCapture())
    assert "CS2_029" in tracker.store
    assert tracker.loop.settings.interval_ms == 800
    assert tracker.log_watcher is not None
    assert tracker.log_watcher.log_dir == logs


def test_restart_after_shutdown_replaces_log_watcher(tmp_path):
    tracker = DraftTracker(ReferenceStore(), DummyCapture(), log_dir=tmp_path, log_poll_s=0.05)
    tracker.start(detection=False)
    first = tracker.log_watcher
    tracker.shutdown()
    assert not first.is_alive()

    tracker.start(detection=False)
    try:
        assert tracker.log_watcher is not first
        assert tracker.log_watcher.is_alive()
        assert tracker.log_watcher.log_dir == tmp_path
    finally:
        tracker.shutdown()


def test_region_scan_uses_coarse_sampling():
    assert _tracker().locator.sample_step == vc.REGION_SCAN_SAMPLE_STEP > 1
