"""Minimal smoke tests to ensure modules import and core services work."""

import logging

from draftsight.core.config import ConfigManager
from draftsight.core.events import CardsDetected, DraftStarted, EventBus
from draftsight.core.logging_setup import prune_old_sessions, setup_logging


def test_config_defaults_and_save(tmp_path, monkeypatch):
    monkeypatch.delenv("DS_LOG_LEVEL", raising=False)
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    cfg_path = tmp_path / "config.ini"
    cfg = ConfigManager(str(cfg_path))
    assert cfg.get("log_level") == "INFO"
    assert cfg.getint("detection_interval_ms") == 1500
    assert cfg.getint("min_capture_spacing_ms") == 300
    cfg.set("log_level", "DEBUG")
    cfg.save()
    cfg2 = ConfigManager(str(cfg_path))
    assert cfg2.get("log_level") == "DEBUG"


def test_env_overrides_config_but_not_regions(tmp_path, monkeypatch):
    cfg = ConfigManager(str(tmp_path / "config.ini"))
    cfg.set("card_regions", "1,2,3,4;5,6,7,8;9,10,11,12")
    monkeypatch.setenv("DS_DETECTION_INTERVAL_MS", "900")
    monkeypatch.setenv("DS_CARD_REGIONS", "bogus")
    assert cfg.getint("detection_interval_ms") == 900
    assert cfg.get("card_regions") == "1,2,3,4;5,6,7,8;9,10,11,12"


def test_getint_falls_back_on_garbage(tmp_path):
    cfg = ConfigManager(str(tmp_path / "config.ini"))
    cfg.set("min_cards", "two")
    assert cfg.getint("min_cards", 2) == 2


def test_setup_logging_creates_session(tmp_path, monkeypatch):
    monkeypatch.setenv("DS_LOG_SESSION_DIR", "")
    cfg = ConfigManager(str(tmp_path / "config.ini"))
    root = logging.getLogger()
    saved, saved_level = root.handlers[:], root.level
    try:
        session = setup_logging(cfg, level="DEBUG", console=False)
        assert session.is_dir()
        assert session.parent == tmp_path / "logs"
        assert (session / "session_info.txt").exists()
        logging.getLogger("draftsight.test").debug("hello")
        for h in root.handlers:
            h.flush()
        assert "hello" in (session / "draftsight.log").read_text(encoding="utf-8")
    finally:
        for h in root.handlers[:]:
            root.removeHandler(h)
            h.close()
        for h in saved:
            root.addHandler(h)
        root.setLevel(saved_level)


def test_prune_keeps_three_sessions(tmp_path):
    for i in range(5):
        (tmp_path / f"session-2024010{i}_000000").mkdir()
    (tmp_path / "other").mkdir()
    prune_old_sessions(tmp_path, keep=3)
    sessions = [p for p in tmp_path.iterdir() if p.name.startswith("session-")]
    assert len(sessions) == 3
    assert (tmp_path / "other").exists()


def test_event_bus_isolates_failing_subscriber():
    bus = EventBus()
    got = []

    def boom(_event):
        raise RuntimeError("subscriber bug")

    bus.subscribe(CardsDetected, boom)
    bus.subscribe(CardsDetected, got.append)
    everything = []
    unsubscribe = bus.subscribe_all(everything.append)
    bus.publish(CardsDetected(("A", "B")))
    bus.publish(DraftStarted())
    assert got == [CardsDetected(("A", "B"))]
    assert len(everything) == 2
    unsubscribe()
    bus.publish(DraftStarted())
    assert len(everything) == 2
