"""Main application entry point.

Loads configuration, initialises logging, composes the tracker and runs the
log watcher and the visual detection loop until interrupted.
"""

import argparse
import logging
import sys
import threading
from typing import List, Optional

from draftsight.core.config import ConfigManager
from draftsight.core.logging_setup import setup_logging
from draftsight.tracker import DraftTracker


def _parse_args(argv: Optional[List[str]]) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="draftsight", description="Track arena draft picks from screen and game logs.")
    p.add_argument("--config", help="path to config.ini (default: per-user config directory)")
    p.add_argument("--data-dir", help="reference data directory (cards.json, card_hashes.json, templates/)")
    p.add_argument("--log-dir", help="game log directory (default: auto-detect)")
    p.add_argument("--interval", type=int, help="detection interval in milliseconds")
    p.add_argument("--log-level", help="override DEFAULT.log_level")
    p.add_argument("--no-visual", action="store_true", help="track game logs only")
    p.add_argument("--no-ocr", action="store_true", help="disable name OCR")
    p.add_argument("--once", action="store_true", help="run one detection cycle, print it and exit")
    return p.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = _parse_args(argv)
    config_manager = ConfigManager(args.config)
    for key, value in (("data_dir", args.data_dir), ("game_log_dir", args.log_dir)):
        if value:
            config_manager.set(key, value)
    if args.interval:
        config_manager.set("detection_interval_ms", args.interval)

    session_dir = setup_logging(config_manager, level=args.log_level)
    logger = logging.getLogger(__name__)
    logger.info("DraftSight starting (session logs: %s)", session_dir)

    def _excepthook(exc_type, exc, tb):
        logger.error("Unhandled exception", exc_info=(exc_type, exc, tb))
        sys.__excepthook__(exc_type, exc, tb)

    sys.excepthook = _excepthook

    recognizer = None
    if not args.no_ocr:
        from draftsight.vision.ocr import TesseractRecognizer

        recognizer = TesseractRecognizer()

    tracker = DraftTracker.from_config(config_manager, recognizer=recognizer)
    tracker.bus.subscribe_all(lambda event: logger.info("event: %s", event))

    if args.once:
        result = tracker.trigger_manual_detection()
        print(f"status={result.status} cards={list(result.card_ids)}")
        tracker.shutdown()
        return 0 if result.identified else 1

    tracker.start(detection=not args.no_visual)
    done = threading.Event()
    try:
        while not done.wait(1.0):
            pass
    except KeyboardInterrupt:
        logger.info("Interrupted; shutting down")
    finally:
        tracker.shutdown()
        logger.info("Final state: %s, hero=%s, picks=%d",
                    tracker.get_state(), tracker.get_selected_hero(), len(tracker.get_draft_picks()))
    return 0


if __name__ == "__main__":
    sys.exit(main())
