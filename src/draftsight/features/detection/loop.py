"""
Visual detection loop.

A background thread wakes at the polling interval, captures the three card
regions in parallel, identifies each one and applies two-cycle hysteresis
before announcing a new card set on the event bus.

Guards:
- debounce: captures are at least min_spacing_ms apart, whoever asks
- in-progress: an overlapping cycle is skipped, never queued
- backoff: after failure_limit consecutive failed cycles the interval grows
  by backoff_factor up to max_backoff_ms; any success restores it
- timeouts: each region's capture+identify, and the full-screen region
  scan, is bounded by capture_timeout_ms
- stop: results of a cycle that straddles stop() are discarded; each run has
  its own stop event and generation, so at most one loop thread is active
"""
from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor, wait
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Tuple
import logging
import threading
import time

from ...core.errors import CaptureUnavailable, NoRegionsConfigured
from ...core.events import CardsDetected, EventBus
from ...vision.consensus import Identification
from ...vision.regions import CaptureRegion, RegionLocator, heuristic_layout
from .cache import DetectionCache
from .identifier import CardIdentifier

logger = logging.getLogger(__name__)


@dataclass
class LoopSettings:
    interval_ms: int = 1500
    min_spacing_ms: int = 300
    max_backoff_ms: int = 5000
    backoff_factor: float = 1.5
    failure_limit: int = 3
    capture_timeout_ms: int = 2000
    min_cards: int = 2
    cache_ttl_ms: int = 500
    cache_size: int = 10
    pending_ttl_ms: int = 10000
    max_unconfirmed_cycles: int = 5
    workers: int = 3
    screen_index: int = 0

    @classmethod
    def from_config(cls, config_manager) -> "LoopSettings":
        d = cls()
        return cls(
            interval_ms=config_manager.getint("detection_interval_ms", d.interval_ms),
            min_spacing_ms=config_manager.getint("min_capture_spacing_ms", d.min_spacing_ms),
            max_backoff_ms=config_manager.getint("max_backoff_ms", d.max_backoff_ms),
            capture_timeout_ms=config_manager.getint("capture_timeout_ms", d.capture_timeout_ms),
            min_cards=config_manager.getint("min_cards", d.min_cards),
            cache_ttl_ms=config_manager.getint("cache_ttl_ms", d.cache_ttl_ms),
        )


@dataclass
class DetectionResult:
    status: str
    card_ids: Tuple[Optional[str], ...] = ()
    identifications: List[Identification] = field(default_factory=list)
    emitted: bool = False
    unstable: bool = False

    @property
    def identified(self) -> List[str]:
        return [c for c in self.card_ids if c]


class DetectionLoop:
    """Polls the card regions and publishes CardsDetected on confirmed changes."""

    def __init__(
        self,
        capture,
        locator: RegionLocator,
        identifier: CardIdentifier,
        bus: Optional[EventBus] = None,
        settings: Optional[LoopSettings] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.capture = capture
        self.locator = locator
        self.identifier = identifier
        self.bus = bus or EventBus()
        self.settings = settings or LoopSettings()
        self._clock = clock
        self.cache = DetectionCache(self.settings.cache_ttl_ms / 1000.0, self.settings.cache_size, clock)

        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._retiring: Optional[threading.Thread] = None
        self._executor: Optional[ThreadPoolExecutor] = None
        self._scan_executor: Optional[ThreadPoolExecutor] = None
        self._cycle_lock = threading.Lock()
        self._generation = 0

        self._base_interval_s = self.settings.interval_ms / 1000.0
        self._interval_s = self._base_interval_s
        self._last_capture = float("-inf")
        self.consecutive_failures = 0

        self._regions: Optional[List[CaptureRegion]] = None
        self._regions_size: Optional[Tuple[int, int]] = None

        self._pending: Optional[Tuple[str, ...]] = None
        self._pending_since = 0.0
        self._replacements = 0
        self._last_emitted: Optional[Tuple[str, ...]] = None
        self.last_result: Optional[DetectionResult] = None

    # ------------------------------------------------------------------ control
    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def interval_ms(self) -> int:
        return int(round(self._interval_s * 1000))

    def _cycle_bound_s(self) -> float:
        """Longest a single cycle can hold the loop thread: region scan plus identification."""
        return 2 * self.settings.capture_timeout_ms / 1000.0 + 0.5

    def start(self, interval_ms: Optional[int] = None) -> None:
        if self.is_running:
            return
        retiring = self._retiring
        if retiring is not None and retiring.is_alive():
            if retiring is not threading.current_thread():
                retiring.join(timeout=self._cycle_bound_s())
            if retiring.is_alive():
                logger.warning("Visual detection not started: previous loop thread is still finishing")
                return
        self._retiring = None
        if interval_ms:
            self._base_interval_s = int(interval_ms) / 1000.0
        self._interval_s = self._base_interval_s
        self.consecutive_failures = 0
        self._generation += 1
        self._stop = threading.Event()
        self._thread = threading.Thread(
            target=self._run, args=(self._stop, self._generation), name="draftsight-detection", daemon=True
        )
        self._thread.start()
        logger.info("Visual detection started (interval=%dms)", self.interval_ms)

    def stop(self) -> None:
        self._generation += 1
        self._stop.set()
        thread, self._thread = self._thread, None
        try:
            if thread is not None and thread is not threading.current_thread():
                thread.join(timeout=self._cycle_bound_s())
                if thread.is_alive():
                    logger.warning("Visual detection thread still busy after stop; it exits after its cycle")
            if thread is not None and thread.is_alive():
                self._retiring = thread
        finally:
            for executor in (self._executor, self._scan_executor):
                if executor is not None:
                    executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None
            self._scan_executor = None
            self.cache.clear()
            self._pending = None
            self._replacements = 0
            logger.info("Visual detection stopped")

    def trigger_manual(self) -> DetectionResult:
        """Run one cycle now on the calling thread (subject to the same guards)."""
        return self.run_cycle()

    def invalidate_regions(self) -> None:
        self._regions = None
        self._regions_size = None

    def _run(self, stop: threading.Event, gen: int) -> None:
        while not stop.is_set() and gen == self._generation:
            try:
                self.run_cycle()
            except Exception:
                logger.exception("detection: cycle error")
                self._on_failure()
            if stop.wait(self._interval_s):
                break

    def _get_executor(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=self.settings.workers, thread_name_prefix="draftsight-region")
        return self._executor

    def _get_scan_executor(self) -> ThreadPoolExecutor:
        if self._scan_executor is None:
            self._scan_executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="draftsight-scan")
        return self._scan_executor

    # ------------------------------------------------------------------ regions
    def regions(self) -> List[CaptureRegion]:
        idx = self.settings.screen_index
        size = self.capture.screen_size(idx)
        if not size or size[0] <= 0 or size[1] <= 0:
            raise NoRegionsConfigured(f"screen {idx} reports size {size}")
        if self._regions is not None and self._regions_size == size:
            return self._regions

        regions = self.locator.stored(size[0], size[1], idx)
        if regions is None and self.locator.template is not None:
            regions = self._scan_regions(size, idx)
        if regions is None:
            regions = heuristic_layout(size[0], size[1], idx)
        self._regions, self._regions_size = regions, size
        logger.info("detection: using %d regions for %dx%d", len(regions), size[0], size[1])
        return regions

    def _scan_regions(self, size: Tuple[int, int], idx: int) -> Optional[List[CaptureRegion]]:
        """Full-screen template scan, bounded by capture_timeout_ms; None on timeout."""

        def scan() -> List[CaptureRegion]:
            screen = self.capture.capture(CaptureRegion(index=-1, name="screen", box=(0, 0, size[0], size[1]), screen_index=idx))
            return self.locator.locate(screen, screen_index=idx, use_store=False)

        fut = self._get_scan_executor().submit(scan)
        try:
            return fut.result(timeout=self.settings.capture_timeout_ms / 1000.0)
        except FutureTimeout:
            fut.cancel()
            logger.warning("detection: region scan exceeded %dms; using layout fallback", self.settings.capture_timeout_ms)
            return None

    # ------------------------------------------------------------------ cycle
    def run_cycle(self) -> DetectionResult:
        if not self._cycle_lock.acquire(blocking=False):
            return DetectionResult("busy")
        try:
            result = self._cycle()
            if result.status not in ("busy", "debounced", "stopped"):
                self.last_result = result
            return result
        finally:
            self._cycle_lock.release()

    def _cycle(self) -> DetectionResult:
        now = self._clock()
        if (now - self._last_capture) * 1000.0 < self.settings.min_spacing_ms:
            return DetectionResult("debounced")
        gen = self._generation

        if not self.identifier.ready:
            self._on_failure()
            return DetectionResult("not_ready")

        try:
            regions = self.regions()
        except (CaptureUnavailable, NoRegionsConfigured) as e:
            logger.warning("detection: no regions: %s", e)
            self._on_failure()
            return DetectionResult("no_regions")

        if gen != self._generation:
            return DetectionResult("stopped")
        self._last_capture = now
        identifications = self._identify_all(regions, gen)
        if gen != self._generation:
            return DetectionResult("stopped")

        card_ids = tuple(i.card_id for i in identifications)
        found = [c for c in card_ids if c]
        if len(found) < self.settings.min_cards:
            self._on_failure()
            return DetectionResult("insufficient", card_ids, identifications)

        self._on_success()
        return self._apply_hysteresis(card_ids, identifications, now)

    def _identify_all(self, regions: Sequence[CaptureRegion], gen: int) -> List[Identification]:
        executor = self._get_executor()
        futures: Dict[Future, CaptureRegion] = {executor.submit(self._identify_region, r, gen): r for r in regions}
        done, not_done = wait(futures, timeout=self.settings.capture_timeout_ms / 1000.0)
        out: List[Identification] = []
        for fut, region in futures.items():
            if fut in not_done:
                fut.cancel()
                logger.warning("detection: %s timed out after %dms", region.name, self.settings.capture_timeout_ms)
                out.append(Identification(region.index, None, 0.0, "timeout"))
                continue
            try:
                out.append(fut.result())
            except CaptureUnavailable as e:
                logger.debug("detection: capture unavailable for %s: %s", region.name, e)
                out.append(Identification(region.index, None, 0.0, "capture_failed"))
            except Exception:
                logger.exception("detection: identification failed for %s", region.name)
                out.append(Identification(region.index, None, 0.0, "error"))
        out.sort(key=lambda i: i.region)
        return out

    def _identify_region(self, region: CaptureRegion, gen: int) -> Identification:
        key = region.key
        entry = self.cache.fresh(key)
        if entry is not None:
            if entry.identification is not None:
                return entry.identification
            buf, fp = entry.buffer, entry.fingerprint
        else:
            buf = self.capture.capture(region)
            fp = self.cache.put(key, buf)
            cached = self.cache.identification(key, fp)
            if cached is not None:
                logger.debug("detection: %s unchanged, reusing identification", region.name)
                return cached
        ident = self.identifier.identify(region, buf)
        if gen == self._generation:
            self.cache.remember(key, fp, ident)
        return ident

    def _apply_hysteresis(
        self,
        card_ids: Tuple[Optional[str], ...],
        identifications: List[Identification],
        now: float,
    ) -> DetectionResult:
        key = tuple(sorted(c for c in card_ids if c))
        expired = self._pending is not None and (now - self._pending_since) * 1000.0 > self.settings.pending_ttl_ms

        if self._pending != key or expired:
            if self._pending is not None and self._pending != key:
                self._replacements += 1
            self._pending, self._pending_since = key, now
            unstable = self._replacements >= self.settings.max_unconfirmed_cycles
            if unstable and self._replacements == self.settings.max_unconfirmed_cycles:
                logger.warning("detection: card set unstable after %d unconfirmed cycles", self._replacements)
            return DetectionResult("unstable" if unstable else "pending", card_ids, identifications, unstable=unstable)

        self._replacements = 0
        if key == self._last_emitted:
            return DetectionResult("unchanged", card_ids, identifications)

        self._last_emitted = key
        confirmed = tuple(c for c in card_ids if c)
        confs = tuple(i.confidence for i in identifications if i.card_id)
        logger.info("detection: confirmed cards %s", list(confirmed))
        self.bus.publish(CardsDetected(confirmed, confs))
        return DetectionResult("confirmed", card_ids, identifications, emitted=True)

    def _on_failure(self) -> None:
        self.consecutive_failures += 1
        if self.consecutive_failures >= self.settings.failure_limit:
            new = min(self.settings.max_backoff_ms / 1000.0, self._interval_s * self.settings.backoff_factor)
            if new != self._interval_s:
                logger.info("detection: %d failed cycles, interval %dms -> %dms",
                            self.consecutive_failures, self.interval_ms, int(round(new * 1000)))
                self._interval_s = new
            if self.consecutive_failures == self.settings.failure_limit:
                # Re-establish regions in case the layout moved
                self.invalidate_regions()

    def _on_success(self) -> None:
        if self.consecutive_failures and self._interval_s != self._base_interval_s:
            logger.info("detection: recovered, interval back to %dms", int(round(self._base_interval_s * 1000)))
        self.consecutive_failures = 0
        self._interval_s = self._base_interval_s


__all__ = ["DetectionLoop", "DetectionResult", "LoopSettings"]
