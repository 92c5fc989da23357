"""
Card region location and persistence.

RegionLocator establishes the three card rectangles for the current screen:

1) Reuse geometry persisted in config.ini when it was saved at a resolution
   within 50 px of the current one on both axes.
2) Otherwise scan a full-screen capture with the card-frame template
   (stride-aligned sliding window, pixel colour tolerance, NMS) and persist
   the result when three frames are found.
3) Otherwise fall back to a layout computed from the screen size.

The result always holds exactly three regions ordered left to right.
Persisted geometry uses the same "x,y,w,h" strings as the rest of config.ini,
one per region separated by ';', keyed by the resolution it was saved at.
"""
from __future__ import annotations

from dataclasses import dataclass, replace
from typing import List, Optional, Protocol, Sequence, Tuple, runtime_checkable
import logging

import numpy as np

from ..config import vision as vc
from ..core.errors import NoRegionsConfigured
from .matcher import non_max_suppression, sliding_window

logger = logging.getLogger(__name__)

Box = Tuple[float, float, float, float]


@dataclass(frozen=True)
class CaptureRegion:
    index: int
    name: str
    box: Box
    relative: bool = False
    screen_index: int = 0
    scale: float = 1.0

    def absolute(self, screen_w: int, screen_h: int) -> "CaptureRegion":
        """Return a pixel-space copy; relative boxes are fractions of the screen."""
        if not self.relative:
            return self
        x, y, w, h = self.box
        box = (
            int(round(x * screen_w)),
            int(round(y * screen_h)),
            int(round(w * screen_w)),
            int(round(h * screen_h)),
        )
        return replace(self, box=box, relative=False)

    @property
    def key(self) -> Tuple:
        return (self.screen_index,) + tuple(int(round(v)) for v in self.box)

    def cost_box(self) -> Box:
        return sub_box(self.box, vc.COST_SUBREGION)

    def rarity_box(self) -> Box:
        return sub_box(self.box, vc.RARITY_SUBREGION)

    def name_box(self) -> Box:
        return sub_box(self.box, vc.NAME_SUBREGION)


def sub_box(box: Box, fractions: Tuple[float, float, float, float]) -> Box:
    """Map (fx, fy, fw, fh) fractions of box into the box's coordinate space."""
    x, y, w, h = box
    fx, fy, fw, fh = fractions
    return (x + fx * w, y + fy * h, fw * w, fh * h)


def local_box(width: int, height: int, fractions: Tuple[float, float, float, float]) -> Tuple[int, int, int, int]:
    """Sub-rectangle of a captured card buffer of the given size, in pixels."""
    x, y, w, h = sub_box((0, 0, width, height), fractions)
    return (int(round(x)), int(round(y)), max(1, int(round(w))), max(1, int(round(h))))


def heuristic_layout(screen_w: int, screen_h: int, screen_index: int = 0) -> List[CaptureRegion]:
    """Three evenly spaced card boxes centred horizontally."""
    card_w = vc.LAYOUT_CARD_WIDTH * screen_w
    card_h = vc.LAYOUT_CARD_HEIGHT * screen_h
    spacing = vc.LAYOUT_SPACING * screen_w
    total = vc.REGION_COUNT * card_w + (vc.REGION_COUNT - 1) * spacing
    start_x = (screen_w - total) / 2.0
    top = vc.LAYOUT_TOP * screen_h
    return [
        CaptureRegion(
            index=i,
            name=f"card{i + 1}",
            box=(int(round(start_x + i * (card_w + spacing))), int(round(top)), int(round(card_w)), int(round(card_h))),
            screen_index=screen_index,
        )
        for i in range(vc.REGION_COUNT)
    ]


def _fmt_box(box: Box, relative: bool) -> str:
    if relative:
        return ",".join(f"{v:.4f}" for v in box)
    return ",".join(str(int(round(v))) for v in box)


def _parse_resolution(text: str) -> Optional[Tuple[int, int]]:
    try:
        w, h = str(text).lower().split("x")
        return int(w), int(h)
    except (ValueError, AttributeError):
        return None


@runtime_checkable
class ConfigLike(Protocol):
    def get(self, key: str, fallback=None): ...
    def set(self, key: str, value) -> None: ...
    def save(self) -> None: ...


class RegionStore:
    """Persists card regions in config.ini keyed by the resolution they were saved at."""

    def __init__(self, config_manager: ConfigLike, tolerance: int = vc.REGION_RESOLUTION_TOLERANCE) -> None:
        self.config_manager = config_manager
        self.tolerance = tolerance

    def save(self, regions: Sequence[CaptureRegion], resolution: Optional[Tuple[int, int]]) -> None:
        if len(regions) != vc.REGION_COUNT:
            raise ValueError(f"expected {vc.REGION_COUNT} regions, got {len(regions)}")
        ordered = sorted(regions, key=lambda r: r.index)
        relative = all(r.relative for r in ordered)
        self.config_manager.set("card_regions", ";".join(_fmt_box(r.box, relative) for r in ordered))
        self.config_manager.set("card_regions_resolution", f"{resolution[0]}x{resolution[1]}" if resolution else "")
        self.config_manager.set("card_regions_relative", str(relative))
        try:
            self.config_manager.save()
        except OSError as e:
            logger.warning("regions: failed to persist card regions: %s", e)
        logger.info("regions: saved %d regions (resolution=%s, relative=%s)", len(ordered), resolution, relative)

    def clear(self) -> None:
        for key in ("card_regions", "card_regions_resolution"):
            self.config_manager.set(key, "")
        self.config_manager.set("card_regions_relative", "False")
        try:
            self.config_manager.save()
        except OSError as e:
            logger.warning("regions: failed to clear card regions: %s", e)

    def load(self, resolution: Tuple[int, int], screen_index: int = 0) -> Optional[List[CaptureRegion]]:
        """Return stored regions when valid for resolution, else None."""
        raw = str(self.config_manager.get("card_regions", "") or "").strip()
        if not raw:
            return None
        relative = str(self.config_manager.get("card_regions_relative", "False")).strip().lower() in {"1", "true", "yes"}
        saved_res = _parse_resolution(self.config_manager.get("card_regions_resolution", ""))
        if saved_res is None and not relative:
            logger.debug("regions: stored absolute regions carry no resolution; ignoring")
            return None
        if saved_res is not None and not self.matches_resolution(saved_res, resolution):
            logger.info("regions: stored regions saved at %sx%s do not fit %sx%s", saved_res[0], saved_res[1], *resolution)
            return None
        try:
            boxes = [tuple(float(v) for v in part.split(",")) for part in raw.split(";") if part.strip()]
        except ValueError:
            logger.warning("regions: unparseable card_regions value %r", raw)
            return None
        if len(boxes) != vc.REGION_COUNT or any(len(b) != 4 for b in boxes):
            logger.warning("regions: stored geometry must hold %d boxes, found %d", vc.REGION_COUNT, len(boxes))
            return None
        return [
            CaptureRegion(index=i, name=f"card{i + 1}", box=b, relative=relative, screen_index=screen_index)  # type: ignore[arg-type]
            for i, b in enumerate(boxes)
        ]

    def matches_resolution(self, saved: Tuple[int, int], current: Tuple[int, int]) -> bool:
        return abs(saved[0] - current[0]) <= self.tolerance and abs(saved[1] - current[1]) <= self.tolerance


class RegionLocator:
    """Finds the three offered-card rectangles on a full-screen capture."""

    def __init__(
        self,
        template: Optional[np.ndarray] = None,
        store: Optional[RegionStore] = None,
        stride: int = vc.REGION_STRIDE,
        threshold: float = vc.REGION_MATCH_THRESHOLD,
        tolerance: float = vc.REGION_PIXEL_TOLERANCE,
        sample_step: int = 1,
    ) -> None:
        self.template = template
        self.store = store
        self.stride = stride
        self.threshold = threshold
        self.tolerance = tolerance
        self.sample_step = sample_step
        self.last_method = "none"

    def stored(self, screen_w: int, screen_h: int, screen_index: int = 0) -> Optional[List[CaptureRegion]]:
        if self.store is None:
            return None
        regions = self.store.load((screen_w, screen_h), screen_index)
        if regions is None:
            return None
        return [r.absolute(screen_w, screen_h) for r in regions]

    def detect(self, screen: np.ndarray, template: Optional[np.ndarray] = None, screen_index: int = 0) -> Optional[List[CaptureRegion]]:
        """Template scan only; None when fewer than three frames survive NMS."""
        tpl = template if template is not None else self.template
        if tpl is None:
            return None
        matches = sliding_window(screen, tpl, self.stride, self.tolerance, self.threshold, self.sample_step)
        kept = non_max_suppression(matches, vc.REGION_NMS_IOU)
        logger.debug("regions: %d windows above threshold, %d after NMS", len(matches), len(kept))
        if len(kept) < vc.REGION_COUNT:
            return None
        kept = sorted(kept, key=lambda m: m.x)[: vc.REGION_COUNT]
        return [
            CaptureRegion(index=i, name=f"card{i + 1}", box=m.box, screen_index=screen_index)
            for i, m in enumerate(kept)
        ]

    def locate(
        self,
        screen: np.ndarray,
        template: Optional[np.ndarray] = None,
        screen_index: int = 0,
        use_store: bool = True,
    ) -> List[CaptureRegion]:
        if screen is None or screen.size == 0:
            raise NoRegionsConfigured("empty screen capture")
        H, W = screen.shape[:2]

        if use_store:
            regions = self.stored(W, H, screen_index)
            if regions is not None:
                self.last_method = "stored"
                return regions

        regions = self.detect(screen, template, screen_index)
        if regions is not None:
            self.last_method = "template"
            logger.info("regions: detected card frames at %s", [r.box for r in regions])
            if self.store is not None:
                self.store.save(regions, (W, H))
            return regions

        self.last_method = "layout"
        logger.info("regions: using layout fallback for %dx%d", W, H)
        return heuristic_layout(W, H, screen_index)


__all__ = [
    "CaptureRegion",
    "RegionLocator",
    "RegionStore",
    "heuristic_layout",
    "local_box",
    "sub_box",
]
