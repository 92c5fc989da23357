"""
Screen capture adapter.

The detection loop only ever asks for a rectangle on a screen; it never
enumerates displays. MssCaptureProvider fulfils that with a thread-local mss
instance per worker thread (mss handles are not shareable across threads).
Frames are returned as BGR uint8 arrays. Any grab failure, and near-black
frames from exclusive fullscreen, raise CaptureUnavailable.
"""
from __future__ import annotations

from typing import Dict, Optional, Protocol, Tuple, runtime_checkable
import logging
import threading
import time

import mss
import numpy as np

from ..core.errors import CaptureUnavailable
from ..vision.regions import CaptureRegion

logger = logging.getLogger(__name__)

BLACK_STD_SKIP = 1.0


@runtime_checkable
class CaptureProvider(Protocol):
    def capture(self, region: CaptureRegion) -> np.ndarray: ...
    def screen_size(self, screen_index: int = 0) -> Tuple[int, int]: ...


class MssCaptureProvider:
    def __init__(self, skip_black: bool = True) -> None:
        self._tls = threading.local()
        self.skip_black = skip_black

    def _get_sct(self, force_new: bool = False):
        sct = getattr(self._tls, "sct", None)
        if force_new or sct is None:
            if sct is not None:
                try:
                    sct.close()
                except Exception:
                    pass
            sct = mss.mss()
            self._tls.sct = sct
        return sct

    def _monitor(self, screen_index: int) -> Dict[str, int]:
        monitors = self._get_sct().monitors
        # monitors[0] is the virtual desktop; physical screens start at 1
        idx = 1 + int(screen_index)
        if idx >= len(monitors):
            raise CaptureUnavailable(f"screen {screen_index} not available ({len(monitors) - 1} screens)")
        return monitors[idx]

    def _safe_grab(self, box: Dict[str, int]):
        sct = self._get_sct()
        try:
            return sct.grab(box)
        except AttributeError:
            sct = self._get_sct(force_new=True)
            return sct.grab(box)

    def screen_size(self, screen_index: int = 0) -> Tuple[int, int]:
        mon = self._monitor(screen_index)
        return int(mon["width"]), int(mon["height"])

    def capture(self, region: CaptureRegion) -> np.ndarray:
        """Grab an absolute region (screen-relative pixels, scaled by region.scale)."""
        if region.relative:
            region = region.absolute(*self.screen_size(region.screen_index))
        mon = self._monitor(region.screen_index)
        x, y, w, h = region.box
        s = float(region.scale or 1.0)
        box = {
            "left": int(mon["left"] + round(x * s)),
            "top": int(mon["top"] + round(y * s)),
            "width": max(1, int(round(w * s))),
            "height": max(1, int(round(h * s))),
        }
        t0 = time.perf_counter()
        try:
            frame = np.array(self._safe_grab(box))  # BGRA
        except mss.exception.ScreenShotError as e:
            raise CaptureUnavailable(f"grab failed for {region.name}: {e}") from e
        logger.debug("capture: %s %.1fms box=%s", region.name, (time.perf_counter() - t0) * 1000.0, box)
        if frame.size == 0:
            raise CaptureUnavailable(f"empty frame for {region.name}")
        bgr = np.ascontiguousarray(frame[:, :, :3])
        if self.skip_black and float(bgr.std()) < BLACK_STD_SKIP:
            raise CaptureUnavailable(f"near-black frame for {region.name}")
        return bgr

    def capture_screen(self, screen_index: int = 0) -> np.ndarray:
        w, h = self.screen_size(screen_index)
        return self.capture(CaptureRegion(index=-1, name="screen", box=(0, 0, w, h), screen_index=screen_index))

    def close(self) -> None:
        sct: Optional[object] = getattr(self._tls, "sct", None)
        if sct is not None:
            try:
                sct.close()  # type: ignore[attr-defined]
            except Exception:
                pass
            self._tls.sct = None


__all__ = ["CaptureProvider", "MssCaptureProvider"]
