"""Locate the three card regions on the current screen and print them."""
from __future__ import annotations

import sys
from pathlib import Path

root = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(root / "src"))

from draftsight.config import vision as vc  # noqa: E402
from draftsight.core.config import ConfigManager  # noqa: E402
from draftsight.data.cards import ReferenceStore  # noqa: E402
from draftsight.io.capture import MssCaptureProvider  # noqa: E402
from draftsight.tracker import resolve_data_dir  # noqa: E402
from draftsight.vision.regions import RegionLocator, RegionStore  # noqa: E402


def main() -> None:
    cfg = ConfigManager()
    store = ReferenceStore.load(resolve_data_dir(cfg))
    rescan = "--rescan" in sys.argv
    if rescan:
        store.require("card template")
    capture = MssCaptureProvider(skip_black=False)
    screen = capture.capture_screen(0)

    locator = RegionLocator(template=store.card_template, store=RegionStore(cfg), sample_step=vc.REGION_SCAN_SAMPLE_STEP)
    regions = locator.locate(screen, use_store=not rescan)
    print(f"Method: {locator.last_method} ({screen.shape[1]}x{screen.shape[0]})")
    for r in regions:
        print(f"  {r.name}: box={r.box} cost={tuple(round(v) for v in r.cost_box())} "
              f"rarity={tuple(round(v) for v in r.rarity_box())}")


if __name__ == "__main__":
    main()
