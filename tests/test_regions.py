import numpy as np
import pytest

from draftsight.core.errors import NoRegionsConfigured
from draftsight.vision.matcher import WindowMatch, iou, non_max_suppression, pixel_match_score
from draftsight.vision.regions import CaptureRegion, RegionLocator, RegionStore, heuristic_layout, local_box


class DummyConfig:
    def __init__(self):
        self.values = {}
        self.saves = 0

    def get(self, key, fallback=None):
        return self.values.get(key, fallback)

    def set(self, key, value):
        self.values[key] = str(value)

    def save(self):
        self.saves += 1


def _scene(positions, tpl_shape=(60, 40), screen_shape=(200, 600), seed=7):
    rng = np.random.default_rng(seed)
    template = rng.integers(0, 256, size=tpl_shape + (3,), dtype=np.uint8)
    screen = np.zeros(screen_shape + (3,), dtype=np.uint8)
    th, tw = tpl_shape
    for x, y in positions:
        screen[y:y + th, x:x + tw] = template
    return screen, template


def test_heuristic_layout_geometry():
    regions = heuristic_layout(1920, 1080)
    assert [r.name for r in regions] == ["card1", "card2", "card3"]
    assert regions[0].box == (432, 378, 288, 324)
    assert regions[1].box == (816, 378, 288, 324)
    assert regions[2].box == (1200, 378, 288, 324)


def test_pixel_match_score_tolerance():
    a = np.zeros((10, 10, 3), dtype=np.uint8)
    b = a.copy()
    b[:5] = 40  # distance sqrt(3)*40 ~ 69 > 50
    assert pixel_match_score(a, a) == 1.0
    assert pixel_match_score(a, b) == pytest.approx(0.5)
    assert pixel_match_score(a, np.zeros((5, 5, 3), dtype=np.uint8)) == 0.0


def test_iou_and_nms():
    assert iou((0, 0, 10, 10), (0, 0, 10, 10)) == pytest.approx(1.0)
    assert iou((0, 0, 10, 10), (20, 20, 5, 5)) == 0.0
    matches = [
        WindowMatch(0, 0, 10, 10, 0.9),
        WindowMatch(1, 0, 10, 10, 0.95),  # overlaps the first heavily
        WindowMatch(50, 0, 10, 10, 0.8),
    ]
    kept = non_max_suppression(matches, 0.5)
    assert [m.x for m in kept] == [1, 50]


def test_detect_finds_three_frames_left_to_right():
    screen, template = _scene([(510, 70), (50, 70), (300, 70)])
    locator = RegionLocator(template=template)
    regions = locator.locate(screen, use_store=False)
    assert locator.last_method == "template"
    assert [r.box for r in regions] == [(50, 70, 40, 60), (300, 70, 40, 60), (510, 70, 40, 60)]
    assert [r.index for r in regions] == [0, 1, 2]


def test_too_few_frames_falls_back_to_layout():
    screen, template = _scene([(50, 70), (300, 70)])
    locator = RegionLocator(template=template)
    regions = locator.locate(screen, use_store=False)
    assert locator.last_method == "layout"
    assert regions == heuristic_layout(600, 200)


def test_locate_is_idempotent():
    screen, template = _scene([(50, 70), (300, 70), (510, 70)])
    locator = RegionLocator(template=template)
    assert locator.locate(screen, use_store=False) == locator.locate(screen, use_store=False)


def test_empty_screen_raises():
    with pytest.raises(NoRegionsConfigured):
        RegionLocator().locate(np.zeros((0, 0, 3), dtype=np.uint8))


def test_detection_is_persisted_and_reused():
    cfg = DummyConfig()
    store = RegionStore(cfg)
    screen, template = _scene([(50, 70), (300, 70), (510, 70)])
    first = RegionLocator(template=template, store=store).locate(screen)
    assert cfg.values["card_regions_resolution"] == "600x200"
    assert cfg.saves == 1

    # A locator without a template still reuses the stored geometry
    again = RegionLocator(store=store)
    assert again.locate(screen) == first
    assert again.last_method == "stored"


@pytest.mark.parametrize("current,valid", [
    ((1920, 1080), True),
    ((1970, 1030), True),
    ((1971, 1080), False),
    ((1920, 1131), False),
])
def test_stored_regions_resolution_tolerance(current, valid):
    cfg = DummyConfig()
    store = RegionStore(cfg)
    store.save(heuristic_layout(1920, 1080), (1920, 1080))
    loaded = store.load(current)
    assert (loaded is not None) == valid


def test_stored_regions_need_exactly_three():
    cfg = DummyConfig()
    cfg.set("card_regions", "1,2,3,4;5,6,7,8")
    cfg.set("card_regions_resolution", "1920x1080")
    assert RegionStore(cfg).load((1920, 1080)) is None
    with pytest.raises(ValueError):
        RegionStore(cfg).save(heuristic_layout(1920, 1080)[:2], (1920, 1080))


def test_relative_regions_scale_to_screen():
    cfg = DummyConfig()
    store = RegionStore(cfg)
    rel = [
        CaptureRegion(index=i, name=f"card{i + 1}", box=(x, 0.4, 0.22, 0.4), relative=True)
        for i, x in enumerate((0.12, 0.41, 0.7))
    ]
    store.save(rel, None)
    regions = RegionLocator(store=store).stored(1000, 500)
    assert regions is not None
    assert regions[0].box == (120, 200, 220, 200)
    assert not regions[0].relative


def test_sub_regions():
    r = CaptureRegion(index=0, name="card1", box=(100, 200, 300, 400))
    assert r.cost_box() == pytest.approx((100, 200, 60, 40))
    assert r.rarity_box() == pytest.approx((220, 520, 60, 40))
    assert local_box(300, 400, (0.0, 0.0, 0.2, 0.1)) == (0, 0, 60, 40)


def test_clear_forgets_stored_regions():
    cfg = DummyConfig()
    store = RegionStore(cfg)
    store.save(heuristic_layout(1920, 1080), (1920, 1080))
    store.clear()
    assert store.load((1920, 1080)) is None
    assert cfg.values["card_regions"] == ""
