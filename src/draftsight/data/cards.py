"""
Reference data store.

Loads the read-only tables the matchers work from:

    <data_dir>/cards.json                 list of {id, name, cost, rarity, ...}
    <data_dir>/card_hashes.json           {card_id: hex_hash} (or list of {id, hash})
    <data_dir>/templates/cost/<n>.png     cost icons 0..10
    <data_dir>/templates/rarity/<t>.png   rarity gems (common, rare, epic, legendary)
    <data_dir>/templates/card_template.png  full card frame for region location

Every piece is optional. A missing piece leaves the dependent matcher not
ready (see `missing()`), it never aborts loading.
"""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional
import json
import logging

import cv2
import numpy as np

from ..config.vision import MAX_COST, RARITY_TIERS
from ..core.errors import ReferenceDataMissing

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CardRecord:
    id: str
    name: str
    cost: Optional[int] = None
    rarity: Optional[str] = None
    hash: Optional[str] = None

    @classmethod
    def from_json(cls, raw: Mapping, ref_hash: Optional[str] = None) -> "CardRecord":
        cost = raw.get("cost")
        rarity = raw.get("rarity")
        return cls(
            id=str(raw["id"]),
            name=str(raw.get("name") or raw["id"]),
            cost=int(cost) if cost is not None else None,
            rarity=str(rarity).lower() if rarity else None,
            hash=ref_hash,
        )


def _read_json(path: Path):
    try:
        with path.open("r", encoding="utf-8") as fh:
            return json.load(fh)
    except FileNotFoundError:
        logger.warning("reference: %s not found", path)
    except (OSError, ValueError) as e:
        logger.warning("reference: failed to read %s: %s", path, e)
    return None


def _read_image(path: Path) -> Optional[np.ndarray]:
    if not path.exists():
        return None
    img = cv2.imread(str(path), cv2.IMREAD_COLOR)
    if img is None:
        logger.warning("reference: unreadable image %s", path)
    return img


def _parse_hashes(raw) -> Dict[str, str]:
    if isinstance(raw, dict):
        return {str(k): str(v) for k, v in raw.items() if v}
    out: Dict[str, str] = {}
    if isinstance(raw, list):
        for item in raw:
            try:
                out[str(item["id"])] = str(item["hash"])
            except (KeyError, TypeError):
                continue
    return out


class ReferenceStore:
    """Read-only reference tables shared by every matcher."""

    def __init__(
        self,
        cards: Iterable[CardRecord] = (),
        cost_templates: Optional[Dict[int, np.ndarray]] = None,
        rarity_templates: Optional[Dict[str, np.ndarray]] = None,
        card_template: Optional[np.ndarray] = None,
    ) -> None:
        self._cards: Dict[str, CardRecord] = {c.id: c for c in cards}
        self.cost_templates: Dict[int, np.ndarray] = dict(cost_templates or {})
        self.rarity_templates: Dict[str, np.ndarray] = dict(rarity_templates or {})
        self.card_template = card_template

    @classmethod
    def load(cls, data_dir: Path) -> "ReferenceStore":
        data_dir = Path(data_dir)
        hashes = _parse_hashes(_read_json(data_dir / "card_hashes.json") or {})

        raw_cards = _read_json(data_dir / "cards.json") or []
        if isinstance(raw_cards, dict):
            raw_cards = raw_cards.get("cards", [])
        cards: List[CardRecord] = []
        for raw in raw_cards:
            try:
                cards.append(CardRecord.from_json(raw, hashes.get(str(raw.get("id")))))
            except (KeyError, TypeError, ValueError) as e:
                logger.debug("reference: skipping card entry %r: %s", raw, e)

        # Hashes without a card record still identify a card by id
        known = {c.id for c in cards}
        for card_id, h in hashes.items():
            if card_id not in known:
                cards.append(CardRecord(id=card_id, name=card_id, hash=h))

        tpl_dir = data_dir / "templates"
        cost_templates: Dict[int, np.ndarray] = {}
        for n in range(MAX_COST + 1):
            img = _read_image(tpl_dir / "cost" / f"{n}.png")
            if img is not None:
                cost_templates[n] = img
        rarity_templates: Dict[str, np.ndarray] = {}
        for tier in RARITY_TIERS:
            img = _read_image(tpl_dir / "rarity" / f"{tier}.png")
            if img is not None:
                rarity_templates[tier] = img

        store = cls(cards, cost_templates, rarity_templates, _read_image(tpl_dir / "card_template.png"))
        logger.info(
            "reference: loaded %d cards (%d hashed), %d cost and %d rarity templates from %s",
            len(store), len(store.hashes), len(cost_templates), len(rarity_templates), data_dir,
        )
        for part in store.missing():
            logger.warning("reference: %s unavailable; dependent matcher disabled", part)
        return store

    def __len__(self) -> int:
        return len(self._cards)

    def __contains__(self, card_id: object) -> bool:
        return card_id in self._cards

    def get(self, card_id: Optional[str]) -> Optional[CardRecord]:
        if card_id is None:
            return None
        return self._cards.get(card_id)

    def cards(self) -> List[CardRecord]:
        return list(self._cards.values())

    @property
    def hashes(self) -> Dict[str, str]:
        return {c.id: c.hash for c in self._cards.values() if c.hash}

    def consistent_with(self, cost: Optional[int] = None, rarity: Optional[str] = None) -> List[CardRecord]:
        """Cards whose cost (and rarity, when given) match the detected icons."""
        out = []
        for c in self._cards.values():
            if cost is not None and c.cost != cost:
                continue
            if rarity is not None and c.rarity != rarity:
                continue
            out.append(c)
        return out

    def missing(self) -> List[str]:
        parts = []
        if not self._cards:
            parts.append("cards")
        if not self.hashes:
            parts.append("hashes")
        if not self.cost_templates:
            parts.append("cost templates")
        if not self.rarity_templates:
            parts.append("rarity templates")
        if self.card_template is None:
            parts.append("card template")
        return parts

    def require(self, part: str) -> None:
        if part in self.missing():
            raise ReferenceDataMissing(part)
