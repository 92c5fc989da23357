"""Build card_hashes.json from a folder of card images named <card_id>.png."""
from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

root = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(root / "src"))

from draftsight.vision.hash_matcher import build_hash_table  # noqa: E402


def main() -> None:
    p = argparse.ArgumentParser(description=__doc__)
    p.add_argument("images_dir", type=Path)
    p.add_argument("output", type=Path, nargs="?", help="default: <images_dir>/../card_hashes.json")
    args = p.parse_args()

    if not args.images_dir.is_dir():
        print(f"Not a directory: {args.images_dir}")
        sys.exit(1)
    table = build_hash_table(args.images_dir)
    out = args.output or args.images_dir.parent / "card_hashes.json"
    out.write_text(json.dumps(table, indent=2, sort_keys=True), encoding="utf-8")
    print(f"Wrote {len(table)} hashes to {out}")


if __name__ == "__main__":
    main()
