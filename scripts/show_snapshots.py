"""
Inspect the ATR snapshot store.

Prints one line per symbol with the last stored ATR value, and optionally
removes a stale symbol.

Usage:
    python -m scripts.show_snapshots
    python -m scripts.show_snapshots --config configs/dev.yaml --delete EURUSD
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from core.config import PanelSettings, load_config
from core.snapshot_store import SnapshotStore, SnapshotStoreError

BASE_DIR = Path(__file__).resolve().parents[1]


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Show stored ATR snapshots")
    parser.add_argument("--config", default="configs/dev.yaml")
    parser.add_argument("--path", default=None, help="Snapshot CSV path (overrides config)")
    parser.add_argument("--delete", default=None, metavar="SYMBOL", help="Remove SYMBOL from the store")
    args = parser.parse_args(argv)

    if args.path:
        path = Path(args.path)
    else:
        settings = PanelSettings.from_config(load_config(args.config))
        path = Path(settings.snapshot_path)
        if not path.is_absolute():
            path = BASE_DIR / path

    try:
        store = SnapshotStore(path)
    except SnapshotStoreError as exc:
        print(f"ERROR: {exc}")
        return 1

    if args.delete:
        if not store.delete(args.delete):
            print(f"ERROR: could not delete {args.delete}")
            return 1
        print(f"Deleted {args.delete}")

    snapshots = store.all()
    print(f"ATR snapshots @ {path}")
    print("=" * 40)
    if not snapshots:
        print("No snapshots stored.")
        return 0
    for snap in snapshots:
        print(f"  {snap.symbol:<12} {snap.atr_value:>14.6f}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
