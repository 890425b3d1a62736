"""
ATR scale-out panel - HTTP entrypoint on the paper host.

Usage:
    python -m apps.run_panel --config configs/dev.yaml
"""

from __future__ import annotations

import argparse
import logging
import sys

import uvicorn

from apps.server import create_app
from core.config import load_config
from core.logging_utils import setup_logging
from core.snapshot_store import SnapshotStoreError

logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="ATR scale-out trading panel (paper host)")
    parser.add_argument(
        "--config",
        default="configs/dev.yaml",
        help="Path to YAML config file (default: configs/dev.yaml)",
    )
    parser.add_argument("--host", default=None, help="Bind address (overrides server.host)")
    parser.add_argument("--port", type=int, default=None, help="Bind port (overrides server.port)")
    args = parser.parse_args(argv)

    try:
        cfg = load_config(args.config)
    except Exception as exc:
        print(f"ERROR: Failed to load config from {args.config}: {exc}")
        sys.exit(1)

    setup_logging(cfg.logging)

    try:
        app = create_app(cfg)
    except SnapshotStoreError as exc:
        logger.error("Cannot start panel: %s", exc)
        sys.exit(1)

    server_cfg = cfg.server
    uvicorn.run(
        app,
        host=args.host or server_cfg.get("host", "127.0.0.1"),
        port=int(args.port or server_cfg.get("port", 8765)),
        log_config=None,
    )


if __name__ == "__main__":
    main()
