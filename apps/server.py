from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from fastapi import FastAPI

from apps.panel_api import PanelService, router as panel_router
from broker.paper_host import PaperHost
from core.config import AppConfig, PanelSettings
from core.host import TradingHost
from core.snapshot_store import SnapshotStore
from engine.panel_engine import PanelEngine

logger = logging.getLogger(__name__)

BASE_DIR = Path(__file__).resolve().parents[1]


def build_engine(cfg: AppConfig, host: Optional[TradingHost] = None) -> PanelEngine:
    settings = PanelSettings.from_config(cfg)
    snapshot_path = Path(settings.snapshot_path)
    if not snapshot_path.is_absolute():
        snapshot_path = BASE_DIR / snapshot_path
    # SnapshotStoreError propagates: the panel cannot run without its store.
    store = SnapshotStore(snapshot_path)
    host = host or PaperHost.from_config(settings.symbol, cfg.paper)
    logger.info(
        "Panel engine ready: symbol=%s label=%s store=%s host=%s",
        settings.symbol,
        settings.label,
        snapshot_path,
        type(host).__name__,
    )
    return PanelEngine(host, store, settings)


def create_app(cfg: AppConfig, host: Optional[TradingHost] = None) -> FastAPI:
    app = FastAPI(title="ATR Scale-Out Panel")
    app.state.panel = PanelService(build_engine(cfg, host))
    app.include_router(panel_router)
    return app
