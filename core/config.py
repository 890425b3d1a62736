"""
Config loading utilities.

- Loads YAML config (e.g., configs/dev.yaml).
- Merges an optional operator-local override file on top.
- Exposes typed panel settings for the engine.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

logger = logging.getLogger(__name__)

BASE_DIR = Path(__file__).resolve().parents[1]
LOCAL_OVERRIDES_PATH = BASE_DIR / "configs" / "local.yaml"

DEFAULT_LABEL = "AtrScaleOutPanel"
DEFAULT_SNAPSHOT_PATH = "artifacts/atr_snapshots.csv"


@dataclass
class AppConfig:
    raw: Dict[str, Any]

    @property
    def panel(self) -> Dict[str, Any]:
        return self.raw.get("panel") or {}

    @property
    def atr(self) -> Dict[str, Any]:
        return self.raw.get("atr") or {}

    @property
    def snapshots(self) -> Dict[str, Any]:
        return self.raw.get("snapshots") or {}

    @property
    def logging(self) -> Dict[str, Any]:
        return self.raw.get("logging") or {}

    @property
    def server(self) -> Dict[str, Any]:
        return self.raw.get("server") or {}

    @property
    def paper(self) -> Dict[str, Any]:
        return self.raw.get("paper") or {}


def load_config(path: str, *, overrides_path: Optional[Path] = None) -> AppConfig:
    if not os.path.exists(path):
        raise FileNotFoundError(f"Config file not found: {path}")
    with open(path, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}
    _apply_local_overrides(raw, overrides_path or LOCAL_OVERRIDES_PATH)
    return AppConfig(raw=raw)


def _apply_local_overrides(raw: Dict[str, Any], path: Path) -> None:
    if not path.exists():
        return
    try:
        overrides = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except Exception as exc:  # noqa: BLE001
        logger.warning("Failed to read local overrides at %s: %s", path, exc)
        return
    if not isinstance(overrides, dict) or not overrides:
        return
    _recursive_merge(raw, overrides)
    logger.info(
        "Applied local overrides from %s (keys=%s)",
        path,
        ", ".join(overrides.keys()),
    )


def _recursive_merge(target: Dict[str, Any], overrides: Dict[str, Any]) -> None:
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(target.get(key), dict):
            _recursive_merge(target[key], value)
        else:
            target[key] = value


def _opt_float(value: Any) -> Optional[float]:
    if value in (None, ""):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


@dataclass
class PanelSettings:
    """Defaults shown in the panel plus the knobs the engine needs."""

    symbol: str = "EURUSD"
    label: str = DEFAULT_LABEL
    volume: float = 2000.0
    min_scale_out_volume: float = 2000.0
    trail_atr: float = 1.5
    expire_after_minutes: int = 1
    stop_loss_price: Optional[float] = None
    take_profit_price: Optional[float] = None
    entry_price: Optional[float] = None
    stop_atr_multiplier: float = 0.0
    profit_atr_multiplier: float = 0.0
    snapshot_path: str = DEFAULT_SNAPSHOT_PATH

    @classmethod
    def from_config(cls, cfg: AppConfig) -> "PanelSettings":
        panel = cfg.panel
        atr = cfg.atr
        snapshots = cfg.snapshots
        defaults = cls()
        return cls(
            symbol=str(panel.get("symbol", defaults.symbol)),
            label=str(panel.get("label", defaults.label)),
            volume=float(panel.get("volume", defaults.volume)),
            min_scale_out_volume=float(panel.get("min_scale_out_volume", defaults.min_scale_out_volume)),
            trail_atr=float(panel.get("trail_atr", defaults.trail_atr)),
            expire_after_minutes=int(panel.get("expire_after_minutes", defaults.expire_after_minutes)),
            stop_loss_price=_opt_float(panel.get("stop_loss_price")),
            take_profit_price=_opt_float(panel.get("take_profit_price")),
            entry_price=_opt_float(panel.get("entry_price")),
            stop_atr_multiplier=float(atr.get("stop_multiplier", defaults.stop_atr_multiplier)),
            profit_atr_multiplier=float(atr.get("profit_multiplier", defaults.profit_atr_multiplier)),
            snapshot_path=str(snapshots.get("path", defaults.snapshot_path)),
        )
