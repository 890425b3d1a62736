"""
Panel state shared between the UI adapters and the engine.

Inputs mirror the order-entry fields; outputs mirror the "Snapshot Info"
block. Adapters only read and write this struct, they hold no trading logic.
"""

from __future__ import annotations

from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional

from core.config import PanelSettings

INPUT_FIELDS = (
    "volume",
    "stop_loss_price",
    "take_profit_price",
    "entry_price",
    "trail_atr",
    "expire_after_minutes",
)


@dataclass
class PanelInputs:
    volume: Optional[float] = None
    stop_loss_price: Optional[float] = None
    take_profit_price: Optional[float] = None
    entry_price: Optional[float] = None
    trail_atr: Optional[float] = None
    expire_after_minutes: int = 0


@dataclass
class PanelOutputs:
    atr_value_snapshot: Optional[float] = None
    trail_atr_snapshot: Optional[float] = None


@dataclass
class PanelState:
    symbol: str
    label: str
    inputs: PanelInputs
    outputs: PanelOutputs
    last_message: Optional[str] = None

    @classmethod
    def from_settings(cls, settings: PanelSettings) -> "PanelState":
        return cls(
            symbol=settings.symbol,
            label=settings.label,
            inputs=PanelInputs(
                volume=settings.volume,
                stop_loss_price=settings.stop_loss_price,
                take_profit_price=settings.take_profit_price,
                entry_price=settings.entry_price,
                trail_atr=settings.trail_atr,
                expire_after_minutes=settings.expire_after_minutes,
            ),
            outputs=PanelOutputs(),
        )

    def update_inputs(self, **values: Any) -> None:
        for key, value in values.items():
            if key not in INPUT_FIELDS:
                raise KeyError(f"Unknown panel input: {key}")
            if key == "expire_after_minutes":
                value = int(value or 0)
            elif value in ("", 0, 0.0):
                # an empty or zero field means "not set", as in the panel text boxes
                value = None
            elif value is not None:
                value = float(value)
            setattr(self.inputs, key, value)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "label": self.label,
            "inputs": asdict(self.inputs),
            "outputs": asdict(self.outputs),
            "last_message": self.last_message,
        }
