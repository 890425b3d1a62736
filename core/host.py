"""
Trading host interface.

The host owns order routing, market data and position lifecycle. The panel
only talks to it through this small surface so a paper host and a real
platform bridge are interchangeable.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, asdict
from datetime import datetime
from typing import List, Optional

from core.atr_levels import OrderLeg, TradeDirection


@dataclass
class SymbolInfo:
    symbol: str
    bid: float
    ask: float
    pip_size: float
    digits: int


@dataclass
class HostPosition:
    position_id: str
    symbol: str
    label: str
    direction: TradeDirection
    volume: float
    entry_price: float
    stop_loss: Optional[float] = None
    take_profit: Optional[float] = None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["direction"] = self.direction.value
        return data


@dataclass
class TradeResult:
    success: bool
    position_id: Optional[str] = None
    order_id: Optional[str] = None
    error: Optional[str] = None


class TradingHost(ABC):
    """Abstract trading host used by the panel engine and trail controller."""

    @abstractmethod
    def symbol_info(self, symbol: str) -> SymbolInfo:
        """Current bid/ask and precision for ``symbol``."""

    @abstractmethod
    def latest_atr(self, symbol: str) -> Optional[float]:
        """Latest ATR value the host's indicator produced, if any."""

    @abstractmethod
    def normalize_volume(self, volume: float) -> float:
        """Round ``volume`` down to the tradable lot step."""

    @abstractmethod
    def server_time(self) -> datetime:
        pass

    @abstractmethod
    def execute_market_order(self, symbol: str, leg: OrderLeg) -> TradeResult:
        pass

    @abstractmethod
    def place_limit_order(self, symbol: str, leg: OrderLeg) -> TradeResult:
        pass

    @abstractmethod
    def place_stop_order(self, symbol: str, leg: OrderLeg) -> TradeResult:
        pass

    @abstractmethod
    def modify_stop_loss(self, position_id: str, stop_loss: float) -> TradeResult:
        pass

    @abstractmethod
    def find_positions(self, label: str, symbol: str) -> List[HostPosition]:
        """Open positions carrying ``label`` on ``symbol``."""
