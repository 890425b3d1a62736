"""
In-memory paper host.

- Simulates one instrument's quotes, positions and pending orders.
- Does NOT talk to any platform or place real orders.
- Quote updates fill pending orders and close positions on SL/TP hits; the
  caller forwards the returned closed positions to the panel engine.
"""

from __future__ import annotations

import itertools
import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from core.atr_levels import OrderLeg, OrderType, TradeDirection
from core.host import HostPosition, SymbolInfo, TradeResult, TradingHost

logger = logging.getLogger(__name__)


@dataclass
class PendingOrder:
    order_id: str
    symbol: str
    leg: OrderLeg

    def to_dict(self) -> dict:
        return {
            "order_id": self.order_id,
            "symbol": self.symbol,
            "side": self.leg.direction.value,
            "type": self.leg.order_type.value,
            "price": self.leg.price,
            "volume": self.leg.volume,
            "expiry": self.leg.expiry.isoformat() if self.leg.expiry else None,
        }


class PaperHost(TradingHost):
    def __init__(
        self,
        symbol: str,
        *,
        bid: float,
        ask: float,
        pip_size: float = 0.0001,
        digits: int = 4,
        atr: Optional[float] = None,
        lot_step: float = 1000.0,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.symbol = symbol
        self.bid = bid
        self.ask = ask
        self.pip_size = pip_size
        self.digits = digits
        self.atr = atr
        self.lot_step = lot_step
        self.reject_orders = False
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._ids = itertools.count(1)
        self.positions: Dict[str, HostPosition] = {}
        self.pending: List[PendingOrder] = []
        self.closed: List[HostPosition] = []

    @classmethod
    def from_config(cls, symbol: str, paper_cfg: Dict) -> "PaperHost":
        return cls(
            symbol,
            bid=float(paper_cfg.get("bid", 1.0)),
            ask=float(paper_cfg.get("ask", 1.0)),
            pip_size=float(paper_cfg.get("pip_size", 0.0001)),
            digits=int(paper_cfg.get("digits", 4)),
            atr=paper_cfg.get("atr"),
            lot_step=float(paper_cfg.get("lot_step", 1000)),
        )

    # --- TradingHost -------------------------------------------------------
    def symbol_info(self, symbol: str) -> SymbolInfo:
        self._check_symbol(symbol)
        return SymbolInfo(symbol=symbol, bid=self.bid, ask=self.ask, pip_size=self.pip_size, digits=self.digits)

    def latest_atr(self, symbol: str) -> Optional[float]:
        self._check_symbol(symbol)
        return self.atr

    def normalize_volume(self, volume: float) -> float:
        if self.lot_step <= 0:
            return volume
        return math.floor(volume / self.lot_step) * self.lot_step

    def server_time(self) -> datetime:
        return self._clock()

    def execute_market_order(self, symbol: str, leg: OrderLeg) -> TradeResult:
        self._check_symbol(symbol)
        if self.reject_orders:
            return TradeResult(False, error="rejected by paper host")
        if leg.volume <= 0:
            return TradeResult(False, error="volume must be > 0")
        price = self.ask if leg.direction == TradeDirection.BUY else self.bid
        position = self._open_position(symbol, leg, price)
        return TradeResult(True, position_id=position.position_id)

    def place_limit_order(self, symbol: str, leg: OrderLeg) -> TradeResult:
        return self._place_pending(symbol, leg, OrderType.LIMIT)

    def place_stop_order(self, symbol: str, leg: OrderLeg) -> TradeResult:
        return self._place_pending(symbol, leg, OrderType.STOP)

    def modify_stop_loss(self, position_id: str, stop_loss: float) -> TradeResult:
        position = self.positions.get(position_id)
        if position is None:
            return TradeResult(False, position_id=position_id, error="position not found")
        position.stop_loss = stop_loss
        return TradeResult(True, position_id=position_id)

    def find_positions(self, label: str, symbol: str) -> List[HostPosition]:
        return [p for p in self.positions.values() if p.label == label and p.symbol == symbol]

    # --- simulation --------------------------------------------------------
    def set_atr(self, atr: Optional[float]) -> None:
        self.atr = atr

    def set_quote(self, bid: float, ask: float) -> List[HostPosition]:
        """Move the market; returns positions closed by stop loss or take profit."""
        if bid > ask:
            raise ValueError("bid must be <= ask")
        self.bid = bid
        self.ask = ask
        self._expire_pending()
        self._fill_pending()
        return self._check_exits()

    def close_position(self, position_id: str) -> HostPosition:
        position = self.positions.pop(position_id)
        self.closed.append(position)
        return position

    def to_state_dict(self) -> dict:
        return {
            "symbol": self.symbol,
            "bid": self.bid,
            "ask": self.ask,
            "atr": self.atr,
            "positions": [p.to_dict() for p in self.positions.values()],
            "pending_orders": [o.to_dict() for o in self.pending],
        }

    # --- internals ---------------------------------------------------------
    def _check_symbol(self, symbol: str) -> None:
        if symbol != self.symbol:
            raise KeyError(f"Paper host only simulates {self.symbol}, got {symbol}")

    def _place_pending(self, symbol: str, leg: OrderLeg, order_type: OrderType) -> TradeResult:
        self._check_symbol(symbol)
        if self.reject_orders:
            return TradeResult(False, error="rejected by paper host")
        if leg.price is None:
            return TradeResult(False, error=f"{order_type.value} order requires a price")
        order = PendingOrder(order_id=f"O{next(self._ids)}", symbol=symbol, leg=leg)
        self.pending.append(order)
        return TradeResult(True, order_id=order.order_id)

    def _open_position(self, symbol: str, leg: OrderLeg, price: float) -> HostPosition:
        sign = 1 if leg.direction == TradeDirection.BUY else -1
        stop_loss = round(price - sign * leg.stop_loss_pips * self.pip_size, self.digits)
        take_profit = None
        if leg.take_profit_pips is not None:
            take_profit = round(price + sign * leg.take_profit_pips * self.pip_size, self.digits)
        position = HostPosition(
            position_id=f"P{next(self._ids)}",
            symbol=symbol,
            label=leg.label,
            direction=leg.direction,
            volume=leg.volume,
            entry_price=price,
            stop_loss=stop_loss,
            take_profit=take_profit,
        )
        self.positions[position.position_id] = position
        logger.debug("Paper position opened: %s", position)
        return position

    def _expire_pending(self) -> None:
        now = self.server_time()
        self.pending = [o for o in self.pending if o.leg.expiry is None or o.leg.expiry > now]

    def _fill_pending(self) -> None:
        remaining: List[PendingOrder] = []
        for order in self.pending:
            leg = order.leg
            price = leg.price
            if leg.direction == TradeDirection.BUY:
                hit = self.ask <= price if leg.order_type == OrderType.LIMIT else self.ask >= price
            else:
                hit = self.bid >= price if leg.order_type == OrderType.LIMIT else self.bid <= price
            if hit:
                self._open_position(order.symbol, leg, price)
            else:
                remaining.append(order)
        self.pending = remaining

    def _check_exits(self) -> List[HostPosition]:
        closed: List[HostPosition] = []
        for position in list(self.positions.values()):
            if position.direction == TradeDirection.BUY:
                stop_hit = position.stop_loss is not None and self.bid <= position.stop_loss
                tp_hit = position.take_profit is not None and self.bid >= position.take_profit
            else:
                stop_hit = position.stop_loss is not None and self.ask >= position.stop_loss
                tp_hit = position.take_profit is not None and self.ask <= position.take_profit
            if stop_hit or tp_hit:
                closed.append(self.close_position(position.position_id))
        return closed
