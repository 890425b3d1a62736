"""
ATR-based protective levels and scale-out order planning.

Pure functions only: no host, network or storage access.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Optional, Tuple


class TradeDirection(str, Enum):
    BUY = "BUY"
    SELL = "SELL"

    @classmethod
    def parse(cls, value: "TradeDirection | str") -> "TradeDirection":
        text = str(getattr(value, "value", value) or "").strip().upper()
        aliases = {"LONG": "BUY", "SHORT": "SELL"}
        return cls(aliases.get(text, text))


class OrderType(str, Enum):
    MARKET = "MARKET"
    LIMIT = "LIMIT"
    STOP = "STOP"


@dataclass
class ProtectiveLevels:
    direction: TradeDirection
    stop_loss: Optional[float] = None
    take_profit: Optional[float] = None
    entry: Optional[float] = None
    stop_loss_source: str = "manual"
    take_profit_source: str = "manual"


@dataclass
class LevelsDecision:
    allow: bool
    reason: Optional[str] = None


@dataclass
class OrderLeg:
    direction: TradeDirection
    volume: float
    order_type: OrderType
    stop_loss_pips: float
    take_profit_pips: Optional[float]
    label: str
    price: Optional[float] = None
    expiry: Optional[datetime] = None

    @property
    def is_runner(self) -> bool:
        return self.take_profit_pips is None


def price_to_pips(distance: float, pip_size: float) -> float:
    if pip_size <= 0:
        raise ValueError("pip_size must be > 0")
    return round(distance / pip_size, 1)


def derive_protective_levels(
    direction: TradeDirection | str,
    bid: float,
    ask: float,
    atr_value: float,
    stop_multiplier: float,
    profit_multiplier: float,
    digits: int,
    *,
    manual_stop_loss: Optional[float] = None,
    manual_take_profit: Optional[float] = None,
    entry: Optional[float] = None,
) -> ProtectiveLevels:
    """
    Fill in stop loss / take profit from ATR for any leg the user left empty.

    BUY measures from the ask, SELL from the bid. A manual price always wins.
    """
    direction = TradeDirection.parse(direction)
    levels = ProtectiveLevels(
        direction=direction,
        stop_loss=manual_stop_loss,
        take_profit=manual_take_profit,
        entry=entry,
    )

    sl_dist = atr_value * stop_multiplier
    tp_dist = atr_value * profit_multiplier

    if manual_stop_loss is None:
        raw_sl = ask - sl_dist if direction == TradeDirection.BUY else bid + sl_dist
        levels.stop_loss = round(raw_sl, digits)
        levels.stop_loss_source = "atr"

    if manual_take_profit is None:
        raw_tp = ask + tp_dist if direction == TradeDirection.BUY else bid - tp_dist
        levels.take_profit = round(raw_tp, digits)
        levels.take_profit_source = "atr"

    return levels


def validate_levels(
    direction: TradeDirection | str,
    stop_loss: float,
    take_profit: float,
    entry: Optional[float] = None,
) -> LevelsDecision:
    direction = TradeDirection.parse(direction)

    if direction == TradeDirection.BUY and take_profit <= stop_loss:
        return LevelsDecision(False, "Take profit price must be above stop loss price in Buy order.")
    if direction == TradeDirection.SELL and take_profit >= stop_loss:
        return LevelsDecision(False, "Take profit price must be below stop loss price in Sell order.")

    if entry is not None:
        if direction == TradeDirection.BUY and not (stop_loss < entry < take_profit):
            return LevelsDecision(
                False,
                "Entry price must be greater than stop loss price and smaller than take profit price in Buy order.",
            )
        if direction == TradeDirection.SELL and not (take_profit < entry < stop_loss):
            return LevelsDecision(
                False,
                "Entry price must be smaller than stop loss price and greater than take profit price in Sell order.",
            )

    return LevelsDecision(True)


def pending_order_type(direction: TradeDirection | str, entry: float, bid: float, ask: float) -> OrderType:
    """LIMIT when the entry is at or better than market, STOP when it needs a breakout."""
    direction = TradeDirection.parse(direction)
    if direction == TradeDirection.BUY:
        return OrderType.LIMIT if entry <= ask else OrderType.STOP
    return OrderType.LIMIT if entry >= bid else OrderType.STOP


def split_order_plan(
    total_volume: float,
    direction: TradeDirection | str,
    stop_loss: float,
    take_profit: float,
    pip_size: float,
    bid: float,
    ask: float,
    *,
    label: str,
    entry: Optional[float] = None,
    expiry: Optional[datetime] = None,
    normalize_volume: Optional[Callable[[float], float]] = None,
) -> Tuple[OrderLeg, OrderLeg]:
    """
    Split one requested size into a take-profit leg and a runner.

    Both legs share the stop loss; only the first carries the take profit.
    Without an entry both legs are market orders measured from the current
    price, otherwise both are pending orders measured from the entry.
    """
    direction = TradeDirection.parse(direction)
    half = total_volume / 2
    volume = normalize_volume(half) if normalize_volume else half

    if entry is None:
        base = ask if direction == TradeDirection.BUY else bid
        order_type = OrderType.MARKET
        price = None
        expiry = None
    else:
        base = entry
        order_type = pending_order_type(direction, entry, bid, ask)
        price = entry

    if direction == TradeDirection.BUY:
        sl_pips = price_to_pips(base - stop_loss, pip_size)
        tp_pips = price_to_pips(take_profit - base, pip_size)
    else:
        sl_pips = price_to_pips(stop_loss - base, pip_size)
        tp_pips = price_to_pips(base - take_profit, pip_size)

    leg_a = OrderLeg(
        direction=direction,
        volume=volume,
        order_type=order_type,
        stop_loss_pips=sl_pips,
        take_profit_pips=tp_pips,
        label=label,
        price=price,
        expiry=expiry,
    )
    leg_b = OrderLeg(
        direction=direction,
        volume=volume,
        order_type=order_type,
        stop_loss_pips=sl_pips,
        take_profit_pips=None,
        label=label,
        price=price,
        expiry=expiry,
    )
    return leg_a, leg_b


def trail_candidate(
    direction: TradeDirection | str,
    bid: float,
    ask: float,
    atr_value: float,
    trail_multiplier: float,
) -> float:
    """BUY trails below the bid, SELL above the ask."""
    direction = TradeDirection.parse(direction)
    distance = atr_value * trail_multiplier
    if direction == TradeDirection.BUY:
        return bid - distance
    return ask + distance
