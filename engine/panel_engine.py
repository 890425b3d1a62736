"""
Panel engine - single dispatcher for host and user events.

Events are handled one at a time and run to completion:
- BUY_CLICKED / SELL_CLICKED: validate panel inputs, split and submit orders
- MARKET_UPDATE: tighten the runner's trailing stop
- POSITION_CLOSED: move the runner to trail/break-even, or clean up
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from core.atr_levels import (
    OrderLeg,
    OrderType,
    TradeDirection,
    derive_protective_levels,
    split_order_plan,
    validate_levels,
)
from core.config import PanelSettings
from core.event_logging import log_event
from core.host import HostPosition, TradeResult, TradingHost
from core.panel_state import PanelState
from core.snapshot_store import SnapshotStore, SymbolSnapshot
from core.trail_controller import TrailController, TrailDecision

logger = logging.getLogger(__name__)


class PanelEventType(str, Enum):
    BUY_CLICKED = "buy_clicked"
    SELL_CLICKED = "sell_clicked"
    MARKET_UPDATE = "market_update"
    POSITION_CLOSED = "position_closed"


@dataclass
class PanelEvent:
    type: PanelEventType
    position: Optional[HostPosition] = None


@dataclass
class ExecutionOutcome:
    accepted: bool
    message: str
    legs: List[OrderLeg] = field(default_factory=list)
    results: List[TradeResult] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "accepted": self.accepted,
            "message": self.message,
            "legs": [
                {
                    "direction": leg.direction.value,
                    "volume": leg.volume,
                    "order_type": leg.order_type.value,
                    "price": leg.price,
                    "stop_loss_pips": leg.stop_loss_pips,
                    "take_profit_pips": leg.take_profit_pips,
                    "expiry": leg.expiry.isoformat() if leg.expiry else None,
                }
                for leg in self.legs
            ],
            "results": [
                {"success": r.success, "position_id": r.position_id, "order_id": r.order_id, "error": r.error}
                for r in self.results
            ],
        }


class PanelEngine:
    """Owns the panel state and routes every event to its handler."""

    def __init__(
        self,
        host: TradingHost,
        store: SnapshotStore,
        settings: PanelSettings,
        state: Optional[PanelState] = None,
    ) -> None:
        self.host = host
        self.store = store
        self.settings = settings
        self.state = state or PanelState.from_settings(settings)
        self.trail = TrailController(host, store, self.state, default_trail_atr=settings.trail_atr)
        self._handlers: Dict[PanelEventType, Callable[[PanelEvent], Any]] = {
            PanelEventType.BUY_CLICKED: lambda event: self.execute_order(TradeDirection.BUY),
            PanelEventType.SELL_CLICKED: lambda event: self.execute_order(TradeDirection.SELL),
            PanelEventType.MARKET_UPDATE: lambda event: self.trail.on_market_update(),
            PanelEventType.POSITION_CLOSED: self._on_position_closed,
        }

    def dispatch(self, event: PanelEvent) -> Any:
        handler = self._handlers.get(event.type)
        if handler is None:
            raise ValueError(f"Unsupported panel event: {event.type}")
        return handler(event)

    def _on_position_closed(self, event: PanelEvent) -> TrailDecision:
        if event.position is None:
            raise ValueError("POSITION_CLOSED event requires a position")
        return self.trail.on_position_closed(event.position)

    # --- order entry -------------------------------------------------------
    def _reject(self, message: str) -> ExecutionOutcome:
        self.state.last_message = message
        log_event("REJECT", message, symbol=self.state.symbol, logger=logger)
        return ExecutionOutcome(False, message)

    def execute_order(self, direction: TradeDirection | str) -> ExecutionOutcome:
        direction = TradeDirection.parse(direction)
        inputs = self.state.inputs
        symbol = self.state.symbol

        volume = inputs.volume or 0.0
        if volume <= 0:
            return self._reject("You must specify Volume in trading panel!")
        if volume < self.settings.min_scale_out_volume:
            return self._reject("Volume is too small for scale out!")

        info = self.host.symbol_info(symbol)
        atr_value = self.host.latest_atr(symbol)

        stop_loss = inputs.stop_loss_price
        take_profit = inputs.take_profit_price
        if atr_value and (
            (stop_loss is None and self.settings.stop_atr_multiplier > 0)
            or (take_profit is None and self.settings.profit_atr_multiplier > 0)
        ):
            levels = derive_protective_levels(
                direction,
                info.bid,
                info.ask,
                atr_value,
                self.settings.stop_atr_multiplier,
                self.settings.profit_atr_multiplier,
                info.digits,
                manual_stop_loss=stop_loss,
                manual_take_profit=take_profit,
                entry=inputs.entry_price,
            )
            if stop_loss is None and self.settings.stop_atr_multiplier > 0:
                stop_loss = levels.stop_loss
            if take_profit is None and self.settings.profit_atr_multiplier > 0:
                take_profit = levels.take_profit

        if stop_loss is None:
            return self._reject("You must specify Stop Loss in trading panel!")
        if take_profit is None:
            return self._reject("You must specify Take Profit in trading panel!")

        decision = validate_levels(direction, stop_loss, take_profit, inputs.entry_price)
        if not decision.allow:
            return self._reject(decision.reason or "Invalid protective levels")

        expiry = None
        if inputs.entry_price is not None:
            expiry = self.host.server_time() + timedelta(minutes=inputs.expire_after_minutes)

        legs = split_order_plan(
            volume,
            direction,
            stop_loss,
            take_profit,
            info.pip_size,
            info.bid,
            info.ask,
            label=self.state.label,
            entry=inputs.entry_price,
            expiry=expiry,
            normalize_volume=self.host.normalize_volume,
        )
        if legs[0].volume <= 0:
            return self._reject("Volume is too small for scale out!")

        results = [self._submit(symbol, leg) for leg in legs]
        accepted = any(result.success for result in results)

        if atr_value is not None:
            self.state.outputs.atr_value_snapshot = atr_value
        self.state.outputs.trail_atr_snapshot = inputs.trail_atr

        if accepted and atr_value is not None:
            self.store.upsert(SymbolSnapshot(symbol=symbol, atr_value=atr_value))
        elif atr_value is None:
            log_event("WARN", "Host reported no ATR value, snapshot not stored", symbol=symbol, logger=logger)

        message = (
            f"Submitted {direction.value} {legs[0].order_type.value} x2 ({legs[0].volume:g} each)"
            if accepted
            else "All order legs were rejected by the host"
        )
        self.state.last_message = message
        return ExecutionOutcome(accepted, message, list(legs), results)

    def _submit(self, symbol: str, leg: OrderLeg) -> TradeResult:
        if leg.order_type == OrderType.MARKET:
            result = self.host.execute_market_order(symbol, leg)
        elif leg.order_type == OrderType.LIMIT:
            result = self.host.place_limit_order(symbol, leg)
        else:
            result = self.host.place_stop_order(symbol, leg)

        extra = {
            "type": leg.order_type.value,
            "side": leg.direction.value,
            "volume": leg.volume,
            "sl_pips": leg.stop_loss_pips,
            "tp_pips": leg.take_profit_pips,
        }
        if result.success:
            log_event("ORDER_NEW", "Order leg submitted", symbol=symbol, label=leg.label, extra=extra, logger=logger)
        else:
            log_event("ORDER_FAIL", f"Order leg failed: {result.error}", symbol=symbol, label=leg.label, extra=extra, logger=logger)
        return result
