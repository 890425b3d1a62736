"""
ATR trailing stop for the surviving leg of a scale-out entry.

Once the take-profit leg of a split order closes, the runner's stop loss is
moved to the ATR trail price or to break-even plus one pip, whichever is
closer to the market. After that, every market update may only tighten the
stop, never loosen it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from core.atr_levels import TradeDirection, trail_candidate
from core.event_logging import log_event
from core.host import HostPosition, TradingHost
from core.panel_state import PanelState
from core.snapshot_store import SnapshotStore

logger = logging.getLogger(__name__)


@dataclass
class TrailDecision:
    action: str  # ignored | idle | cleanup | trail | breakeven | hold | no_atr | failed
    stop_loss: Optional[float] = None
    reason: Optional[str] = None

    @property
    def applied(self) -> bool:
        return self.action in {"trail", "breakeven"}


class TrailController:
    def __init__(
        self,
        host: TradingHost,
        store: SnapshotStore,
        state: PanelState,
        *,
        default_trail_atr: float = 1.5,
    ) -> None:
        self.host = host
        self.store = store
        self.state = state
        self.default_trail_atr = default_trail_atr

    @property
    def symbol(self) -> str:
        return self.state.symbol

    @property
    def label(self) -> str:
        return self.state.label

    def _atr_value(self) -> Optional[float]:
        snapshot = self.store.get(self.symbol)
        if snapshot is not None:
            return snapshot.atr_value
        return self.state.outputs.atr_value_snapshot

    def _trail_multiplier(self) -> float:
        value = self.state.outputs.trail_atr_snapshot
        return value if value else self.default_trail_atr

    def _sole_position(self) -> tuple[Optional[HostPosition], int]:
        positions = self.host.find_positions(self.label, self.symbol)
        if len(positions) == 1:
            return positions[0], 1
        return None, len(positions)

    def _candidate(self, position: HostPosition, atr_value: float) -> tuple[float, int, float]:
        info = self.host.symbol_info(self.symbol)
        raw = trail_candidate(position.direction, info.bid, info.ask, atr_value, self._trail_multiplier())
        return round(raw, info.digits), info.digits, info.pip_size

    def _apply(self, position: HostPosition, stop_loss: float, action: str, reason: str) -> TrailDecision:
        result = self.host.modify_stop_loss(position.position_id, stop_loss)
        if not result.success:
            log_event(
                "ERROR",
                f"Stop loss modification failed: {result.error}",
                symbol=self.symbol,
                label=self.label,
                extra={"position": position.position_id, "stop_loss": stop_loss},
                logger=logger,
            )
            return TrailDecision("failed", stop_loss, result.error)
        log_event(
            "TRAIL" if action == "trail" else "BREAKEVEN",
            reason,
            symbol=self.symbol,
            label=self.label,
            extra={"position": position.position_id, "stop_loss": stop_loss},
            logger=logger,
        )
        return TrailDecision(action, stop_loss, reason)

    def on_position_closed(self, closed: HostPosition) -> TrailDecision:
        if closed.label != self.label or closed.symbol != self.symbol:
            return TrailDecision("ignored", reason="foreign position")

        position, count = self._sole_position()
        if count == 0:
            self.store.delete(self.symbol)
            return TrailDecision("cleanup", reason="no positions left")
        if position is None:
            return TrailDecision("idle", reason=f"{count} positions open")

        atr_value = self._atr_value()
        entry = position.entry_price
        if atr_value is None:
            info = self.host.symbol_info(self.symbol)
            sign = 1 if position.direction == TradeDirection.BUY else -1
            log_event("WARN", "No ATR snapshot available, falling back to break-even", symbol=self.symbol, logger=logger)
            return self._apply(
                position,
                round(entry + sign * info.pip_size, info.digits),
                "breakeven",
                "Moved runner stop loss to break-even (no ATR)",
            )

        candidate, digits, pip_size = self._candidate(position, atr_value)
        if position.direction == TradeDirection.BUY:
            if candidate > entry:
                return self._apply(position, candidate, "trail", "Moved runner stop loss to ATR trail")
            return self._apply(position, round(entry + pip_size, digits), "breakeven", "Moved runner stop loss to break-even")

        if candidate < entry:
            return self._apply(position, candidate, "trail", "Moved runner stop loss to ATR trail")
        return self._apply(position, round(entry - pip_size, digits), "breakeven", "Moved runner stop loss to break-even")

    def on_market_update(self) -> TrailDecision:
        position, count = self._sole_position()
        if position is None:
            return TrailDecision("idle", reason=f"{count} positions open")

        atr_value = self._atr_value()
        if atr_value is None:
            logger.debug("No ATR snapshot for %s, skipping trail", self.symbol)
            return TrailDecision("no_atr", reason="no ATR snapshot")

        candidate, _, _ = self._candidate(position, atr_value)
        current = position.stop_loss
        if position.direction == TradeDirection.BUY:
            tightens = current is None or candidate > current
        else:
            tightens = current is None or candidate < current

        if not tightens:
            return TrailDecision("hold", current, "candidate does not tighten stop loss")
        return self._apply(position, candidate, "trail", "Successfully trailed")
