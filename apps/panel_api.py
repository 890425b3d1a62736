"""
Panel HTTP API

Thin adapter over PanelEngine: it translates requests into panel input
updates and engine events and renders the panel state back. Every request
that touches the engine is serialised so events still run one at a time.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, Field

from broker.paper_host import PaperHost
from core.atr_levels import TradeDirection
from core.host import HostPosition
from engine.panel_engine import PanelEngine, PanelEvent, PanelEventType

logger = logging.getLogger(__name__)

router = APIRouter()


class PanelService:
    """Engine plus the lock that keeps dispatch single-threaded."""

    def __init__(self, engine: PanelEngine) -> None:
        self.engine = engine
        self._lock = threading.RLock()

    def dispatch(self, event: PanelEvent) -> Any:
        with self._lock:
            return self.engine.dispatch(event)

    def update_inputs(self, values: Dict[str, Any]) -> None:
        with self._lock:
            self.engine.state.update_inputs(**values)

    def paper_host(self) -> PaperHost:
        host = self.engine.host
        if not isinstance(host, PaperHost):
            raise HTTPException(status_code=409, detail="Market simulation requires the paper host")
        return host

    def close_positions(self, closed: List[HostPosition]) -> List[Dict[str, Any]]:
        decisions = []
        with self._lock:
            for position in closed:
                decision = self.dispatch(PanelEvent(PanelEventType.POSITION_CLOSED, position=position))
                decisions.append({"position_id": position.position_id, "action": decision.action, "stop_loss": decision.stop_loss})
        return decisions

    def tick(self, bid: float, ask: float, atr: Optional[float] = None) -> Dict[str, Any]:
        """Move the paper market, then run close and market-update events under one lock."""
        host = self.paper_host()
        with self._lock:
            if atr is not None:
                host.set_atr(atr)
            closed = host.set_quote(bid, ask)
            closed_decisions = self.close_positions(closed)
            trail = self.dispatch(PanelEvent(PanelEventType.MARKET_UPDATE))
        return {
            "closed": closed_decisions,
            "trail": {"action": trail.action, "stop_loss": trail.stop_loss, "reason": trail.reason},
        }

    def close(self, position_id: str) -> List[Dict[str, Any]]:
        """Close one paper position and dispatch its close event. Raises KeyError if unknown."""
        host = self.paper_host()
        with self._lock:
            if position_id not in host.positions:
                raise KeyError(position_id)
            position = host.close_position(position_id)
            return self.close_positions([position])


# ==================== Pydantic Models ====================

class PanelInputsUpdate(BaseModel):
    """Partial update of the order-entry fields. Zero or null clears a price field."""
    volume: Optional[float] = Field(None, ge=0, description="Total volume in units, split in two legs")
    stop_loss_price: Optional[float] = Field(None, ge=0)
    take_profit_price: Optional[float] = Field(None, ge=0)
    entry_price: Optional[float] = Field(None, ge=0, description="Pending entry; empty means market")
    trail_atr: Optional[float] = Field(None, ge=0, description="ATR multiple for the runner's trailing stop")
    expire_after_minutes: Optional[int] = Field(None, ge=0)


class QuoteUpdate(BaseModel):
    """Paper market move."""
    bid: float = Field(..., gt=0)
    ask: float = Field(..., gt=0)
    atr: Optional[float] = Field(None, gt=0)


class SnapshotResponse(BaseModel):
    symbol: str
    atr_value: float


def _service(request: Request) -> PanelService:
    return request.app.state.panel


# ==================== API Endpoints ====================

@router.get("/api/panel")
def get_panel(request: Request) -> Dict[str, Any]:
    service = _service(request)
    payload = service.engine.state.to_dict()
    host = service.engine.host
    if isinstance(host, PaperHost):
        payload["paper"] = host.to_state_dict()
    return payload


@router.patch("/api/panel/inputs")
def patch_inputs(update: PanelInputsUpdate, request: Request) -> Dict[str, Any]:
    service = _service(request)
    service.update_inputs(update.model_dump(exclude_unset=True))
    return service.engine.state.to_dict()


@router.post("/api/panel/orders/{side}")
def post_order(side: str, request: Request) -> Dict[str, Any]:
    try:
        direction = TradeDirection.parse(side)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Unknown side: {side}")
    event_type = PanelEventType.BUY_CLICKED if direction == TradeDirection.BUY else PanelEventType.SELL_CLICKED
    outcome = _service(request).dispatch(PanelEvent(event_type))
    return {"ok": outcome.accepted, **outcome.to_dict()}


@router.post("/api/panel/tick")
def post_tick(quote: QuoteUpdate, request: Request) -> Dict[str, Any]:
    if quote.bid > quote.ask:
        raise HTTPException(status_code=400, detail="bid must be <= ask")
    return _service(request).tick(quote.bid, quote.ask, quote.atr)


@router.post("/api/panel/positions/{position_id}/close")
def close_position(position_id: str, request: Request) -> Dict[str, Any]:
    try:
        closed = _service(request).close(position_id)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Unknown position: {position_id}")
    return {"closed": closed}


@router.get("/api/snapshots", response_model=List[SnapshotResponse])
def list_snapshots(request: Request) -> List[SnapshotResponse]:
    store = _service(request).engine.store
    return [SnapshotResponse(symbol=s.symbol, atr_value=s.atr_value) for s in store.all()]


@router.get("/api/snapshots/{symbol}", response_model=SnapshotResponse)
def get_snapshot(symbol: str, request: Request) -> SnapshotResponse:
    snapshot = _service(request).engine.store.get(symbol)
    if snapshot is None:
        raise HTTPException(status_code=404, detail=f"No ATR snapshot for {symbol}")
    return SnapshotResponse(symbol=snapshot.symbol, atr_value=snapshot.atr_value)
