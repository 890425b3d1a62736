"""
Tests for core/trail_controller.py (TrailController)

Covers the runner state machine:
- position closed -> ATR trail or break-even plus one pip
- market update -> tighten only
- zero remaining -> snapshot cleanup
- more than one remaining / foreign positions -> no action
"""

from unittest.mock import patch

import pytest

from broker.paper_host import PaperHost
from core.atr_levels import TradeDirection
from core.host import HostPosition, TradeResult
from core.panel_state import PanelInputs, PanelOutputs, PanelState
from core.snapshot_store import SnapshotStore, SymbolSnapshot
from core.trail_controller import TrailController

LABEL = "AtrScaleOutPanel"


@pytest.fixture
def host():
    return PaperHost("EURUSD", bid=1.1998, ask=1.2000, pip_size=0.0001, digits=4, atr=0.0010)


@pytest.fixture
def store(tmp_path):
    store = SnapshotStore(tmp_path / "atr_snapshots.csv")
    store.upsert(SymbolSnapshot("EURUSD", 0.0010))
    return store


@pytest.fixture
def state():
    return PanelState(
        symbol="EURUSD",
        label=LABEL,
        inputs=PanelInputs(),
        outputs=PanelOutputs(trail_atr_snapshot=1.5),
    )


@pytest.fixture
def controller(host, store, state):
    return TrailController(host, store, state, default_trail_atr=1.5)


def _position(position_id, direction=TradeDirection.BUY, entry=1.2000, stop_loss=1.1985, label=LABEL, symbol="EURUSD"):
    return HostPosition(
        position_id=position_id,
        symbol=symbol,
        label=label,
        direction=direction,
        volume=1000,
        entry_price=entry,
        stop_loss=stop_loss,
    )


def _open(host, position):
    host.positions[position.position_id] = position
    return position


def test_closed_buy_moves_runner_to_atr_trail(host, controller):
    runner = _open(host, _position("P2"))
    host.bid, host.ask = 1.2050, 1.2052

    decision = controller.on_position_closed(_position("P1"))

    assert decision.action == "trail"
    assert decision.applied
    assert decision.stop_loss == pytest.approx(1.2035)
    assert runner.stop_loss == pytest.approx(1.2035)


def test_closed_buy_falls_back_to_breakeven_plus_pip(host, controller):
    runner = _open(host, _position("P2"))
    host.bid, host.ask = 1.1995, 1.1997

    decision = controller.on_position_closed(_position("P1"))

    assert decision.action == "breakeven"
    assert runner.stop_loss == pytest.approx(1.2001)


def test_closed_sell_moves_runner_to_atr_trail(host, controller):
    runner = _open(host, _position("P2", direction=TradeDirection.SELL, stop_loss=1.2015))
    host.bid, host.ask = 1.1948, 1.1950

    decision = controller.on_position_closed(_position("P1", direction=TradeDirection.SELL))

    assert decision.action == "trail"
    assert runner.stop_loss == pytest.approx(1.1965)


def test_closed_sell_falls_back_to_breakeven_minus_pip(host, controller):
    runner = _open(host, _position("P2", direction=TradeDirection.SELL, stop_loss=1.2015))
    host.bid, host.ask = 1.2003, 1.2005

    decision = controller.on_position_closed(_position("P1", direction=TradeDirection.SELL))

    assert decision.action == "breakeven"
    assert runner.stop_loss == pytest.approx(1.1999)


def test_last_close_deletes_snapshot(controller, store):
    decision = controller.on_position_closed(_position("P2"))
    assert decision.action == "cleanup"
    assert store.get("EURUSD") is None


def test_two_open_positions_are_left_alone(host, controller, store):
    first = _open(host, _position("P1"))
    second = _open(host, _position("P2"))
    host.bid, host.ask = 1.2050, 1.2052

    assert controller.on_position_closed(_position("P3")).action == "idle"
    assert controller.on_market_update().action == "idle"
    assert first.stop_loss == second.stop_loss == 1.1985
    assert store.get("EURUSD") is not None


def test_foreign_positions_are_ignored(host, controller, store):
    runner = _open(host, _position("P2"))
    host.bid, host.ask = 1.2050, 1.2052

    assert controller.on_position_closed(_position("X1", label="manual")).action == "ignored"
    assert controller.on_position_closed(_position("X2", symbol="GBPUSD")).action == "ignored"
    assert runner.stop_loss == 1.1985
    assert store.get("EURUSD") is not None


def test_positions_with_other_labels_do_not_count(host, controller):
    runner = _open(host, _position("P2"))
    _open(host, _position("M1", label="manual"))
    host.bid, host.ask = 1.2050, 1.2052

    assert controller.on_market_update().action == "trail"
    assert runner.stop_loss == pytest.approx(1.2035)


def test_no_atr_available_falls_back_to_breakeven(host, tmp_path, state):
    empty_store = SnapshotStore(tmp_path / "empty.csv")
    controller = TrailController(host, empty_store, state)
    runner = _open(host, _position("P2"))

    decision = controller.on_position_closed(_position("P1"))
    assert decision.action == "breakeven"
    assert runner.stop_loss == pytest.approx(1.2001)

    assert controller.on_market_update().action == "no_atr"
    assert runner.stop_loss == pytest.approx(1.2001)


def test_no_atr_available_sell_falls_back_to_breakeven(host, tmp_path, state):
    controller = TrailController(host, SnapshotStore(tmp_path / "empty.csv"), state)
    runner = _open(host, _position("P2", direction=TradeDirection.SELL, entry=1.1998, stop_loss=1.2013))

    decision = controller.on_position_closed(_position("P1", direction=TradeDirection.SELL, entry=1.1998))
    assert decision.action == "breakeven"
    assert runner.stop_loss == pytest.approx(1.1997)


def test_falls_back_to_panel_atr_snapshot(host, tmp_path, state):
    state.outputs.atr_value_snapshot = 0.0020
    controller = TrailController(host, SnapshotStore(tmp_path / "empty.csv"), state)
    runner = _open(host, _position("P2"))
    host.bid, host.ask = 1.2050, 1.2052

    assert controller.on_market_update().action == "trail"
    assert runner.stop_loss == pytest.approx(1.2020)


def test_default_trail_multiplier_when_panel_has_none(host, store, state):
    state.outputs.trail_atr_snapshot = None
    controller = TrailController(host, store, state, default_trail_atr=2.0)
    runner = _open(host, _position("P2"))
    host.bid, host.ask = 1.2050, 1.2052

    controller.on_market_update()
    assert runner.stop_loss == pytest.approx(1.2030)


def test_market_update_never_loosens_buy_stop(host, controller):
    runner = _open(host, _position("P2"))
    applied = []
    for bid in (1.2010, 1.2020, 1.2015, 1.2030, 1.2030, 1.2045):
        host.bid, host.ask = bid, bid + 0.0002
        controller.on_market_update()
        applied.append(runner.stop_loss)

    assert applied == sorted(applied)
    assert applied[-1] == pytest.approx(1.2030)


def test_market_update_never_loosens_sell_stop(host, controller):
    runner = _open(host, _position("P2", direction=TradeDirection.SELL, stop_loss=1.2015))
    applied = []
    for ask in (1.1990, 1.1980, 1.1985, 1.1970):
        host.bid, host.ask = ask - 0.0002, ask
        controller.on_market_update()
        applied.append(runner.stop_loss)

    assert applied == sorted(applied, reverse=True)
    assert applied[-1] == pytest.approx(1.1985)


def test_market_update_holds_when_candidate_is_looser(host, controller):
    runner = _open(host, _position("P2", stop_loss=1.2001))
    host.bid, host.ask = 1.2005, 1.2007

    decision = controller.on_market_update()
    assert decision.action == "hold"
    assert runner.stop_loss == 1.2001


def test_market_update_sets_stop_when_missing(host, controller):
    runner = _open(host, _position("P2", stop_loss=None))
    host.bid, host.ask = 1.2005, 1.2007

    assert controller.on_market_update().action == "trail"
    assert runner.stop_loss == pytest.approx(1.1990)


def test_modify_failure_is_reported(host, controller):
    runner = _open(host, _position("P2"))
    host.bid, host.ask = 1.2050, 1.2052

    with patch.object(host, "modify_stop_loss", return_value=TradeResult(False, error="market closed")):
        decision = controller.on_market_update()

    assert decision.action == "failed"
    assert not decision.applied
    assert decision.reason == "market closed"
    assert runner.stop_loss == 1.1985
