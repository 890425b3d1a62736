from datetime import datetime, timedelta, timezone

import pytest

from broker.paper_host import PaperHost
from core.atr_levels import OrderLeg, OrderType, TradeDirection

T0 = datetime(2024, 3, 1, 10, 0, tzinfo=timezone.utc)


class _Clock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return _Clock(T0)


@pytest.fixture
def host(clock):
    return PaperHost("EURUSD", bid=1.1998, ask=1.2000, atr=0.001, lot_step=1000, clock=clock)


def _leg(direction="BUY", order_type=OrderType.MARKET, price=None, tp_pips=10.0, expiry=None):
    return OrderLeg(
        direction=TradeDirection(direction),
        volume=1000,
        order_type=order_type,
        stop_loss_pips=15.0,
        take_profit_pips=tp_pips,
        label="panel",
        price=price,
        expiry=expiry,
    )


def test_normalize_volume_rounds_down(host):
    assert host.normalize_volume(1500) == 1000
    assert host.normalize_volume(999) == 0
    assert host.normalize_volume(2000) == 2000


def test_market_order_opens_position_with_levels(host):
    result = host.execute_market_order("EURUSD", _leg())
    assert result.success
    position = host.positions[result.position_id]
    assert position.entry_price == 1.2000
    assert position.stop_loss == pytest.approx(1.1985)
    assert position.take_profit == pytest.approx(1.2010)


def test_market_sell_fills_at_bid(host):
    result = host.execute_market_order("EURUSD", _leg("SELL", tp_pips=None))
    position = host.positions[result.position_id]
    assert position.entry_price == 1.1998
    assert position.stop_loss == pytest.approx(1.2013)
    assert position.take_profit is None


def test_unknown_symbol_raises(host):
    with pytest.raises(KeyError):
        host.symbol_info("GBPUSD")


def test_pending_limit_fills_when_price_reaches_entry(host):
    host.place_limit_order("EURUSD", _leg(order_type=OrderType.LIMIT, price=1.1990))
    assert host.set_quote(1.1993, 1.1995) == []
    assert host.positions == {}

    host.set_quote(1.1988, 1.1990)
    assert host.pending == []
    (position,) = host.positions.values()
    assert position.entry_price == 1.1990


def test_pending_stop_fills_on_breakout(host):
    host.place_stop_order("EURUSD", _leg(order_type=OrderType.STOP, price=1.2010))
    host.set_quote(1.2008, 1.2010)
    assert len(host.positions) == 1


def test_pending_order_requires_price(host):
    result = host.place_limit_order("EURUSD", _leg(order_type=OrderType.LIMIT))
    assert not result.success
    assert host.pending == []


def test_pending_order_expires(host, clock):
    host.place_limit_order(
        "EURUSD",
        _leg(order_type=OrderType.LIMIT, price=1.1990, expiry=T0 + timedelta(minutes=1)),
    )
    clock.now = T0 + timedelta(minutes=2)
    host.set_quote(1.1988, 1.1990)
    assert host.pending == []
    assert host.positions == {}


def test_exits_on_take_profit_and_stop(host):
    tp_leg = host.execute_market_order("EURUSD", _leg())
    runner = host.execute_market_order("EURUSD", _leg(tp_pips=None))

    closed = host.set_quote(1.2011, 1.2013)
    assert [p.position_id for p in closed] == [tp_leg.position_id]

    closed = host.set_quote(1.1984, 1.1986)
    assert [p.position_id for p in closed] == [runner.position_id]
    assert host.positions == {}
    assert len(host.closed) == 2


def test_set_quote_rejects_crossed_market(host):
    with pytest.raises(ValueError):
        host.set_quote(1.2001, 1.2000)


def test_modify_stop_loss_unknown_position(host):
    result = host.modify_stop_loss("P404", 1.2)
    assert not result.success
    assert result.error == "position not found"


def test_reject_orders_flag(host):
    host.reject_orders = True
    assert not host.execute_market_order("EURUSD", _leg()).success
    assert not host.place_stop_order("EURUSD", _leg(order_type=OrderType.STOP, price=1.21)).success


def test_state_dict(host):
    host.execute_market_order("EURUSD", _leg())
    state = host.to_state_dict()
    assert state["symbol"] == "EURUSD"
    assert state["positions"][0]["direction"] == "BUY"
    assert state["pending_orders"] == []
