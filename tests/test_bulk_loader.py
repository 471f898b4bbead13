import threading
import time

import pytest
from sqlalchemy import func, select

from tradedb.models.trade import TradeAmount, TradeEmployment
from tradedb.services.bulk_loader import BulkLoader
from tradedb.services.table_registry import resolve_table

from conftest import make_trades


def _count(session_factory, model):
    with session_factory() as db:
        return db.execute(select(func.count(model.id))).scalar()


def _counting(loader):
    calls = []
    real = loader._write_batch

    def wrapper(spec, rows):
        calls.append(len(rows))
        return real(spec, rows)

    loader._write_batch = wrapper
    return calls


def test_rows_are_written_in_batches(session_factory):
    loader = BulkLoader(session_factory, batch_size=1000)
    calls = _counting(loader)

    result = loader.load(make_trades(2500), resolve_table("trade.csv"))

    assert result.ok
    assert result.rows_written == 2500
    assert result.batches_committed == 3
    assert calls == [1000, 1000, 500]
    assert _count(session_factory, TradeAmount) == 2500


def test_exact_multiple_of_batch_size(session_factory):
    loader = BulkLoader(session_factory, batch_size=5)
    calls = _counting(loader)
    result = loader.load(make_trades(10), resolve_table("trade.csv"))
    assert result.batches_committed == 2
    assert calls == [5, 5]


def test_empty_input_writes_nothing(session_factory):
    loader = BulkLoader(session_factory, batch_size=10)
    calls = _counting(loader)
    result = loader.load([], resolve_table("trade.csv"))
    assert result.ok
    assert result.rows_written == 0
    assert calls == []


def test_value_lands_in_target_table(session_factory):
    loader = BulkLoader(session_factory)
    loader.load(make_trades(4), resolve_table("trade_employment.csv"))

    with session_factory() as db:
        values = db.execute(
            select(TradeEmployment.employment_value).order_by(TradeEmployment.id)
        ).scalars().all()
    assert [int(v) for v in values] == [0, 1, 2, 3]
    assert _count(session_factory, TradeAmount) == 0


def test_failed_batch_keeps_earlier_batches(session_factory):
    loader = BulkLoader(session_factory, batch_size=10)
    real = loader._write_batch
    calls = []

    def flaky(spec, rows):
        calls.append(len(rows))
        if len(calls) == 3:
            raise RuntimeError("connection reset")
        return real(spec, rows)

    loader._write_batch = flaky
    result = loader.load(make_trades(45), resolve_table("trade.csv"))

    assert not result.ok
    assert result.rows_written == 20
    assert result.batches_committed == 2
    assert "batch 3" in result.error
    assert "connection reset" in result.error
    assert len(calls) == 3  # batches after the failure are not attempted
    assert _count(session_factory, TradeAmount) == 20


def test_slow_batch_times_out(session_factory):
    loader = BulkLoader(session_factory, batch_size=10, batch_timeout=0.05)

    def stuck(spec, rows):
        time.sleep(0.5)
        return len(rows)

    loader._write_batch = stuck
    result = loader.load(make_trades(25), resolve_table("trade.csv"))

    assert result.rows_written == 0
    assert "batch 1" in result.error
    assert "timed out" in result.error


def test_concurrent_loads_each_get_their_own_deadline(session_factory):
    loader = BulkLoader(session_factory, batch_size=10, batch_timeout=0.5)

    def slow(spec, rows):
        time.sleep(0.3)
        return len(rows)

    loader._write_batch = slow
    results = {}

    def run(key, file_name):
        results[key] = loader.load(make_trades(10), resolve_table(file_name))

    threads = [
        threading.Thread(target=run, args=("trade", "trade.csv")),
        threading.Thread(target=run, args=("factor", "trade_factor.csv")),
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join(5)

    assert results["trade"].error is None
    assert results["trade"].rows_written == 10
    assert results["factor"].error is None
    assert results["factor"].rows_written == 10


def test_invalid_batch_size(session_factory):
    with pytest.raises(ValueError):
        BulkLoader(session_factory, batch_size=0)
