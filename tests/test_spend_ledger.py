from decimal import Decimal

import pytest

from app.core.bet_limits import PendingWagerEntry
from app.core.round_store import RoundStore
from app.core.spend_ledger import SpendLedger
from app.models.lotto import BetItemStatus, BillStatus


def fake_fetch(rows):
    calls = []

    def _fetch(round_id, numbers):
        calls.append((round_id, None if numbers is None else list(numbers)))
        if numbers is None:
            return list(rows)
        return [r for r in rows if r[0] in numbers]

    _fetch.calls = calls
    return _fetch


def test_persisted_and_pending_are_summed():
    fetch = fake_fetch([("45", "ล่าง", Decimal(100))])
    ledger = SpendLedger(fetch)
    pending = [PendingWagerEntry(("45",), price_bottom=Decimal(50))]

    result = ledger.aggregate("r1", ["45"], pending)

    assert result["45"].bottom == Decimal(150)
    assert result["45"].top == Decimal(0)
    assert fetch.calls == [("r1", ["45"])]


def test_total_is_sum_of_styles():
    fetch = fake_fetch([
        ("123", "ตรง", Decimal(20)),
        ("123", "โต๊ด", Decimal(30)),
        ("123", "ล่าง", Decimal(5)),
    ])
    record = SpendLedger(fetch).aggregate("r1", ["123"])["123"]
    assert (record.top, record.tote, record.bottom) == (Decimal(20), Decimal(30), Decimal(5))
    assert record.total == record.top + record.bottom + record.tote == Decimal(55)


def test_pending_numbers_are_included_even_if_not_targeted():
    ledger = SpendLedger(fake_fetch([]))
    pending = [
        PendingWagerEntry(("12", "34"), price_top=Decimal(10)),
        PendingWagerEntry(("12",), price_top=Decimal(5), price_bottom=Decimal(7)),
    ]
    result = ledger.aggregate("r1", [], pending)
    assert list(result) == ["12", "34"]
    assert result["12"].top == Decimal(15)
    assert result["12"].bottom == Decimal(7)
    assert result["34"].top == Decimal(10)


def test_numbers_without_spend_are_zero():
    result = SpendLedger(fake_fetch([])).aggregate("r1", ["88"])
    assert result["88"].total == Decimal(0)


def test_no_targets_skips_fetch():
    fetch = fake_fetch([("45", "บน", Decimal(1))])
    assert SpendLedger(fetch).aggregate("r1", []) == {}
    assert fetch.calls == []


def test_unknown_persisted_style_is_an_error():
    fetch = fake_fetch([("45", "วิ่งบน", Decimal(1))])
    with pytest.raises(ValueError):
        SpendLedger(fetch).aggregate("r1", ["45"])


def test_snapshot_covers_every_number():
    fetch = fake_fetch([
        ("77", "บน", Decimal(500)),
        ("05", "ล่าง", Decimal(20)),
    ])
    snap = SpendLedger(fetch).snapshot("r1")
    assert list(snap) == ["05", "77"]
    assert snap["77"].top == Decimal(500)
    assert fetch.calls == [("r1", None)]


def test_sql_fetch_counts_only_live_bills_and_items(db, make_round, make_user, add_spend):
    user = make_user()
    lotto_round = make_round()
    other_round = make_round()

    add_spend(lotto_round, user, "45", "ล่าง", 100)
    add_spend(lotto_round, user, "45", "ล่าง", 30, bill_status=BillStatus.CONFIRMED.value)
    add_spend(lotto_round, user, "45", "ล่าง", 999, bill_status=BillStatus.CANCELLED.value)
    add_spend(lotto_round, user, "45", "ล่าง", 777, item_status=BetItemStatus.CANCELLED.value)
    add_spend(lotto_round, user, "45", "บน", 10, item_status=BetItemStatus.CONFIRMED.value)
    add_spend(lotto_round, user, "46", "บน", 40)
    add_spend(other_round, user, "45", "ล่าง", 500)

    ledger = SpendLedger(RoundStore(db).fetch_spend_rows)
    result = ledger.aggregate(str(lotto_round.id), ["45"])

    assert list(result) == ["45"]
    assert Decimal(str(result["45"].bottom)) == Decimal(130)
    assert Decimal(str(result["45"].top)) == Decimal(10)

    snap = ledger.snapshot(str(lotto_round.id))
    assert sorted(snap) == ["45", "46"]
    assert Decimal(str(snap["46"].top)) == Decimal(40)
