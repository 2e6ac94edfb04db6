import gc
import threading
import uuid
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from app.core.bet_limits import PendingWagerEntry
from app.core.commit_gate import CommitGate, GateState, RejectReason, RoundLockRegistry
from app.models.lotto import BetItem, Bill, BillEntry


def d(value):
    return Decimal(str(value))


def line(numbers, top=0, bottom=0, tote=0, bet_type="2d"):
    return PendingWagerEntry(tuple(numbers), d(top), d(bottom), d(tote), bet_type)


@pytest.fixture
def member(make_user):
    return make_user()


@pytest.fixture
def bottom_limited_round(make_round):
    return make_round(limit_2d=1000, rules=[("40", "49", 300, "ล่าง")])


def test_commit_writes_bill_and_items(db, make_round, member):
    lotto_round = make_round(closed_numbers=["13"], half_pay_numbers=["45"])
    gate = CommitGate(db)

    outcome = gate.commit(lotto_round.id, member.id, "member", [line(["12", "13", "45"], top=10, bottom=5)], bill_ref="B-1")

    assert outcome.success
    assert gate.state == GateState.COMMITTED
    assert outcome.total_amount == Decimal(30)

    db.expire_all()
    bill = db.query(Bill).filter(Bill.id == outcome.bill_id).one()
    assert bill.bill_ref == "B-1"
    assert d(bill.total_amount) == Decimal(30)
    assert bill.bet_name == "หวยฮานอย"

    items = {
        (i.bet_number, i.bet_style): i
        for i in db.query(BetItem).join(BillEntry).filter(BillEntry.bill_id == bill.id).all()
    }
    assert set(items) == {("12", "บน"), ("12", "ล่าง"), ("45", "บน"), ("45", "ล่าง")}
    assert d(items[("12", "บน")].rate) == Decimal(10)
    assert d(items[("12", "บน")].baht_per) == Decimal(90)
    # เลขจ่ายครึ่ง: ยอดซื้อเต็ม แต่ราคาคิดรางวัลครึ่งเดียว
    assert d(items[("45", "บน")].price) == Decimal(10)
    assert d(items[("45", "บน")].rate) == Decimal(5)
    assert d(items[("45", "ล่าง")].payout_amount) == Decimal("225")


def test_three_digit_line_stores_straight_and_tote(db, make_round, member):
    lotto_round = make_round()
    outcome = CommitGate(db).commit(lotto_round.id, member.id, "member", [line(["123"], top=10, tote=5, bet_type="6d")])
    assert outcome.success

    db.expire_all()
    entry = db.query(BillEntry).filter(BillEntry.bill_id == outcome.bill_id).one()
    assert entry.bet_type == "3d"
    styles = sorted(i.bet_style for i in entry.items)
    assert styles == sorted(["ตรง", "โต๊ด"])


def test_limit_exceeded_writes_nothing(db, bottom_limited_round, member, add_spend):
    add_spend(bottom_limited_round, member, "45", "ล่าง", 250)
    gate = CommitGate(db)

    outcome = gate.commit(bottom_limited_round.id, member.id, "member", [line(["45", "12"], bottom=100)])

    assert not outcome.success
    assert gate.state == GateState.REJECTED
    assert outcome.reason == RejectReason.LIMIT_EXCEEDED
    assert not outcome.retryable
    assert [(r.number, r.style.value, r.ceiling, r.spent_so_far, r.proposed_amount) for r in outcome.rejections] == [
        ("45", "BOTTOM", Decimal(300), Decimal(250), Decimal(100)),
    ]
    db.expire_all()
    assert db.query(Bill).count() == 1


def test_exempt_user_commits_over_limit(db, make_round, member, add_spend):
    lotto_round = make_round(
        rules=[("40", "49", 300, "ล่าง")],
        exemptions=[{"exemption_type": "user", "user_id": member.id}],
    )
    add_spend(lotto_round, member, "45", "ล่าง", 300)

    outcome = CommitGate(db).commit(lotto_round.id, member.id, "member", [line(["45"], bottom=500)])

    assert outcome.success


def test_all_closed_numbers_is_empty_bill(db, make_round, member):
    lotto_round = make_round(closed_numbers=["12", "13"])
    outcome = CommitGate(db).commit(lotto_round.id, member.id, "member", [line(["12", "13"], top=10)])
    assert outcome.reason == RejectReason.EMPTY_BILL
    assert db.query(Bill).count() == 0


def test_missing_round_raises_lookup(db, member):
    gate = CommitGate(db)
    with pytest.raises(LookupError):
        gate.commit(uuid.uuid4(), member.id, "member", [line(["12"], top=10)])
    assert gate.state == GateState.REJECTED


@pytest.mark.parametrize("round_kwargs", [
    {"status": "closed"},
    {"cutoff": datetime.now(timezone.utc) - timedelta(seconds=1)},
])
def test_closed_round_is_rechecked_under_lock(db, make_round, member, round_kwargs):
    lotto_round = make_round(**round_kwargs)
    gate = CommitGate(db)

    outcome = gate.commit(lotto_round.id, member.id, "member", [line(["12"], top=10)])

    assert outcome.reason == RejectReason.ROUND_CLOSED
    assert not outcome.retryable
    assert gate.state == GateState.REJECTED
    assert db.query(Bill).count() == 0


def test_concurrent_commits_cannot_both_pass(session_factory, bottom_limited_round, member):
    round_id, user_id = bottom_limited_round.id, member.id
    barrier = threading.Barrier(2)

    def submit():
        session = session_factory()
        try:
            barrier.wait()
            return CommitGate(session).commit(round_id, user_id, "member", [line(["45"], bottom=200)])
        finally:
            session.close()

    with ThreadPoolExecutor(max_workers=2) as pool:
        outcomes = [f.result() for f in [pool.submit(submit) for _ in range(2)]]

    assert sorted(o.success for o in outcomes) == [False, True]
    loser = next(o for o in outcomes if not o.success)
    assert loser.reason == RejectReason.LIMIT_EXCEEDED
    assert loser.rejections[0].spent_so_far == Decimal(200)

    session = session_factory()
    try:
        assert session.query(Bill).count() == 1
    finally:
        session.close()


def test_lock_timeout_is_transient(db, bottom_limited_round, member):
    locks = RoundLockRegistry()
    gate = CommitGate(db, lock_timeout=0.05, locks=locks)

    with locks.hold(bottom_limited_round.id, timeout=1):
        outcome = gate.commit(bottom_limited_round.id, member.id, "member", [line(["45"], bottom=10)])

    assert outcome.reason == RejectReason.TRANSIENT
    assert outcome.retryable
    assert db.query(Bill).count() == 0


def test_storage_error_rolls_back(db, bottom_limited_round, member, monkeypatch):
    gate = CommitGate(db)

    def broken_save(*args, **kwargs):
        raise OperationalError("INSERT INTO bills", {}, Exception("disk I/O error"))

    monkeypatch.setattr(gate.store, "save_bill", broken_save)
    outcome = gate.commit(bottom_limited_round.id, member.id, "member", [line(["45"], bottom=10)])

    assert outcome.reason == RejectReason.TRANSIENT
    assert outcome.retryable
    assert gate.state == GateState.REJECTED
    assert db.query(Bill).count() == 0


def test_gate_is_single_use(db, make_round, member):
    lotto_round = make_round()
    gate = CommitGate(db)
    assert gate.commit(lotto_round.id, member.id, "member", [line(["12"], top=10)]).success

    with pytest.raises(RuntimeError):
        gate.commit(lotto_round.id, member.id, "member", [line(["12"], top=10)])


def test_rounds_do_not_share_locks(db, make_round, member):
    locks = RoundLockRegistry()
    busy_round = make_round()
    free_round = make_round()

    with locks.hold(busy_round.id, timeout=1):
        outcome = CommitGate(db, lock_timeout=0.05, locks=locks).commit(
            free_round.id, member.id, "member", [line(["12"], top=10)]
        )

    assert outcome.success


def test_lock_registry_drops_idle_rounds():
    locks = RoundLockRegistry()

    with locks.hold("round-a", timeout=1):
        with locks.hold("round-b", timeout=1):
            assert len(locks) == 2
    gc.collect()

    assert len(locks) == 0
