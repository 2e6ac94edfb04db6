import os

# ต้องตั้งก่อน import app.* เพราะ Settings อ่าน env ตอน import
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key")

import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from app.core.limit_cache import clear_cache
from app.core.security import create_access_token
from app.db.session import build_engine, get_db
from app.init_tables import init_db
from app.main import app
from app.models.lotto import (
    BetItem,
    Bill,
    BillEntry,
    BillStatus,
    LottoRound,
    LottoType,
    RangeLimit,
    RoundExemption,
)
from app.models.user import User, UserRole

RATES = {"2top": 90, "2bottom": 90, "3top": 900, "3bottom": 150, "3tote": 150, "run_top": 3, "run_bottom": 4}


@pytest.fixture
def engine(tmp_path):
    eng = build_engine(f"sqlite:///{tmp_path / 'lotto.db'}")
    init_db(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture(autouse=True)
def _reset_limit_cache():
    clear_cache()
    yield
    clear_cache()


@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db):
    def _make(username=None, role=UserRole.member, password_hash="not-a-real-hash", is_active=True):
        user = User(
            username=username or f"user-{uuid.uuid4().hex[:8]}",
            password_hash=password_hash,
            role=role,
            is_active=is_active,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user
    return _make


@pytest.fixture
def make_round(db):
    def _make(
        limit_2d=None,
        limit_3d=None,
        rules=(),
        exemptions=(),
        closed_numbers=(),
        half_pay_numbers=(),
        cutoff=None,
        status="active",
    ):
        lotto_type = LottoType(name="หวยฮานอย", code=f"HN{uuid.uuid4().hex[:6]}", rates=RATES)
        db.add(lotto_type)
        db.flush()

        lotto_round = LottoRound(
            name="งวดทดสอบ",
            lotto_type_id=lotto_type.id,
            cutoff_datetime=cutoff or datetime.now(timezone.utc) + timedelta(days=1),
            status=status,
            limit_2d_amount=Decimal(str(limit_2d)) if limit_2d is not None else None,
            limit_3d_amount=Decimal(str(limit_3d)) if limit_3d is not None else None,
            closed_numbers=list(closed_numbers),
            half_pay_numbers=list(half_pay_numbers),
        )
        db.add(lotto_round)
        db.flush()

        for start, end, amount, style in rules:
            db.add(RangeLimit(
                lotto_round_id=lotto_round.id,
                range_start=start,
                range_end=end,
                max_amount=Decimal(str(amount)),
                number_limit_types=style,
            ))
        for ex in exemptions:
            db.add(RoundExemption(lotto_round_id=lotto_round.id, **ex))

        db.commit()
        db.refresh(lotto_round)
        return lotto_round
    return _make


@pytest.fixture
def add_spend(db):
    """บันทึกยอดซื้อเดิมของเลข (bet_style เป็นข้อความไทยแบบที่อยู่ใน DB จริง)"""
    def _add(lotto_round, user, number, bet_style, amount, bill_status=BillStatus.PENDING.value, item_status=None):
        bill = Bill(
            user_id=user.id,
            lotto_round_id=lotto_round.id,
            total_amount=Decimal(str(amount)),
            status=bill_status,
        )
        db.add(bill)
        db.flush()
        entry = BillEntry(bill_id=bill.id, bet_type="3d" if len(number) == 3 else "2d", total=Decimal(str(amount)))
        db.add(entry)
        db.flush()
        db.add(BetItem(
            bill_entry_id=entry.id,
            bet_number=number,
            bet_style=bet_style,
            price=Decimal(str(amount)),
            rate=Decimal(str(amount)),
            baht_per=Decimal("90"),
            payout_amount=Decimal(str(amount)) * 90,
            status=item_status,
        ))
        db.commit()
        return bill
    return _add


@pytest.fixture
def auth_headers():
    def _headers(user):
        token = create_access_token(user.id, user.role.value)
        return {"Authorization": f"Bearer {token}"}
    return _headers
