# app/core/round_store.py
"""
ชั้นอ่าน/เขียนข้อมูลงวดผ่าน SQLAlchemy Session สำหรับ engine วงเงิน
"""
import logging
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import func, or_, text
from sqlalchemy.orm import Session

from app.core.bet_limits import (
    DefaultLimits,
    Exemption,
    PendingWagerEntry,
    RangeLimitRule,
    RuleConfig,
    normalize_style,
    to_amount,
)
from app.core.config import as_aware, get_thai_now
from app.core.payout import STORED_BET_TYPE, build_bet_items, line_total
from app.models.lotto import (
    BetItem,
    BetItemStatus,
    Bill,
    BillEntry,
    BillStatus,
    LottoRound,
    RangeLimit,
    RoundExemption,
    RoundStatus,
)

logger = logging.getLogger(__name__)

# บิลที่ยอดยังนับเข้าวงเงิน
# บิลที่ยกเลิกไม่นับเลยทั้งใบ แม้รายการย่อยจะยังเป็น NULL/ยืนยัน (ระบบเดิมหน้าสรุปยังนับรายการพวกนี้)
LIVE_BILL_STATUSES = (BillStatus.PENDING.value, BillStatus.CONFIRMED.value)

# งวดที่ยังรับแทง
OPEN_ROUND_STATUSES = (RoundStatus.ACTIVE.value, RoundStatus.MANUAL_ACTIVE.value)


def as_uuid(value) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    return uuid.UUID(str(value))


def closed_reason(lotto_round: LottoRound, now: Optional[datetime] = None) -> Optional[str]:
    """เหตุผลที่งวดไม่รับแทงแล้ว (ข้อความไทยสำหรับผู้ใช้) หรือ None ถ้ายังรับได้"""
    if lotto_round.status not in OPEN_ROUND_STATUSES:
        return "งวดนี้ปิดรับแทงแล้ว"
    if as_aware(lotto_round.cutoff_datetime) <= (now or get_thai_now()):
        return "เลยเวลาปิดรับแทงแล้ว"
    return None


class RoundStore:
    def __init__(self, db: Session):
        self.db = db

    # ==================== Round ====================

    def get_round(self, round_id) -> Optional[LottoRound]:
        return self.db.query(LottoRound).filter(LottoRound.id == as_uuid(round_id)).first()

    def lock_round(self, round_id, timeout_seconds: float) -> Optional[LottoRound]:
        """
        ล็อคแถวงวดด้วย SELECT ... FOR UPDATE จนจบ transaction
        ทุกการบันทึกบิลของงวดเดียวกันจะเข้าคิวที่จุดนี้
        """
        if self.db.get_bind().dialect.name == "postgresql":
            # SET LOCAL มีผลแค่ใน transaction นี้
            self.db.execute(text(f"SET LOCAL lock_timeout = '{int(timeout_seconds * 1000)}ms'"))
        return (
            self.db.query(LottoRound)
            .filter(LottoRound.id == as_uuid(round_id))
            .with_for_update()
            .populate_existing()
            .first()
        )

    # ==================== Rule Config ====================

    def load_rule_config(self, lotto_round: LottoRound) -> RuleConfig:
        rows = (
            self.db.query(RangeLimit)
            .filter(RangeLimit.lotto_round_id == lotto_round.id)
            .order_by(RangeLimit.id)
            .all()
        )
        rules = tuple(
            RangeLimitRule(
                r.range_start,
                r.range_end,
                to_amount(r.max_amount),
                normalize_style(r.number_limit_types),
            )
            for r in rows
        )

        exemption_rows = (
            self.db.query(RoundExemption)
            .filter(RoundExemption.lotto_round_id == lotto_round.id)
            .order_by(RoundExemption.id)
            .all()
        )
        exemptions = tuple(
            Exemption(
                kind=ex.exemption_type,
                user_id=str(ex.user_id) if ex.user_id else None,
                role=ex.user_role,
            )
            for ex in exemption_rows
        )

        defaults = DefaultLimits(
            limit_2d=to_amount(lotto_round.limit_2d_amount) if lotto_round.limit_2d_amount is not None else None,
            limit_3d=to_amount(lotto_round.limit_3d_amount) if lotto_round.limit_3d_amount is not None else None,
        )
        return RuleConfig(str(lotto_round.id), defaults, rules, exemptions)

    # ==================== Spend ====================

    def fetch_spend_rows(self, round_id, numbers: Optional[Sequence[str]]) -> List[Tuple[str, str, Decimal]]:
        query = (
            self.db.query(BetItem.bet_number, BetItem.bet_style, func.sum(BetItem.price))
            .join(BillEntry, BetItem.bill_entry_id == BillEntry.id)
            .join(Bill, BillEntry.bill_id == Bill.id)
            .filter(
                Bill.lotto_round_id == as_uuid(round_id),
                Bill.status.in_(LIVE_BILL_STATUSES),
                or_(BetItem.status.is_(None), BetItem.status != BetItemStatus.CANCELLED.value),
            )
        )
        if numbers is not None:
            query = query.filter(BetItem.bet_number.in_(list(numbers)))

        rows = query.group_by(BetItem.bet_number, BetItem.bet_style).all()
        return [(number, style, Decimal(str(total or 0))) for number, style, total in rows]

    # ==================== Write ====================

    def save_bill(
        self,
        lotto_round: LottoRound,
        user_id,
        lines: Iterable[PendingWagerEntry],
        bill_ref: Optional[str] = None,
        note: Optional[str] = None,
    ) -> Bill:
        """เพิ่มบิล + บรรทัด + รายการย่อย ใน transaction ปัจจุบัน (ยังไม่ commit)"""
        lines = [line for line in lines if line.numbers]
        rates = lotto_round.lotto_type.rates if lotto_round.lotto_type else {}
        half_pay = lotto_round.half_pay_numbers or []

        bill = Bill(
            bill_ref=bill_ref,
            user_id=as_uuid(user_id),
            lotto_round_id=lotto_round.id,
            note=note,
            total_amount=sum((line_total(line) for line in lines), Decimal(0)),
            bet_name=lotto_round.lotto_type.name if lotto_round.lotto_type else None,
            status=BillStatus.PENDING.value,
            bill_lotto_draw=lotto_round.cutoff_datetime,
        )
        self.db.add(bill)
        self.db.flush()

        for line in lines:
            entry = BillEntry(
                bill_id=bill.id,
                bet_type=STORED_BET_TYPE.get(line.bet_type, line.bet_type),
                total=line_total(line),
            )
            self.db.add(entry)
            self.db.flush()

            for item in build_bet_items(line, rates, half_pay):
                self.db.add(BetItem(bill_entry_id=entry.id, **item))

        self.db.flush()
        logger.debug("Bill %s staged with %d lines", bill.id, len(lines))
        return bill
