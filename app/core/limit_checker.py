# app/core/limit_checker.py
"""
ตรวจชุดเลขที่จะซื้อเทียบกับวงเงิน ใช้ทั้งตอนเช็คก่อนเพิ่มบรรทัด (advisory)
และใน CommitGate ก่อนบันทึกจริง

ผลเกินวงเงินเป็นผลลัพธ์ปกติทางธุรกิจ คืนเป็นข้อมูล ไม่ raise
"""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Tuple

from app.core.bet_limits import (
    ZERO,
    BetStyle,
    PendingWagerEntry,
    RuleConfig,
    SpendRecord,
    WagerProposal,
    is_bet_number,
    resolve_ceiling,
)
from app.core.spend_ledger import SpendLedger


@dataclass(frozen=True)
class LimitRejection:
    number: str
    style: BetStyle
    ceiling: Decimal
    spent_so_far: Decimal
    proposed_amount: Decimal

    @property
    def remaining(self) -> Decimal:
        room = self.ceiling - self.spent_so_far
        return room if room > ZERO else ZERO

    def to_dict(self) -> dict:
        return {
            "number": self.number,
            "style": self.style.value,
            "ceiling": self.ceiling,
            "spent_so_far": self.spent_so_far,
            "proposed_amount": self.proposed_amount,
            "remaining": self.remaining,
        }


@dataclass(frozen=True)
class CheckResult:
    accepted: bool
    exempt: bool = False
    rejections: Tuple[LimitRejection, ...] = ()
    accepted_numbers: Tuple[str, ...] = ()
    rejected_numbers: Tuple[str, ...] = field(default=())


def merge_proposals(proposals: Iterable[WagerProposal]) -> Dict[str, WagerProposal]:
    """รวมยอดของเลขเดียวกันที่มาหลายบรรทัดก่อนตรวจ"""
    merged: Dict[str, WagerProposal] = {}
    for p in proposals:
        if not is_bet_number(p.number):
            raise ValueError(f"Invalid bet number: {p.number!r}")
        prev = merged.get(p.number)
        if prev is None:
            merged[p.number] = p
        else:
            merged[p.number] = WagerProposal(
                p.number,
                prev.top_amount + p.top_amount,
                prev.bottom_amount + p.bottom_amount,
                prev.tote_amount + p.tote_amount,
            )
    return merged


def evaluate_number(proposal: WagerProposal, spent: SpendRecord, config: RuleConfig) -> List[LimitRejection]:
    rejections = []
    for style in BetStyle:
        proposed = proposal.amount_for(style)
        if proposed <= ZERO:
            continue
        ceiling: Optional[Decimal] = resolve_ceiling(proposal.number, style, config)
        if ceiling is None:
            continue
        spent_amount = spent.amount_for(style)
        if spent_amount + proposed > ceiling:
            rejections.append(LimitRejection(proposal.number, style, ceiling, spent_amount, proposed))
    return rejections


class LimitChecker:
    def __init__(self, ledger: SpendLedger):
        self.ledger = ledger

    def check(
        self,
        config: RuleConfig,
        user_id,
        user_role,
        proposals: Iterable[WagerProposal],
        pending_in_bill: Iterable[PendingWagerEntry] = (),
    ) -> CheckResult:
        """
        จัดชุดเลขเป็นผ่าน/ไม่ผ่าน

        - ผู้ใช้ที่ได้รับการยกเว้น (ตาม id หรือ role) ผ่านทั้งหมด ไม่อ่านยอดเลย
        - ยอดที่ใช้ไปแล้ว = ยอดบันทึกแล้ว + pending_in_bill (บรรทัดในบิลเดียวกันที่ยังไม่บันทึก)
          กันการแตกเลขเดียวเป็นหลายบรรทัดเพื่อเลี่ยงวงเงิน
        - เลขที่มีประเภทใดเกิน ถือว่าเลขนั้นไม่ผ่านทั้งเลข
        """
        merged = merge_proposals(proposals)

        if config.is_exempt(user_id, user_role):
            return CheckResult(accepted=True, exempt=True, accepted_numbers=tuple(sorted(merged)))

        if not merged:
            return CheckResult(accepted=True)

        spent = self.ledger.aggregate(config.round_id, merged.keys(), pending_in_bill)

        rejections: List[LimitRejection] = []
        accepted_numbers, rejected_numbers = [], []
        for number in sorted(merged):
            failed = evaluate_number(merged[number], spent[number], config)
            if failed:
                rejections.extend(failed)
                rejected_numbers.append(number)
            else:
                accepted_numbers.append(number)

        return CheckResult(
            accepted=not rejections,
            rejections=tuple(rejections),
            accepted_numbers=tuple(accepted_numbers),
            rejected_numbers=tuple(rejected_numbers),
        )
