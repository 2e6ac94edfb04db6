from typing import Optional, List, Literal
from uuid import UUID
from pydantic import BaseModel, Field, field_validator, model_validator
from datetime import datetime
from decimal import Decimal

from app.core.bet_limits import PendingWagerEntry, WagerProposal, is_bet_number

# --- Auth Schemas ---
class Token(BaseModel):
    access_token: str
    token_type: str

# --- Bet Schemas ---
BetLineType = Literal["2d", "3d", "6d", "19d", "run"]

# จำนวนหลักของเลขที่แต่ละโหมดรับ
DIGITS_BY_BET_TYPE = {"2d": 2, "19d": 2, "3d": 3, "6d": 3, "run": 1}

# ยอดเงินทุกช่องรับทศนิยมไม่เกิน 2 ตำแหน่ง เท่ากับคอลัมน์ DECIMAL(12,2) ที่บันทึกจริง
class ProposalIn(BaseModel):
    number: str
    top_amount: Decimal = Field(default=Decimal(0), ge=0, decimal_places=2)
    bottom_amount: Decimal = Field(default=Decimal(0), ge=0, decimal_places=2)
    tote_amount: Decimal = Field(default=Decimal(0), ge=0, decimal_places=2)

    @field_validator('number')
    @classmethod
    def validate_number(cls, v):
        v = v.strip()
        if not is_bet_number(v):
            raise ValueError("เลขต้องเป็นตัวเลข 1-3 หลัก")
        return v

    def to_proposal(self) -> WagerProposal:
        return WagerProposal(self.number, self.top_amount, self.bottom_amount, self.tote_amount)

class BillLineIn(BaseModel):
    bet_type: BetLineType = "2d"
    numbers: List[str] = Field(min_length=1)
    price_top: Decimal = Field(default=Decimal(0), ge=0, decimal_places=2)
    price_bottom: Decimal = Field(default=Decimal(0), ge=0, decimal_places=2)
    price_tote: Decimal = Field(default=Decimal(0), ge=0, decimal_places=2)

    @field_validator('numbers')
    @classmethod
    def strip_numbers(cls, v):
        return [n.strip() for n in v]

    @model_validator(mode='after')
    def validate_line(self):
        digits = DIGITS_BY_BET_TYPE[self.bet_type]
        for n in self.numbers:
            if not n.isdigit() or len(n) != digits:
                raise ValueError(f"เลข {n} ต้องเป็นตัวเลข {digits} หลักสำหรับโหมด {self.bet_type}")
        if self.price_tote > 0 and self.bet_type not in ("3d", "6d"):
            raise ValueError("โต๊ดใช้ได้กับเลข 3 ตัวเท่านั้น")
        if self.price_top + self.price_bottom + self.price_tote <= 0:
            raise ValueError("ต้องระบุราคาอย่างน้อยหนึ่งประเภท")
        return self

    def to_entry(self) -> PendingWagerEntry:
        return PendingWagerEntry(
            numbers=tuple(self.numbers),
            price_top=self.price_top,
            price_bottom=self.price_bottom,
            price_tote=self.price_tote,
            bet_type=self.bet_type,
        )

class RejectionOut(BaseModel):
    number: str
    style: str
    ceiling: Decimal
    spent_so_far: Decimal
    proposed_amount: Decimal
    remaining: Decimal

class CheckBatchRequest(BaseModel):
    proposals: List[ProposalIn] = Field(min_length=1)
    pending_bill_lines: List[BillLineIn] = []

class CheckBatchResponse(BaseModel):
    accepted: bool
    exempt: bool = False
    rejected: List[RejectionOut] = []

class CommitBillRequest(BaseModel):
    lotto_round_id: UUID
    bill_ref: Optional[str] = None
    note: Optional[str] = None
    entries: List[BillLineIn] = Field(min_length=1)

class CommitBillResponse(BaseModel):
    success: bool = True
    bill_id: UUID
    total_amount: Decimal

class CommitBillRejected(BaseModel):
    success: bool = False
    error: str
    message: str
    retryable: bool = False
    rejected: List[RejectionOut] = []

# --- Rule Config Schemas ---
class RangeLimitIn(BaseModel):
    range_start: str
    range_end: str
    max_amount: Decimal
    number_limit_types: str = "total"

class RangeLimitResponse(RangeLimitIn):
    id: int

    class Config:
        from_attributes = True

class ExemptionIn(BaseModel):
    exemption_type: Literal["user", "role"]
    user_id: Optional[UUID] = None
    user_role: Optional[str] = None

class ExemptionResponse(ExemptionIn):
    id: int

    class Config:
        from_attributes = True

class DefaultLimitsIn(BaseModel):
    limit_2d: Optional[Decimal] = None
    limit_3d: Optional[Decimal] = None

# --- Limit Summary Schemas ---
class RangeRuleOut(BaseModel):
    range_start: str
    range_end: str
    max_amount: Decimal
    applies_to: str

class SpendOut(BaseModel):
    number: str
    top: Decimal
    bottom: Decimal
    tote: Decimal
    total: Decimal

class RoundLimitSummary(BaseModel):
    round_id: UUID
    default_limits: DefaultLimitsIn
    range_rules: List[RangeRuleOut] = []
    exemptions: List[ExemptionIn] = []
    persisted_spend: List[SpendOut] = []
    is_exempt: bool = False
    generated_at: datetime
