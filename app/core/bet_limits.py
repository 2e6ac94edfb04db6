# app/core/bet_limits.py
"""
Rule model และตัว resolve วงเงินต่อเลข

ทุกอย่างในไฟล์นี้เป็น pure function ไม่แตะ DB ไม่อ่านยอดขาย
ใช้ร่วมกันทั้งฝั่ง advisory (หน้าจอไฮไลต์เลขเต็ม) และฝั่งบันทึกบิลจริง
"""
import enum
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Dict, Iterable, List, Optional, Tuple

from app.core.errors import InvalidRuleConfig


ZERO = Decimal("0")
MAX_DIGITS = 3


class BetStyle(str, enum.Enum):
    TOP = "TOP"        # บน (รวม "ตรง" ของ 3 ตัว)
    BOTTOM = "BOTTOM"  # ล่าง
    TOTE = "TOTE"      # โต๊ด
    TOTAL = "TOTAL"    # ยอดรวมทุกประเภทของเลขนั้น ใช้เทียบวงเงินเท่านั้น


# ประเภทที่มียอดซื้อจริง (TOTAL เป็นยอดรวม ไม่ได้ถูกซื้อโดยตรง)
SPEND_STYLES = (BetStyle.TOP, BetStyle.BOTTOM, BetStyle.TOTE)

_STYLE_SYNONYMS = {
    "บน": BetStyle.TOP,
    "ตรง": BetStyle.TOP,
    "top": BetStyle.TOP,
    "straight": BetStyle.TOP,
    "ล่าง": BetStyle.BOTTOM,
    "bottom": BetStyle.BOTTOM,
    "โต๊ด": BetStyle.TOTE,
    "tote": BetStyle.TOTE,
    "tod": BetStyle.TOTE,
    "ทั้งหมด": BetStyle.TOTAL,
    "total": BetStyle.TOTAL,
    "all": BetStyle.TOTAL,
}


def normalize_style(raw) -> BetStyle:
    """แปลงชื่อประเภทแบบข้อความ (ไทย/อังกฤษ) ให้เป็น BetStyle ครั้งเดียวที่ขอบระบบ"""
    if isinstance(raw, BetStyle):
        return raw
    key = str(raw or "").strip()
    style = _STYLE_SYNONYMS.get(key) or _STYLE_SYNONYMS.get(key.lower())
    if style is None:
        raise ValueError(f"Unknown bet style: {raw!r}")
    return style


def is_bet_number(number: str) -> bool:
    return isinstance(number, str) and number.isdigit() and 1 <= len(number) <= MAX_DIGITS


def to_amount(value) -> Decimal:
    if value is None:
        return ZERO
    return Decimal(str(value))


# ==================== Rule Config ====================

@dataclass(frozen=True)
class RangeLimitRule:
    range_start: str
    range_end: str
    max_amount: Decimal
    applies_to: BetStyle

    @property
    def digit_length(self) -> int:
        return len(self.range_start)

    @property
    def width(self) -> int:
        return int(self.range_end) - int(self.range_start)

    def contains(self, number: str) -> bool:
        if len(number) != self.digit_length:
            return False
        return int(self.range_start) <= int(number) <= int(self.range_end)

    def overlaps(self, other: "RangeLimitRule") -> bool:
        if self.digit_length != other.digit_length:
            return False
        return int(self.range_start) <= int(other.range_end) and int(other.range_start) <= int(self.range_end)


@dataclass(frozen=True)
class DefaultLimits:
    limit_2d: Optional[Decimal] = None
    limit_3d: Optional[Decimal] = None

    def for_number(self, number: str) -> Optional[Decimal]:
        raw = self.limit_2d if len(number) <= 2 else self.limit_3d
        if raw is None or raw <= ZERO:
            return None
        return raw


@dataclass(frozen=True)
class Exemption:
    kind: str                      # "user" | "role"
    user_id: Optional[str] = None
    role: Optional[str] = None

    def matches(self, user_id, role) -> bool:
        if self.kind == "user":
            return self.user_id is not None and str(user_id) == self.user_id
        if self.kind == "role":
            return self.role is not None and role is not None and str(role) == self.role
        return False


@dataclass(frozen=True)
class RuleConfig:
    round_id: str
    defaults: DefaultLimits = field(default_factory=DefaultLimits)
    rules: Tuple[RangeLimitRule, ...] = ()
    exemptions: Tuple[Exemption, ...] = ()

    def is_exempt(self, user_id, role) -> bool:
        return any(ex.matches(user_id, role) for ex in self.exemptions)


# ==================== Wagers & Spend ====================

@dataclass(frozen=True)
class WagerProposal:
    number: str
    top_amount: Decimal = ZERO
    bottom_amount: Decimal = ZERO
    tote_amount: Decimal = ZERO

    @property
    def total(self) -> Decimal:
        return self.top_amount + self.bottom_amount + self.tote_amount

    def amount_for(self, style: BetStyle) -> Decimal:
        if style == BetStyle.TOP:
            return self.top_amount
        if style == BetStyle.BOTTOM:
            return self.bottom_amount
        if style == BetStyle.TOTE:
            return self.tote_amount
        return self.total


@dataclass(frozen=True)
class PendingWagerEntry:
    """บรรทัดในบิลที่ยังไม่บันทึก: หลายเลขใช้ราคาต่อประเภทเดียวกัน"""
    numbers: Tuple[str, ...]
    price_top: Decimal = ZERO
    price_bottom: Decimal = ZERO
    price_tote: Decimal = ZERO
    bet_type: str = "2d"    # 2d / 3d / 6d / 19d / run ใช้ตอนบันทึกเท่านั้น

    def to_proposals(self) -> List[WagerProposal]:
        return [
            WagerProposal(number, self.price_top, self.price_bottom, self.price_tote)
            for number in self.numbers
        ]


@dataclass
class SpendRecord:
    number: str
    top: Decimal = ZERO
    bottom: Decimal = ZERO
    tote: Decimal = ZERO

    @property
    def total(self) -> Decimal:
        return self.top + self.bottom + self.tote

    def amount_for(self, style: BetStyle) -> Decimal:
        if style == BetStyle.TOP:
            return self.top
        if style == BetStyle.BOTTOM:
            return self.bottom
        if style == BetStyle.TOTE:
            return self.tote
        return self.total

    def add(self, style: BetStyle, amount: Decimal) -> None:
        if style == BetStyle.TOP:
            self.top += amount
        elif style == BetStyle.BOTTOM:
            self.bottom += amount
        elif style == BetStyle.TOTE:
            self.tote += amount
        else:
            raise ValueError("TOTAL is derived and cannot be spent directly")


# ==================== Rule Resolver ====================

def _specificity_key(rule: RangeLimitRule):
    # ช่วงแคบสุดชนะ ถ้ากว้างเท่ากันใช้ range_start ต่ำสุด แล้วค่อยวงเงินต่ำสุด
    return (rule.width, int(rule.range_start), rule.max_amount)


def matching_rules(number: str, style: BetStyle, config: RuleConfig) -> List[RangeLimitRule]:
    return [r for r in config.rules if r.applies_to == style and r.contains(number)]


def resolve_ceiling(number: str, style: BetStyle, config: RuleConfig) -> Optional[Decimal]:
    """
    หาวงเงินที่คุม (เลข, ประเภท) นี้

    Returns:
        Decimal ของวงเงิน หรือ None ถ้าไม่จำกัด

    - ไม่มีกฎตรง: บน/ล่าง/โต๊ด = ไม่จำกัด, ทั้งหมด = วงเงินเริ่มต้นตามจำนวนหลัก
    - มีหลายกฎซ้อนกัน: ช่วงที่แคบที่สุดชนะ
    - กฎ "ทั้งหมด" ที่ตรงกับเลข ใช้แทนวงเงินเริ่มต้น ไม่บวกเพิ่ม
    """
    matching = matching_rules(number, style, config)
    if not matching:
        if style == BetStyle.TOTAL:
            return config.defaults.for_number(number)
        return None
    return min(matching, key=_specificity_key).max_amount


def resolve_all(number: str, config: RuleConfig) -> Dict[BetStyle, Optional[Decimal]]:
    return {style: resolve_ceiling(number, style, config) for style in BetStyle}


# ==================== Validation (config-edit time) ====================

def validate_range_rule(range_start, range_end, max_amount, style) -> RangeLimitRule:
    """ตรวจกฎช่วงเลขตอนแอดมินบันทึก กฎที่ผ่านตรงนี้แล้วถือว่าถูกต้องเสมอในฝั่งตรวจวงเงิน"""
    start = str(range_start or "").strip()
    end = str(range_end or "").strip()

    if not is_bet_number(start):
        raise InvalidRuleConfig(f"range_start '{start}' ต้องเป็นตัวเลข 1-{MAX_DIGITS} หลัก", field="range_start")
    if not is_bet_number(end):
        raise InvalidRuleConfig(f"range_end '{end}' ต้องเป็นตัวเลข 1-{MAX_DIGITS} หลัก", field="range_end")
    if len(start) != len(end):
        raise InvalidRuleConfig(f"จำนวนหลักของช่วง {start}-{end} ไม่เท่ากัน", field="range_end")
    if int(start) > int(end):
        raise InvalidRuleConfig(f"range_start {start} มากกว่า range_end {end}", field="range_start")

    try:
        amount = Decimal(str(max_amount))
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidRuleConfig(f"max_amount '{max_amount}' ไม่ใช่ตัวเลข", field="max_amount")
    if not amount.is_finite() or amount <= ZERO:
        raise InvalidRuleConfig("max_amount ต้องมากกว่า 0", field="max_amount")

    try:
        applies_to = normalize_style(style)
    except ValueError:
        raise InvalidRuleConfig(f"ประเภทวงเงิน '{style}' ไม่รู้จัก", field="number_limit_types")

    return RangeLimitRule(start, end, amount, applies_to)


def validate_default_limit(value, field_name: str) -> Optional[Decimal]:
    if value is None:
        return None
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidRuleConfig(f"{field_name} ไม่ใช่ตัวเลข", field=field_name)
    if not amount.is_finite() or amount < ZERO:
        raise InvalidRuleConfig(f"{field_name} ต้องไม่ติดลบ", field=field_name)
    return amount


def find_ambiguous_overlaps(rules: Iterable[RangeLimitRule]) -> List[Tuple[RangeLimitRule, RangeLimitRule]]:
    """
    คู่กฎที่ซ้อนกันและกว้างเท่ากัน (ประเภทเดียวกัน)
    ระบบยังตัดสินได้ (range_start ต่ำสุดชนะ) แต่ควรแจ้งแอดมิน
    """
    rules = list(rules)
    pairs = []
    for i, a in enumerate(rules):
        for b in rules[i + 1:]:
            if a.applies_to == b.applies_to and a.width == b.width and a.overlaps(b):
                pairs.append((a, b))
    return pairs
