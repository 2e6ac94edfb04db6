from typing import Dict, List, Optional, Iterable
from decimal import Decimal, ROUND_HALF_UP

from app.core.bet_limits import PendingWagerEntry

# โหมดที่หน้าบ้านส่งมา -> โหมดที่เก็บใน bill_entries
STORED_BET_TYPE = {"6d": "3d", "19d": "2d"}

THREE_DIGIT_TYPES = ("3d", "6d")
RUN_TYPE = "run"

def get_rate(rates: Optional[dict], key: str) -> Decimal:
    """อ่านอัตราจ่ายจาก JSON ของประเภทหวย รองรับทั้ง {"2top": 90} และ {"2top": {"pay": 90}}"""
    if not rates:
        return Decimal('0.00')
    raw = rates.get(key, 0)
    if isinstance(raw, dict):
        raw = raw.get('pay', 0)
    return Decimal(str(raw or 0)).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)

def rate_keys(bet_type: str) -> Dict[str, str]:
    if bet_type == RUN_TYPE:
        return {"top": "run_top", "bottom": "run_bottom"}
    if bet_type in THREE_DIGIT_TYPES:
        return {"top": "3top", "bottom": "3bottom", "tote": "3tote"}
    return {"top": "2top", "bottom": "2bottom"}

def line_total(line: PendingWagerEntry) -> Decimal:
    per_number = line.price_top + line.price_bottom + line.price_tote
    return per_number * len(line.numbers)

def build_bet_items(line: PendingWagerEntry, rates: Optional[dict], half_pay_numbers: Iterable[str]) -> List[dict]:
    """
    แตกบรรทัดในบิลเป็นรายการย่อยต่อเลขต่อประเภท

    เลขจ่ายครึ่ง: ราคาที่ใช้คิดรางวัลเหลือครึ่งเดียว แต่ยอดซื้อ (price) ยังเต็ม
    เพื่อให้ยอดที่นับวงเงินตรงกับเงินที่ลูกค้าจ่ายจริง
    """
    half_pay = set(half_pay_numbers or [])
    is_three_digit = line.bet_type in THREE_DIGIT_TYPES
    keys = rate_keys(line.bet_type)

    styles = [("ตรง" if is_three_digit else "บน", line.price_top, keys["top"])]
    if is_three_digit:
        styles.append(("โต๊ด", line.price_tote, keys["tote"]))
    styles.append(("ล่าง", line.price_bottom, keys["bottom"]))

    items = []
    for style, price, key in styles:
        if price <= 0:
            continue
        baht_per = get_rate(rates, key)
        for number in line.numbers:
            effective = price / 2 if number in half_pay else price
            items.append({
                "bet_number": number,
                "bet_style": style,
                "price": price,
                "rate": effective,
                "baht_per": baht_per,
                "payout_amount": effective * baht_per,
            })
    return items
