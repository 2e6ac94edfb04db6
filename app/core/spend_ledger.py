# app/core/spend_ledger.py
"""
รวมยอดซื้อต่อเลขต่อประเภท จากยอดที่บันทึกแล้ว + บรรทัดที่ยังไม่บันทึกในบิล

ไม่ผูกกับ DB โดยตรง รับ callback สำหรับอ่านยอดที่บันทึกแล้ว
(แบบเดียวกับ db_fetch_callback ของ cache) ฝั่ง SQL อยู่ที่ round_store.py
"""
from typing import Callable, Dict, Iterable, Optional, Sequence, Tuple
from decimal import Decimal

from app.core.bet_limits import PendingWagerEntry, SpendRecord, normalize_style, to_amount

# (round_id, numbers หรือ None = ทุกเลข) -> [(เลข, ประเภทดิบ, ยอดรวม)]
SpendFetch = Callable[[str, Optional[Sequence[str]]], Iterable[Tuple[str, str, Decimal]]]


class SpendLedger:
    def __init__(self, fetch_persisted: SpendFetch):
        self._fetch = fetch_persisted

    def aggregate(
        self,
        round_id: str,
        target_numbers: Iterable[str],
        pending_entries: Iterable[PendingWagerEntry] = (),
    ) -> Dict[str, SpendRecord]:
        """
        Args:
            round_id: งวดที่ต้องการ
            target_numbers: เลขที่ต้องการยอด (เลขที่ไม่มียอดจะได้ 0)
            pending_entries: บรรทัดในบิลที่ยังไม่บันทึก นับราคาต่อเลข 1 ครั้งต่อการปรากฏ

        Returns:
            { "เลข": SpendRecord } ครอบคลุมทั้ง target_numbers และเลขใน pending_entries
        """
        pending_entries = list(pending_entries)
        numbers = set(target_numbers)
        for entry in pending_entries:
            numbers.update(entry.numbers)

        result = {number: SpendRecord(number) for number in sorted(numbers)}
        if not result:
            return result

        self._fold_persisted(result, self._fetch(round_id, sorted(numbers)))

        for entry in pending_entries:
            for number in entry.numbers:
                record = result[number]
                record.top += entry.price_top
                record.bottom += entry.price_bottom
                record.tote += entry.price_tote

        return result

    def snapshot(self, round_id: str) -> Dict[str, SpendRecord]:
        """ยอดที่บันทึกแล้วของทุกเลขในงวด (ใช้กับหน้าสรุป advisory)"""
        result: Dict[str, SpendRecord] = {}
        self._fold_persisted(result, self._fetch(round_id, None), create_missing=True)
        return dict(sorted(result.items()))

    @staticmethod
    def _fold_persisted(result: Dict[str, SpendRecord], rows, create_missing: bool = False) -> None:
        for number, raw_style, amount in rows:
            record = result.get(number)
            if record is None:
                if not create_missing:
                    continue
                record = result[number] = SpendRecord(number)
            # บน/ตรง -> top, ล่าง -> bottom, โต๊ด -> tote
            record.add(normalize_style(raw_style), to_amount(amount))
