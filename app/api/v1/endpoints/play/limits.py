from uuid import UUID
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.api import deps
from app.schemas import CheckBatchRequest, CheckBatchResponse, RoundLimitSummary
from app.db.session import get_db
from app.models.user import User
from app.core.config import get_thai_now
from app.core.limit_cache import get_cached_summary, get_cache_stats
from app.core.limit_checker import LimitChecker
from app.core.round_store import RoundStore
from app.core.spend_ledger import SpendLedger

router = APIRouter()

def _build_snapshot(store: RoundStore, lotto_round) -> dict:
    config = store.load_rule_config(lotto_round)
    spend = SpendLedger(store.fetch_spend_rows).snapshot(str(lotto_round.id))
    return {"config": config, "spend": spend, "generated_at": get_thai_now()}

@router.get("/limits/cache-stats")
def read_limit_cache_stats(current_user: User = Depends(deps.require_admin)):
    return get_cache_stats()

@router.get("/limits/{round_id}/summary", response_model=RoundLimitSummary)
def get_round_limit_summary(
    round_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(deps.get_current_active_user)
):
    """
    สรุปวงเงิน + ยอดซื้อของทั้งงวด สำหรับไฮไลต์บนหน้าจอ
    ข้อมูลอาจเก่าได้ไม่เกินอายุ cache ใช้ตัดสินจริงไม่ได้
    """
    store = RoundStore(db)
    lotto_round = store.get_round(round_id)
    if not lotto_round:
        raise HTTPException(status_code=404, detail="ไม่พบงวดหวยนี้")

    snapshot = get_cached_summary(str(round_id), lambda: _build_snapshot(store, lotto_round))
    config = snapshot["config"]

    return {
        "round_id": round_id,
        "default_limits": {"limit_2d": config.defaults.limit_2d, "limit_3d": config.defaults.limit_3d},
        "range_rules": [
            {
                "range_start": r.range_start,
                "range_end": r.range_end,
                "max_amount": r.max_amount,
                "applies_to": r.applies_to.value,
            }
            for r in config.rules
        ],
        "exemptions": [
            {"exemption_type": ex.kind, "user_id": ex.user_id, "user_role": ex.role}
            for ex in config.exemptions
        ],
        "persisted_spend": [
            {"number": s.number, "top": s.top, "bottom": s.bottom, "tote": s.tote, "total": s.total}
            for s in snapshot["spend"].values()
        ],
        "is_exempt": config.is_exempt(current_user.id, current_user.role.value),
        "generated_at": snapshot["generated_at"],
    }

@router.post("/limits/{round_id}/check", response_model=CheckBatchResponse)
def check_batch(
    round_id: UUID,
    payload: CheckBatchRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(deps.get_current_active_user)
):
    """
    เช็คก่อนเพิ่มบรรทัดลงบิล โดยนับบรรทัดที่อยู่ในบิลแล้ว (ยังไม่บันทึก) เข้าไปด้วย
    เกินวงเงินไม่ใช่ error ตอบ 200 พร้อมรายการที่เกิน
    """
    store = RoundStore(db)
    lotto_round = store.get_round(round_id)
    if not lotto_round:
        raise HTTPException(status_code=404, detail="ไม่พบงวดหวยนี้")

    config = store.load_rule_config(lotto_round)
    checker = LimitChecker(SpendLedger(store.fetch_spend_rows))
    result = checker.check(
        config,
        current_user.id,
        current_user.role.value,
        [p.to_proposal() for p in payload.proposals],
        [line.to_entry() for line in payload.pending_bill_lines],
    )

    return {
        "accepted": result.accepted,
        "exempt": result.exempt,
        "rejected": [r.to_dict() for r in result.rejections],
    }
