from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.api import deps
from app.schemas import CommitBillRequest, CommitBillResponse, CommitBillRejected
from app.db.session import get_db
from app.models.user import User
from app.core.commit_gate import CommitGate, RejectReason
from app.core.limit_cache import invalidate_cache
from app.core.round_store import RoundStore, closed_reason

router = APIRouter()

@router.post("/bills", response_model=CommitBillResponse, status_code=201,
             responses={409: {"model": CommitBillRejected}, 503: {"model": CommitBillRejected}})
def commit_bill(
    bill_in: CommitBillRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(deps.get_current_active_user)
):
    # 1. ตรวจงวด (อ่านแบบไม่ล็อค แค่กันคำขอที่ผิดชัดๆ ก่อนเข้าคิว)
    store = RoundStore(db)
    lotto_round = store.get_round(bill_in.lotto_round_id)
    if not lotto_round:
        raise HTTPException(status_code=404, detail="ไม่พบงวดหวยนี้")
    reason = closed_reason(lotto_round)
    if reason:
        raise HTTPException(status_code=400, detail=reason)

    closed = set(lotto_round.closed_numbers or [])
    if all(n in closed for line in bill_in.entries for n in line.numbers):
        raise HTTPException(status_code=400, detail="ทุกเลขในบิลเป็นเลขปิดรับ")

    user_id, user_role = current_user.id, current_user.role.value
    round_id = lotto_round.id
    # ปิด transaction ที่อ่านไว้ก่อน ให้ gate เริ่ม transaction ใหม่ที่จุดล็อค
    db.rollback()

    # 2. ตรวจวงเงิน + บันทึก ใน transaction เดียว
    gate = CommitGate(db)
    try:
        outcome = gate.commit(
            round_id,
            user_id,
            user_role,
            [line.to_entry() for line in bill_in.entries],
            bill_ref=bill_in.bill_ref,
            note=bill_in.note,
        )
    except LookupError:
        raise HTTPException(status_code=404, detail="ไม่พบงวดหวยนี้")

    if outcome.success:
        invalidate_cache(str(round_id))
        return {"success": True, "bill_id": outcome.bill_id, "total_amount": outcome.total_amount}

    if outcome.reason in (RejectReason.EMPTY_BILL, RejectReason.ROUND_CLOSED):
        raise HTTPException(status_code=400, detail=outcome.message)

    body = CommitBillRejected(
        error=outcome.reason.value,
        message=outcome.message,
        retryable=outcome.retryable,
        rejected=[r.to_dict() for r in outcome.rejections],
    )
    status_code = 503 if outcome.retryable else 409
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))
