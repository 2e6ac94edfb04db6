import logging
from typing import List
from uuid import UUID
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.api import deps
from app.schemas import RangeLimitIn, RangeLimitResponse, ExemptionIn, ExemptionResponse, DefaultLimitsIn
from app.db.session import get_db
from app.models.lotto import RangeLimit, RoundExemption, ExemptionType
from app.models.user import User, UserRole
from app.core.bet_limits import validate_range_rule, validate_default_limit, find_ambiguous_overlaps
from app.core.commit_gate import round_locks
from app.core.config import settings
from app.core.errors import InvalidRuleConfig, TransientCommitFailure
from app.core.limit_cache import invalidate_cache
from app.core.round_store import RoundStore

logger = logging.getLogger(__name__)

router = APIRouter()

def _locked_round(store: RoundStore, round_id: UUID):
    lotto_round = store.lock_round(round_id, settings.COMMIT_LOCK_TIMEOUT_SECONDS)
    if not lotto_round:
        store.db.rollback()
        raise HTTPException(status_code=404, detail="ไม่พบงวดหวยนี้")
    return lotto_round

def _invalid(e: InvalidRuleConfig, index: int = None):
    detail = {"error": "InvalidRuleConfig", "message": e.message, "field": e.field}
    if index is not None:
        detail["index"] = index
    return HTTPException(status_code=e.status_code, detail=detail)

def _busy(e: TransientCommitFailure):
    return HTTPException(status_code=e.status_code, detail=e.message)

# --- Range Limits ---
@router.get("/rounds/{round_id}/range-limits", response_model=List[RangeLimitResponse])
def get_range_limits(
    round_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(deps.require_admin)
):
    return db.query(RangeLimit).filter(RangeLimit.lotto_round_id == round_id).order_by(RangeLimit.id).all()

@router.put("/rounds/{round_id}/range-limits", response_model=List[RangeLimitResponse])
def save_range_limits(
    round_id: UUID,
    payload: List[RangeLimitIn],
    db: Session = Depends(get_db),
    current_user: User = Depends(deps.require_admin)
):
    """แทนที่กฎช่วงเลขทั้งหมดของงวด ถ้ามีกฎไหนผิด ไม่บันทึกเลยสักกฎ"""
    rules = []
    for i, item in enumerate(payload):
        try:
            rules.append(validate_range_rule(item.range_start, item.range_end, item.max_amount, item.number_limit_types))
        except InvalidRuleConfig as e:
            raise _invalid(e, i)

    for a, b in find_ambiguous_overlaps(rules):
        logger.warning(
            "Round %s: rules %s-%s and %s-%s (%s) overlap with equal width, lowest range_start wins",
            round_id, a.range_start, a.range_end, b.range_start, b.range_end, a.applies_to.value,
        )

    store = RoundStore(db)
    try:
        with round_locks.hold(round_id, settings.COMMIT_LOCK_TIMEOUT_SECONDS):
            _locked_round(store, round_id)
            db.query(RangeLimit).filter(RangeLimit.lotto_round_id == round_id).delete(synchronize_session=False)
            for rule in rules:
                db.add(RangeLimit(
                    lotto_round_id=round_id,
                    range_start=rule.range_start,
                    range_end=rule.range_end,
                    max_amount=rule.max_amount,
                    number_limit_types=rule.applies_to.value,
                ))
            db.commit()
    except TransientCommitFailure as e:
        raise _busy(e)

    invalidate_cache(str(round_id))
    logger.info("Round %s range limits replaced by %s (%d rules)", round_id, current_user.username, len(rules))
    return db.query(RangeLimit).filter(RangeLimit.lotto_round_id == round_id).order_by(RangeLimit.id).all()

# --- Exemptions ---
@router.get("/rounds/{round_id}/exemptions", response_model=List[ExemptionResponse])
def get_exemptions(
    round_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(deps.require_admin)
):
    return db.query(RoundExemption).filter(RoundExemption.lotto_round_id == round_id).order_by(RoundExemption.id).all()

@router.put("/rounds/{round_id}/exemptions", response_model=List[ExemptionResponse])
def save_exemptions(
    round_id: UUID,
    payload: List[ExemptionIn],
    db: Session = Depends(get_db),
    current_user: User = Depends(deps.require_admin)
):
    known_roles = {r.value for r in UserRole}
    for i, ex in enumerate(payload):
        if ex.exemption_type == ExemptionType.USER.value and not ex.user_id:
            raise _invalid(InvalidRuleConfig("ข้อยกเว้นแบบ user ต้องระบุ user_id", field="user_id"), i)
        if ex.exemption_type == ExemptionType.ROLE.value and ex.user_role not in known_roles:
            raise _invalid(InvalidRuleConfig(f"ไม่รู้จัก role '{ex.user_role}'", field="user_role"), i)

    store = RoundStore(db)
    try:
        with round_locks.hold(round_id, settings.COMMIT_LOCK_TIMEOUT_SECONDS):
            _locked_round(store, round_id)
            db.query(RoundExemption).filter(RoundExemption.lotto_round_id == round_id).delete(synchronize_session=False)
            for ex in payload:
                is_user = ex.exemption_type == ExemptionType.USER.value
                db.add(RoundExemption(
                    lotto_round_id=round_id,
                    exemption_type=ex.exemption_type,
                    user_id=ex.user_id if is_user else None,
                    user_role=None if is_user else ex.user_role,
                ))
            db.commit()
    except TransientCommitFailure as e:
        raise _busy(e)

    invalidate_cache(str(round_id))
    logger.info("Round %s exemptions replaced by %s (%d entries)", round_id, current_user.username, len(payload))
    return db.query(RoundExemption).filter(RoundExemption.lotto_round_id == round_id).order_by(RoundExemption.id).all()

# --- Default Limits ---
@router.put("/rounds/{round_id}/default-limits", response_model=DefaultLimitsIn)
def save_default_limits(
    round_id: UUID,
    payload: DefaultLimitsIn,
    db: Session = Depends(get_db),
    current_user: User = Depends(deps.require_admin)
):
    try:
        limit_2d = validate_default_limit(payload.limit_2d, "limit_2d")
        limit_3d = validate_default_limit(payload.limit_3d, "limit_3d")
    except InvalidRuleConfig as e:
        raise _invalid(e)

    store = RoundStore(db)
    try:
        with round_locks.hold(round_id, settings.COMMIT_LOCK_TIMEOUT_SECONDS):
            lotto_round = _locked_round(store, round_id)
            lotto_round.limit_2d_amount = limit_2d
            lotto_round.limit_3d_amount = limit_3d
            db.commit()
    except TransientCommitFailure as e:
        raise _busy(e)

    invalidate_cache(str(round_id))
    return {"limit_2d": limit_2d, "limit_3d": limit_3d}
