# app/core/commit_gate.py
"""
CommitGate - ตรวจวงเงินครั้งสุดท้ายแล้วบันทึกบิลใน transaction เดียวกัน

State: IDLE -> CHECKING -> (COMMITTING -> COMMITTED) | REJECTED

จุด serialize ต่องวดมีสองชั้น
1. lock ในโปรเซส (threading.Lock ต่อ round_id) รอได้ไม่เกิน timeout
2. SELECT ... FOR UPDATE บนแถว lotto_rounds (ข้ามโปรเซส/ข้ามเครื่อง)
ต่างงวดกันไม่รอกัน
"""
import enum
import logging
import threading
import weakref
from contextlib import contextmanager
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Iterable, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.bet_limits import PendingWagerEntry
from app.core.config import settings
from app.core.errors import TransientCommitFailure
from app.core.limit_checker import LimitChecker, LimitRejection
from app.core.round_store import RoundStore, closed_reason
from app.core.spend_ledger import SpendLedger

logger = logging.getLogger(__name__)


class GateState(str, enum.Enum):
    IDLE = "IDLE"
    CHECKING = "CHECKING"
    COMMITTING = "COMMITTING"
    COMMITTED = "COMMITTED"
    REJECTED = "REJECTED"


_TRANSITIONS = {
    GateState.IDLE: {GateState.CHECKING},
    GateState.CHECKING: {GateState.COMMITTING, GateState.REJECTED},
    GateState.COMMITTING: {GateState.COMMITTED, GateState.REJECTED},
    GateState.COMMITTED: set(),
    GateState.REJECTED: set(),
}


class RejectReason(str, enum.Enum):
    LIMIT_EXCEEDED = "LimitExceeded"
    TRANSIENT = "TransientCommitFailure"
    EMPTY_BILL = "EmptyBill"
    ROUND_CLOSED = "RoundClosed"


@dataclass(frozen=True)
class CommitOutcome:
    state: GateState
    bill_id: Optional[object] = None
    total_amount: Decimal = Decimal(0)
    reason: Optional[RejectReason] = None
    rejections: Tuple[LimitRejection, ...] = ()
    message: str = ""

    @property
    def success(self) -> bool:
        return self.state == GateState.COMMITTED

    @property
    def retryable(self) -> bool:
        return self.reason == RejectReason.TRANSIENT


class RoundLockRegistry:
    """
    lock ต่องวดภายในโปรเซส (Thread-Safe)

    เก็บแบบ weak ref: lock ของงวดหายไปเองเมื่อไม่มีใครถือหรือรออยู่
    """

    def __init__(self):
        self._locks: "weakref.WeakValueDictionary[str, threading.Lock]" = weakref.WeakValueDictionary()
        self._guard = threading.Lock()

    def _lock_for(self, round_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(round_id)
            if lock is None:
                lock = self._locks[round_id] = threading.Lock()
            return lock

    def __len__(self) -> int:
        return len(self._locks)

    @contextmanager
    def hold(self, round_id, timeout: float):
        lock = self._lock_for(str(round_id))
        if not lock.acquire(timeout=timeout):
            raise TransientCommitFailure(f"Timed out waiting for round {round_id} lock")
        try:
            yield
        finally:
            lock.release()


round_locks = RoundLockRegistry()


class CommitGate:
    """ใช้ครั้งเดียวต่อการส่งบิล ถ้าไม่ผ่านให้สร้าง gate ใหม่แล้วส่งใหม่ทั้งชุด"""

    def __init__(self, db: Session, lock_timeout: Optional[float] = None, locks: Optional[RoundLockRegistry] = None):
        self.db = db
        self.store = RoundStore(db)
        self.lock_timeout = settings.COMMIT_LOCK_TIMEOUT_SECONDS if lock_timeout is None else lock_timeout
        self.locks = locks or round_locks
        self.state = GateState.IDLE

    def _transition(self, new_state: GateState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Illegal CommitGate transition {self.state.value} -> {new_state.value}")
        self.state = new_state

    def _reject(self, reason: RejectReason, message: str, rejections=()) -> CommitOutcome:
        self.db.rollback()
        self._transition(GateState.REJECTED)
        return CommitOutcome(GateState.REJECTED, reason=reason, rejections=tuple(rejections), message=message)

    def commit(
        self,
        round_id,
        user_id,
        user_role,
        lines: Iterable[PendingWagerEntry],
        bill_ref: Optional[str] = None,
        note: Optional[str] = None,
    ) -> CommitOutcome:
        self._transition(GateState.CHECKING)
        lines = list(lines)

        try:
            with self.locks.hold(round_id, self.lock_timeout):
                lotto_round = self.store.lock_round(round_id, self.lock_timeout)
                if lotto_round is None:
                    self.db.rollback()
                    self._transition(GateState.REJECTED)
                    raise LookupError(f"Lotto round {round_id} not found")

                # สถานะ/เวลาปิดอ่านซ้ำจากแถวที่ล็อคแล้ว บิลที่รอคิวจนเลยเวลาปิดต้องไม่ผ่าน
                reason = closed_reason(lotto_round)
                if reason:
                    return self._reject(RejectReason.ROUND_CLOSED, reason)

                # เลขปิดอ่านจากแถวที่ล็อคแล้ว ไม่ใช่จากที่หน้าบ้านเห็น
                closed = set(lotto_round.closed_numbers or [])
                lines = [replace(line, numbers=tuple(n for n in line.numbers if n not in closed)) for line in lines]
                lines = [line for line in lines if line.numbers]
                if not lines:
                    return self._reject(RejectReason.EMPTY_BILL, "ไม่มีเลขที่เปิดรับในบิลนี้")

                config = self.store.load_rule_config(lotto_round)
                checker = LimitChecker(SpendLedger(self.store.fetch_spend_rows))
                proposals = [p for line in lines for p in line.to_proposals()]
                result = checker.check(config, user_id, user_role, proposals)

                if not result.accepted:
                    logger.info(
                        "Bill rejected for round %s: %d number(s) over limit %s",
                        round_id, len(result.rejected_numbers), list(result.rejected_numbers),
                    )
                    return self._reject(
                        RejectReason.LIMIT_EXCEEDED,
                        "มีบางรายการเกินวงเงินที่กำหนด",
                        result.rejections,
                    )

                self._transition(GateState.COMMITTING)
                bill = self.store.save_bill(lotto_round, user_id, lines, bill_ref=bill_ref, note=note)
                bill_id, total_amount = bill.id, bill.total_amount
                self.db.commit()

        except TransientCommitFailure as e:
            logger.warning("Commit for round %s aborted: %s", round_id, e.message)
            return self._reject(RejectReason.TRANSIENT, e.message)
        except SQLAlchemyError as e:
            logger.exception("Storage error while committing bill for round %s", round_id)
            return self._reject(RejectReason.TRANSIENT, f"Storage error, please retry ({e.__class__.__name__})")

        self._transition(GateState.COMMITTED)
        logger.info("Bill %s committed for round %s (total %s)", bill_id, round_id, total_amount)
        return CommitOutcome(GateState.COMMITTED, bill_id=bill_id, total_amount=Decimal(str(total_amount)))
