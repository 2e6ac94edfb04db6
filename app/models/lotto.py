import uuid
import enum
from sqlalchemy import Column, String, Boolean, ForeignKey, DECIMAL, DateTime, JSON, Integer
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.db.base_class import Base
from app.models.user import UserRole  # noqa: F401 - ให้ตาราง users ถูก register ก่อน FK

# สถานะบิล
class BillStatus(str, enum.Enum):
    PENDING = "PENDING"        # รอผล
    CONFIRMED = "CONFIRMED"    # ยืนยันแล้ว
    CANCELLED = "CANCELLED"    # ยกเลิก

# สถานะรายการย่อย (NULL = ยังไม่ถูกแก้ไข นับว่ายืนยัน)
class BetItemStatus(str, enum.Enum):
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"

class RoundStatus(str, enum.Enum):
    ACTIVE = "active"
    MANUAL_ACTIVE = "manual_active"
    CLOSED = "closed"

class ExemptionType(str, enum.Enum):
    USER = "user"
    ROLE = "role"

class LottoType(Base):
    __tablename__ = "lotto_types"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String, nullable=False)
    code = Column(String(20), unique=True, nullable=False)
    # อัตราจ่าย { "2top": 90, "2bottom": 90, "3top": 900, "3tote": 150, "run_top": 3, ... }
    rates = Column(JSON, default={})
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

class LottoRound(Base):
    __tablename__ = "lotto_rounds"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String, nullable=False)
    lotto_type_id = Column(UUID(as_uuid=True), ForeignKey("lotto_types.id"), nullable=False)
    open_datetime = Column(DateTime(timezone=True), nullable=True)
    cutoff_datetime = Column(DateTime(timezone=True), nullable=False)
    status = Column(String, default=RoundStatus.ACTIVE.value)

    # วงเงินเริ่มต้นต่อเลข (ยอดรวมทุกประเภท) NULL หรือ 0 = ไม่จำกัด
    limit_2d_amount = Column(DECIMAL(12, 2), nullable=True)
    limit_3d_amount = Column(DECIMAL(12, 2), nullable=True)

    closed_numbers = Column(JSON, default=[])     # เลขปิดรับ
    half_pay_numbers = Column(JSON, default=[])   # เลขจ่ายครึ่ง

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    lotto_type = relationship("LottoType")
    range_limits = relationship("RangeLimit", back_populates="lotto_round", cascade="all, delete-orphan")
    exemptions = relationship("RoundExemption", back_populates="lotto_round", cascade="all, delete-orphan")

# วงเงินแบบช่วงเลข เช่น 40-49 ล่าง 300
class RangeLimit(Base):
    __tablename__ = "lotto_round_range_limits"
    id = Column(Integer, primary_key=True, autoincrement=True)
    lotto_round_id = Column(UUID(as_uuid=True), ForeignKey("lotto_rounds.id"), nullable=False, index=True)
    range_start = Column(String(3), nullable=False)
    range_end = Column(String(3), nullable=False)
    max_amount = Column(DECIMAL(12, 2), nullable=False)
    number_limit_types = Column(String, nullable=False, default="total")

    lotto_round = relationship("LottoRound", back_populates="range_limits")

class RoundExemption(Base):
    __tablename__ = "lotto_round_exemptions"
    id = Column(Integer, primary_key=True, autoincrement=True)
    lotto_round_id = Column(UUID(as_uuid=True), ForeignKey("lotto_rounds.id"), nullable=False, index=True)
    exemption_type = Column(String, nullable=False)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)
    user_role = Column(String, nullable=True)

    lotto_round = relationship("LottoRound", back_populates="exemptions")

class Bill(Base):
    __tablename__ = "bills"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    bill_ref = Column(String, nullable=True)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False)
    lotto_round_id = Column(UUID(as_uuid=True), ForeignKey("lotto_rounds.id"), nullable=False, index=True)
    note = Column(String, nullable=True)
    total_amount = Column(DECIMAL(12, 2), nullable=False)
    bet_name = Column(String, nullable=True)
    status = Column(String, default=BillStatus.PENDING.value)
    bill_lotto_draw = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    entries = relationship("BillEntry", back_populates="bill", cascade="all, delete-orphan")
    user = relationship("User")
    lotto_round = relationship("LottoRound")

class BillEntry(Base):
    __tablename__ = "bill_entries"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    bill_id = Column(UUID(as_uuid=True), ForeignKey("bills.id"), nullable=False)
    bet_type = Column(String, nullable=False)   # 2d, 3d, run
    total = Column(DECIMAL(12, 2), nullable=False)

    bill = relationship("Bill", back_populates="entries")
    items = relationship("BetItem", back_populates="entry", cascade="all, delete-orphan")

class BetItem(Base):
    __tablename__ = "bet_items"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    bill_entry_id = Column(UUID(as_uuid=True), ForeignKey("bill_entries.id"), nullable=False)
    bet_number = Column(String, nullable=False, index=True)
    bet_style = Column(String, nullable=False)   # บน / ตรง / ล่าง / โต๊ด
    price = Column(DECIMAL(12, 2), nullable=False)
    rate = Column(DECIMAL(12, 2), nullable=False)        # ราคาที่ใช้คิดเงินรางวัล (ครึ่งหนึ่งถ้าจ่ายครึ่ง)
    baht_per = Column(DECIMAL(12, 2), nullable=False)    # อัตราจ่ายต่อบาท
    payout_amount = Column(DECIMAL(14, 2), nullable=False)
    status = Column(String, nullable=True)

    entry = relationship("BillEntry", back_populates="items")
