import uuid
import enum
from sqlalchemy import Column, String, Boolean, Enum as SAEnum, DateTime
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
from app.db.base_class import Base

# บทบาทผู้ใช้ ใช้ทั้งสิทธิ์ admin และการยกเว้นวงเงินแบบ role
class UserRole(str, enum.Enum):
    superadmin = "superadmin"
    admin = "admin"
    member = "member"

class User(Base):
    __tablename__ = "users"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    username = Column(String, unique=True, nullable=False, index=True)
    password_hash = Column(String, nullable=False)

    role = Column(SAEnum(UserRole), nullable=False, default=UserRole.member)

    full_name = Column(String, nullable=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
