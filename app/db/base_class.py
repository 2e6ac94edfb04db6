from typing import Any
from sqlalchemy import MetaData
from sqlalchemy.orm import as_declarative, declared_attr

# ตั้งชื่อ constraint ให้คงที่ ทั้งบน PostgreSQL และ SQLite ที่ใช้ในเทสต์
NAMING_CONVENTION = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

@as_declarative(metadata=MetaData(naming_convention=NAMING_CONVENTION))
class Base:
    id: Any
    __name__: str

    @declared_attr
    def __tablename__(cls) -> str:
        return cls.__name__.lower()
