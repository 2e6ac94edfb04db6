# backend/init_tables.py

from app.db.session import engine
from app.db.base_class import Base
from app.models import lotto, user  # noqa: F401 - import เพื่อให้ SQLAlchemy รู้จักทุก Model

def init_db(bind=None):
    # สร้างเฉพาะตารางที่ยังไม่มี ตารางเดิมไม่หาย
    Base.metadata.create_all(bind=bind or engine)

if __name__ == "__main__":
    print("Creating database tables...")
    init_db()
    print("✅ Tables created successfully!")
