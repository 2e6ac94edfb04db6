# app/db/session.py
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from app.core.config import settings

SQLALCHEMY_DATABASE_URL = settings.DATABASE_URL

def build_engine(url: str):
    # SQLite ใช้สำหรับเทสต์/เครื่อง dev เท่านั้น ไม่รองรับ pool_size
    if url.startswith("sqlite"):
        return create_engine(url, connect_args={"check_same_thread": False})

    return create_engine(
        url,
        # เช็ค Connection ก่อนใช้เสมอ ถ้าตายจะต่อใหม่ให้เอง
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
        # รีไซเคิล connection ทุก 1 ชั่วโมง ป้องกัน DB ตัดเพราะนานเกิน
        pool_recycle=3600
    )

engine = build_engine(SQLALCHEMY_DATABASE_URL)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
