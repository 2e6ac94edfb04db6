from datetime import datetime, timezone
from pydantic_settings import BaseSettings
import pytz

class Settings(BaseSettings):
    DATABASE_URL: str
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # อายุของ snapshot ฝั่ง advisory (วินาที) ก่อนต้องอ่าน DB ใหม่
    LIMIT_SUMMARY_CACHE_SECONDS: float = 5.0

    # เวลารอ lock ของงวดตอนบันทึกบิล เกินนี้ถือเป็น transient failure
    COMMIT_LOCK_TIMEOUT_SECONDS: float = 5.0

    LOG_LEVEL: str = "INFO"
    TIMEZONE: str = "Asia/Bangkok"

    class Config:
        env_file = ".env"

settings = Settings()

def get_thai_now() -> datetime:
    """ดึงเวลาปัจจุบันโซนไทย (Asia/Bangkok) เสมอ ไม่ว่า Server จะอยู่ที่ไหน"""
    tz = pytz.timezone(settings.TIMEZONE)
    return datetime.now(tz)

def as_aware(value: datetime) -> datetime:
    """
    SQLite คืนค่า DateTime แบบไม่มี tzinfo กลับมา
    ให้ถือว่าเป็น UTC เพื่อเทียบกับเวลาที่มี timezone ได้
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
