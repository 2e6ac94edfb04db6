import jwt
from datetime import datetime, timedelta, timezone
from typing import Any, Optional, Union
from passlib.context import CryptContext
from app.core.config import settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# bcrypt ใช้แค่ 72 bytes แรก ตัดเองก่อนเพื่อไม่ให้ passlib โยน ValueError
BCRYPT_MAX_LENGTH = 72

def create_access_token(subject: Union[str, Any], role: str, expires_delta: Optional[timedelta] = None) -> str:
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode = {
        "exp": datetime.now(timezone.utc) + expires_delta,
        "sub": str(subject),
        "role": role,
    }
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)

def decode_token(token: str) -> Optional[dict]:
    """คืน payload ถ้า token ถูกต้องและยังไม่หมดอายุ ไม่งั้นคืน None"""
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except jwt.PyJWTError:
        return None

def verify_password(plain_password: str, hashed_password: str) -> bool:
    try:
        return pwd_context.verify(plain_password[:BCRYPT_MAX_LENGTH], hashed_password)
    except ValueError:
        return False

def get_password_hash(password: str) -> str:
    return pwd_context.hash(password[:BCRYPT_MAX_LENGTH])
