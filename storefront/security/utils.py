from datetime import datetime, timedelta, timezone
import jwt, secrets
from typing import Tuple
from storefront.core.config import settings

OTP_DIGITS = 6

def now_utc() -> datetime:
    # stored naive, always UTC
    return datetime.now(timezone.utc).replace(tzinfo=None)

def generate_otp() -> str:
    return str(secrets.randbelow(10 ** OTP_DIGITS)).zfill(OTP_DIGITS)

def create_access_token(sub: str, business_id: int, role: str = "owner", expires_seconds: int = 900) -> Tuple[str, datetime]:
    exp = datetime.now(timezone.utc) + timedelta(seconds=expires_seconds)
    payload = {"sub": sub, "business_id": business_id, "role": role, "exp": exp, "type": "access"}
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM), exp

def decode_token(token: str) -> dict:
    return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
