"""
Caller identity and access token decoding

Tokens are issued by the auth service; this module only verifies them.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum as PyEnum
from typing import Optional

from jose import JWTError, jwt

from app.core.config import settings
from app.core.logging_config import logger

ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = 60 * 24 * 7  # 7 days


class Role(str, PyEnum):
    VENDOR = "VENDOR"
    ADMIN = "ADMIN"


@dataclass(frozen=True)
class CallerIdentity:
    """Verified caller passed explicitly into service methods"""
    vendor_id: Optional[int]
    role: Role = Role.VENDOR

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create a signed JWT (used by tooling and tests)"""
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=ALGORITHM)


def decode_access_token(token: str) -> Optional[dict]:
    """Decode and validate a JWT access token"""
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError as e:
        logger.warning(f"JWT decode error: {str(e)}")
        return None


def caller_from_claims(claims: dict) -> Optional[CallerIdentity]:
    """Build a CallerIdentity from token claims, None if they are unusable"""
    try:
        role = Role(str(claims.get("role", Role.VENDOR.value)).upper())
    except ValueError:
        return None

    vendor_id = claims.get("vendorId", claims.get("sub"))
    if vendor_id is None:
        if role != Role.ADMIN:
            return None
        return CallerIdentity(vendor_id=None, role=role)
    try:
        return CallerIdentity(vendor_id=int(vendor_id), role=role)
    except (TypeError, ValueError):
        return None
