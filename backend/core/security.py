from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional, Any, Dict
import uuid
from jose import ExpiredSignatureError, JWTError, jwt
from starlette.requests import Request
from passlib.context import CryptContext
from core.exceptions import ApiError, unauthorized
import logging

logger = logging.getLogger(__name__)

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"

ACCESS_TOKEN_COOKIE = "accessToken"
REFRESH_TOKEN_COOKIE = "refreshToken"

# Password hashing
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
MAX_PASSWORD_BYTES = 72
PASSWORD_TOO_LONG_MESSAGE = f"Password must be at most {MAX_PASSWORD_BYTES} bytes"


@dataclass(frozen=True)
class TokenConfig:
    """Secrets and lifetimes for both token kinds, built once at startup."""
    access_secret: str
    access_expires: timedelta
    refresh_secret: str
    refresh_expires: timedelta
    algorithm: str = "HS256"

    @classmethod
    def from_settings(cls, settings: Any) -> "TokenConfig":
        return cls(
            access_secret=settings.ACCESS_TOKEN_SECRET,
            access_expires=timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
            refresh_secret=settings.REFRESH_TOKEN_SECRET,
            refresh_expires=timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
            algorithm=settings.ALGORITHM,
        )


def password_too_long(password: str) -> bool:
    # bcrypt ignores everything past the first 72 bytes
    return len(password.encode("utf-8")) > MAX_PASSWORD_BYTES

def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash"""
    if not plain_password or not hashed_password or password_too_long(plain_password):
        return False
    return pwd_context.verify(plain_password, hashed_password)

def get_password_hash(password: str) -> str:
    """Generate password hash"""
    if password_too_long(password):
        raise ValueError(f"Password longer than {MAX_PASSWORD_BYTES} bytes")
    return pwd_context.hash(password)

def _encode(claims: Dict[str, Any], secret: str, algorithm: str, expires_delta: timedelta) -> str:
    now = datetime.now(timezone.utc)
    to_encode = claims.copy()
    to_encode.update({"iat": now, "exp": now + expires_delta})
    return jwt.encode(to_encode, secret, algorithm=algorithm)

def create_access_token(user: Dict[str, Any], config: TokenConfig) -> str:
    """Create JWT access token carrying the user's identity claims"""
    data = {
        "sub": str(user["_id"]),
        "email": user.get("email"),
        "username": user.get("username"),
        "fullName": user.get("fullName"),
        "type": ACCESS_TOKEN_TYPE,
    }
    return _encode(data, config.access_secret, config.algorithm, config.access_expires)

def create_refresh_token(user_id: Any, config: TokenConfig) -> str:
    """Create JWT refresh token. The jti keeps tokens minted in the same second distinct."""
    data = {
        "sub": str(user_id),
        "type": REFRESH_TOKEN_TYPE,
        "jti": uuid.uuid4().hex,
    }
    return _encode(data, config.refresh_secret, config.algorithm, config.refresh_expires)

def _decode(token: str, secret: str, algorithm: str, token_type: str, label: str) -> Dict[str, Any]:
    try:
        payload = jwt.decode(token, secret, algorithms=[algorithm])
    except ExpiredSignatureError:
        raise unauthorized(f"{label} expired")
    except JWTError as e:
        logger.warning(f"JWT decode failed: {e}")
        raise unauthorized(f"Invalid {label.lower()}")
    if payload.get("type") != token_type or not payload.get("sub"):
        raise unauthorized(f"Invalid {label.lower()}")
    return payload

def decode_access_token(token: str, config: TokenConfig) -> Dict[str, Any]:
    """Verify signature and expiry of an access token; raises ApiError(401)"""
    return _decode(token, config.access_secret, config.algorithm, ACCESS_TOKEN_TYPE, "Access token")

def decode_refresh_token(token: str, config: TokenConfig) -> Dict[str, Any]:
    """Verify signature and expiry of a refresh token; raises ApiError(401)"""
    return _decode(token, config.refresh_secret, config.algorithm, REFRESH_TOKEN_TYPE, "Refresh token")

def verify_token(token: str, config: TokenConfig) -> Optional[dict]:
    """Best-effort access token decode for logging context; never raises"""
    try:
        return decode_access_token(token, config)
    except ApiError:
        return None

def extract_access_token(request: Request) -> Optional[str]:
    """Access token from the ``accessToken`` cookie, else from ``Authorization: Bearer``"""
    token = request.cookies.get(ACCESS_TOKEN_COOKIE)
    if token:
        return token
    auth_header = request.headers.get("Authorization") or ""
    scheme, _, credentials = auth_header.partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    return None
