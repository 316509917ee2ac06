from datetime import datetime, timezone
from typing import Any, Dict, Optional


COLLECTION = "users"

# Never leave the store through a response or the request identity
SENSITIVE_FIELDS = ("password", "refreshToken")
PUBLIC_PROJECTION = {field: 0 for field in SENSITIVE_FIELDS}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_user_document(
    username: str,
    email: str,
    full_name: str,
    avatar: str,
    hashed_password: str,
    cover_image: Optional[str] = None,
) -> Dict[str, Any]:
    now = utcnow()
    return {
        "username": username.strip().lower(),
        "email": email.strip().lower(),
        "fullName": full_name.strip(),
        "avatar": avatar,
        "coverImage": cover_image or "",
        "watchHistory": [],
        "password": hashed_password,
        "refreshToken": None,
        "createdAt": now,
        "updatedAt": now,
    }


def public_user(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Copy of a user document without password and refresh token"""
    if doc is None:
        return None
    return {k: v for k, v in doc.items() if k not in SENSITIVE_FIELDS}
