"""Credential store over the ``users`` collection.

Owns password hashing (a hash is only ever computed on registration and on
password change) and the single ``refreshToken`` slot per user. Every write is
a partial update of the named fields; nothing here re-saves a whole document.
"""
import logging
from typing import Any, Dict, Iterable, List, Optional

from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from core.exceptions import conflict
from core.security import get_password_hash, verify_password
from db.models.user import COLLECTION, PUBLIC_PROJECTION, new_user_document, utcnow

logger = logging.getLogger(__name__)

PROFILE_FIELDS = ("fullName", "email", "avatar", "coverImage")


def to_object_id(value: Any) -> Optional[ObjectId]:
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        return None


class UserStore:
    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db
        self.users = db[COLLECTION]

    async def find_by_id(self, user_id: Any, include_sensitive: bool = False) -> Optional[Dict[str, Any]]:
        oid = to_object_id(user_id)
        if oid is None:
            return None
        projection = None if include_sensitive else PUBLIC_PROJECTION
        return await self.users.find_one({"_id": oid}, projection)

    async def find_by_username_or_email(self, username: Optional[str] = None, email: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """Lookup by either identifier; both are stored lowercase"""
        clauses = []
        if username and username.strip():
            clauses.append({"username": username.strip().lower()})
        if email and email.strip():
            clauses.append({"email": email.strip().lower()})
        if not clauses:
            return None
        return await self.users.find_one({"$or": clauses})

    async def list_users(self) -> List[Dict[str, Any]]:
        return await self.users.find({}, PUBLIC_PROJECTION).to_list(length=None)

    async def create_user(
        self,
        username: str,
        email: str,
        full_name: str,
        password: str,
        avatar: str,
        cover_image: Optional[str] = None,
    ) -> Dict[str, Any]:
        doc = new_user_document(
            username=username,
            email=email,
            full_name=full_name,
            avatar=avatar,
            cover_image=cover_image,
            hashed_password=get_password_hash(password),
        )
        try:
            result = await self.users.insert_one(doc)
        except DuplicateKeyError as e:
            logger.info(f"Duplicate user on insert: {e}")
            raise conflict("User with email or username already exist")
        return await self.find_by_id(result.inserted_id)

    @staticmethod
    def is_password_correct(user: Dict[str, Any], password: str) -> bool:
        return verify_password(password, user.get("password") or "")

    async def set_password(self, user_id: Any, new_password: str) -> bool:
        result = await self.users.update_one(
            {"_id": to_object_id(user_id)},
            {"$set": {"password": get_password_hash(new_password), "updatedAt": utcnow()}},
        )
        return result.matched_count == 1

    async def set_refresh_token(self, user_id: Any, token: str, expected: Optional[str] = None) -> bool:
        """Store ``token`` as the user's only refresh token.

        With ``expected`` the write is a compare-and-swap: it only lands while
        the stored value still equals ``expected``.
        """
        query: Dict[str, Any] = {"_id": to_object_id(user_id)}
        if expected is not None:
            query["refreshToken"] = expected
        result = await self.users.update_one(query, {"$set": {"refreshToken": token}})
        return result.matched_count == 1

    async def clear_refresh_token(self, user_id: Any) -> bool:
        result = await self.users.update_one(
            {"_id": to_object_id(user_id)},
            {"$unset": {"refreshToken": ""}},
        )
        return result.matched_count == 1

    async def update_fields(self, user_id: Any, fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Partial profile update; returns the public record after the write"""
        unknown = set(fields) - set(PROFILE_FIELDS)
        if unknown:
            raise ValueError(f"Not a profile field: {', '.join(sorted(unknown))}")
        changes = dict(fields)
        if "email" in changes:
            changes["email"] = changes["email"].strip().lower()
        changes["updatedAt"] = utcnow()
        try:
            return await self.users.find_one_and_update(
                {"_id": to_object_id(user_id)},
                {"$set": changes},
                projection=PUBLIC_PROJECTION,
                return_document=ReturnDocument.AFTER,
            )
        except DuplicateKeyError as e:
            logger.info(f"Duplicate user on update: {e}")
            raise conflict("User with email or username already exist")

    async def aggregate(self, pipeline: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
        cursor = self.users.aggregate(list(pipeline))
        return await cursor.to_list(length=None)
