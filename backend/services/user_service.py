from typing import Any, Dict, List, Optional
from fastapi import UploadFile
from pydantic import ValidationError
from schemas.user_schema import UserCreate, ChangePasswordRequest, UpdateAccountRequest
from core.exceptions import ApiError, bad_request, conflict, internal_error, not_found, unauthorized
from core.security import PASSWORD_TOO_LONG_MESSAGE, password_too_long
from db.models.user import public_user
from db.pipelines import channel_profile_pipeline, watch_history_pipeline
from db.user_store import UserStore, to_object_id
from services.asset_service import CloudinaryUploader, asset_url
from services.token_service import TokenPair, TokenService
import logging

logger = logging.getLogger(__name__)

IMAGE_FIELDS = {
    "avatar": "Avatar",
    "coverImage": "Cover image",
}

def _is_blank(value: Optional[str]) -> bool:
    return value is None or not str(value).strip()

async def list_users(store: UserStore) -> List[Dict[str, Any]]:
    """Every user, public fields only"""
    try:
        return await store.list_users()
    except Exception as e:
        logger.error(f"Error listing users: {e}")
        raise internal_error()

async def register_user(
    store: UserStore,
    uploader: CloudinaryUploader,
    full_name: Optional[str],
    email: Optional[str],
    username: Optional[str],
    password: Optional[str],
    avatar: Optional[UploadFile],
    cover_image: Optional[UploadFile] = None,
) -> Dict[str, Any]:
    """Create a new user and return it without password and refresh token"""
    try:
        if any(_is_blank(field) for field in (full_name, email, username, password)):
            raise bad_request("All fields are required")
        if password_too_long(password):
            raise bad_request(PASSWORD_TOO_LONG_MESSAGE)
        try:
            user = UserCreate(
                username=username.strip().lower(),
                email=email.strip().lower(),
                fullName=full_name.strip(),
                password=password,
            )
        except ValidationError as e:
            raise ApiError(400, "Invalid email address", errors=e.errors(include_url=False))

        if await store.find_by_username_or_email(username=user.username, email=user.email):
            raise conflict("User with email or username already exist")

        if avatar is None:
            raise bad_request("Avatar file is required")

        uploaded_avatar = await uploader.upload(avatar)
        if not uploaded_avatar:
            raise bad_request("Avatar file is required")
        # A cover image is optional; a failed upload just leaves it empty
        uploaded_cover = await uploader.upload(cover_image) if cover_image is not None else None

        created = await store.create_user(
            username=user.username,
            email=user.email,
            full_name=user.fullName,
            password=user.password,
            avatar=asset_url(uploaded_avatar),
            cover_image=asset_url(uploaded_cover),
        )
        if not created:
            raise internal_error("Something went wrong while registering the user")
        logger.info(f"User registered: {user.username}")
        return created
    except ApiError:
        raise
    except Exception as e:
        logger.error(f"Error creating user: {e}")
        raise internal_error()

async def login_user(
    store: UserStore,
    tokens: TokenService,
    username: Optional[str],
    email: Optional[str],
    password: str,
) -> Dict[str, Any]:
    """Check credentials and issue a fresh token pair"""
    try:
        if _is_blank(username) and _is_blank(email):
            raise bad_request("username or email is required")

        user = await store.find_by_username_or_email(username=username, email=email)
        if not user or not store.is_password_correct(user, password):
            raise unauthorized("Invalid user credentials")

        pair = await tokens.issue(user["_id"])
        return {
            "user": public_user(user),
            "accessToken": pair.access_token,
            "refreshToken": pair.refresh_token,
        }
    except ApiError:
        raise
    except Exception as e:
        logger.error(f"Error logging in user: {e}")
        raise internal_error()

async def logout_user(tokens: TokenService, current_user: Dict[str, Any]) -> None:
    try:
        await tokens.revoke(current_user["_id"])
    except ApiError:
        raise
    except Exception as e:
        logger.error(f"Error logging out user: {e}")
        raise internal_error()

async def refresh_tokens(tokens: TokenService, presented: Optional[str]) -> TokenPair:
    """Rotate the refresh token; every failure surfaces as 401 with its reason"""
    try:
        return await tokens.rotate(presented)
    except ApiError as e:
        raise unauthorized(e.message or "Invalid refresh token")
    except Exception as e:
        logger.error(f"Error refreshing access token: {e}")
        raise unauthorized("Invalid refresh token")

async def change_password(store: UserStore, current_user: Dict[str, Any], data: ChangePasswordRequest) -> None:
    try:
        if _is_blank(data.oldPassword) or _is_blank(data.newPassword):
            raise bad_request("All fields are required")
        if password_too_long(data.newPassword):
            raise bad_request(PASSWORD_TOO_LONG_MESSAGE)
        user = await store.find_by_id(current_user["_id"], include_sensitive=True)
        if not user:
            raise not_found("User not found")
        if not store.is_password_correct(user, data.oldPassword):
            raise bad_request("Invalid old password")
        await store.set_password(user["_id"], data.newPassword)
        logger.info(f"Password changed for user {user['_id']}")
    except ApiError:
        raise
    except Exception as e:
        logger.error(f"Error changing password: {e}")
        raise internal_error()

async def update_account_details(store: UserStore, current_user: Dict[str, Any], data: UpdateAccountRequest) -> Dict[str, Any]:
    try:
        if _is_blank(data.fullName) or _is_blank(data.email):
            raise bad_request("All fields are required")
        updated = await store.update_fields(
            current_user["_id"],
            {"fullName": data.fullName.strip(), "email": str(data.email)},
        )
        if not updated:
            raise not_found("User not found")
        return updated
    except ApiError:
        raise
    except Exception as e:
        logger.error(f"Error updating account details: {e}")
        raise internal_error()

async def update_user_image(
    store: UserStore,
    uploader: CloudinaryUploader,
    current_user: Dict[str, Any],
    field: str,
    file: Optional[UploadFile],
) -> Dict[str, Any]:
    """Upload a new avatar or cover image, then point the user at it"""
    label = IMAGE_FIELDS[field]
    try:
        if file is None:
            raise bad_request(f"{label} file is missing")
        uploaded = await uploader.upload(file)
        url = asset_url(uploaded)
        if not url:
            raise bad_request(f"Error while uploading {label.lower()}")
        updated = await store.update_fields(current_user["_id"], {field: url})
        if not updated:
            raise not_found("User not found")
        return updated
    except ApiError:
        raise
    except Exception as e:
        logger.error(f"Error updating {field}: {e}")
        raise internal_error()

async def get_channel_profile(store: UserStore, username: Optional[str], viewer: Dict[str, Any]) -> Dict[str, Any]:
    try:
        if _is_blank(username):
            raise bad_request("username is missing")
        channel = await store.aggregate(channel_profile_pipeline(username, to_object_id(viewer["_id"])))
        if not channel:
            raise not_found("channel does not exist")
        return channel[0]
    except ApiError:
        raise
    except Exception as e:
        logger.error(f"Error fetching channel profile: {e}")
        raise internal_error()

async def get_watch_history(store: UserStore, current_user: Dict[str, Any]) -> List[Dict[str, Any]]:
    try:
        result = await store.aggregate(watch_history_pipeline(to_object_id(current_user["_id"])))
        if not result:
            return []
        videos = {video["_id"]: video for video in result[0].get("watchHistory", [])}
        # Watch order, with videos deleted since they were watched dropped
        return [videos[vid] for vid in result[0].get("watchedIds", []) if vid in videos]
    except ApiError:
        raise
    except Exception as e:
        logger.error(f"Error fetching watch history: {e}")
        raise internal_error()
