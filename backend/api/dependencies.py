from typing import Any, Dict
from fastapi import Depends, Request
from core.exceptions import internal_error, unauthorized
from core.security import TokenConfig, decode_access_token, extract_access_token
from db.mongodb import get_mongo_db
from db.user_store import UserStore
from services.asset_service import CloudinaryUploader
from services.token_service import TokenService
from utils.logging_config import user_id_var
import logging

logger = logging.getLogger(__name__)

def get_user_store() -> UserStore:
    mdb = get_mongo_db()
    if mdb is None:
        raise internal_error("Mongo not available")
    return UserStore(mdb)

def get_token_config(request: Request) -> TokenConfig:
    # Built once in main from Settings and kept on the app
    return request.app.state.token_config

def get_token_service(
    store: UserStore = Depends(get_user_store),
    config: TokenConfig = Depends(get_token_config),
) -> TokenService:
    return TokenService(store, config)

def get_asset_uploader() -> CloudinaryUploader:
    return CloudinaryUploader()

async def get_current_user(
    request: Request,
    store: UserStore = Depends(get_user_store),
    config: TokenConfig = Depends(get_token_config),
) -> Dict[str, Any]:
    """Resolve the request's access token to a user, or reject with 401.

    Only signature and expiry are checked; the stored refresh token is never
    consulted, so a logged-out session keeps working until its access token
    expires.
    """
    token = extract_access_token(request)
    if not token:
        raise unauthorized("Unauthorized request")

    payload = decode_access_token(token, config)

    user = await store.find_by_id(payload.get("sub"))
    if not user:
        raise unauthorized("Invalid access token")

    request.state.user = user
    user_id_var.set(str(user["_id"]))
    return user
