from typing import Any, Dict, Optional
from fastapi import APIRouter, Depends, File, Form, Request, UploadFile, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from api.dependencies import get_asset_uploader, get_current_user, get_token_service, get_user_store
from core.config import settings
from core.security import ACCESS_TOKEN_COOKIE, REFRESH_TOKEN_COOKIE
from db.user_store import UserStore
from schemas.user_schema import ChangePasswordRequest, RefreshTokenRequest, UpdateAccountRequest, UserLogin
from services.asset_service import CloudinaryUploader
from services.token_service import TokenService
from services import user_service
from utils.responses import api_response

router = APIRouter()

def _cookie_options() -> Dict[str, Any]:
    # Tokens live in cookies only the server can read
    return {"httponly": True, "secure": settings.COOKIE_SECURE}

def _set_token_cookies(response: JSONResponse, access_token: str, refresh_token: str) -> JSONResponse:
    response.set_cookie(ACCESS_TOKEN_COOKIE, access_token, **_cookie_options())
    response.set_cookie(REFRESH_TOKEN_COOKIE, refresh_token, **_cookie_options())
    return response

def _clear_token_cookies(response: JSONResponse) -> JSONResponse:
    response.delete_cookie(ACCESS_TOKEN_COOKIE, **_cookie_options())
    response.delete_cookie(REFRESH_TOKEN_COOKIE, **_cookie_options())
    return response

@router.get("/getuser")
async def get_all_users(store: UserStore = Depends(get_user_store)):
    # TODO: restrict to an admin role once one exists; records are already stripped of secrets
    users = await user_service.list_users(store)
    return api_response(status.HTTP_200_OK, users, "Users fetched successfully")

@router.post("/register")
async def register(
    fullName: Optional[str] = Form(None),
    email: Optional[str] = Form(None),
    username: Optional[str] = Form(None),
    password: Optional[str] = Form(None),
    avatar: Optional[UploadFile] = File(None),
    coverImage: Optional[UploadFile] = File(None),
    store: UserStore = Depends(get_user_store),
    uploader: CloudinaryUploader = Depends(get_asset_uploader),
):
    user = await user_service.register_user(
        store, uploader, fullName, email, username, password, avatar, coverImage
    )
    return api_response(status.HTTP_201_CREATED, user, "User registered successfully")

@router.post("/login")
async def login(
    data: UserLogin,
    store: UserStore = Depends(get_user_store),
    tokens: TokenService = Depends(get_token_service),
):
    result = await user_service.login_user(store, tokens, data.username, data.email, data.password)
    response = api_response(status.HTTP_200_OK, result, "User logged in successfully")
    return _set_token_cookies(response, result["accessToken"], result["refreshToken"])

@router.post("/logout")
async def logout(
    current_user: dict = Depends(get_current_user),
    tokens: TokenService = Depends(get_token_service),
):
    await user_service.logout_user(tokens, current_user)
    response = api_response(status.HTTP_200_OK, {}, "User logged out successfully")
    return _clear_token_cookies(response)

async def _presented_refresh_token(request: Request) -> Optional[str]:
    """Refresh token from the cookie, else from a JSON body; a body that is not one reads as no token"""
    token = request.cookies.get(REFRESH_TOKEN_COOKIE)
    if token:
        return token
    try:
        return RefreshTokenRequest.model_validate(await request.json()).refreshToken
    except (ValueError, ValidationError):
        return None

@router.post("/refresh-token")
async def refresh_token(
    request: Request,
    tokens: TokenService = Depends(get_token_service),
):
    presented = await _presented_refresh_token(request)
    pair = await user_service.refresh_tokens(tokens, presented)
    response = api_response(
        status.HTTP_200_OK,
        {"accessToken": pair.access_token, "refreshToken": pair.refresh_token},
        "Access token refreshed",
    )
    return _set_token_cookies(response, pair.access_token, pair.refresh_token)

@router.post("/change-password")
async def change_password(
    data: ChangePasswordRequest,
    current_user: dict = Depends(get_current_user),
    store: UserStore = Depends(get_user_store),
):
    await user_service.change_password(store, current_user, data)
    return api_response(status.HTTP_200_OK, {}, "Password changed successfully")

@router.get("/current-user")
async def read_current_user(current_user: dict = Depends(get_current_user)):
    return api_response(status.HTTP_200_OK, current_user, "Current user fetched successfully")

@router.patch("/update-account")
async def update_account(
    data: UpdateAccountRequest,
    current_user: dict = Depends(get_current_user),
    store: UserStore = Depends(get_user_store),
):
    user = await user_service.update_account_details(store, current_user, data)
    return api_response(status.HTTP_200_OK, user, "Account details updated successfully")

@router.patch("/avatar")
async def update_avatar(
    avatar: Optional[UploadFile] = File(None),
    current_user: dict = Depends(get_current_user),
    store: UserStore = Depends(get_user_store),
    uploader: CloudinaryUploader = Depends(get_asset_uploader),
):
    user = await user_service.update_user_image(store, uploader, current_user, "avatar", avatar)
    return api_response(status.HTTP_200_OK, user, "Avatar updated successfully")

@router.patch("/coverImage")
async def update_cover_image(
    coverImage: Optional[UploadFile] = File(None),
    current_user: dict = Depends(get_current_user),
    store: UserStore = Depends(get_user_store),
    uploader: CloudinaryUploader = Depends(get_asset_uploader),
):
    user = await user_service.update_user_image(store, uploader, current_user, "coverImage", coverImage)
    return api_response(status.HTTP_200_OK, user, "Cover image updated successfully")

@router.get("/c/{username}")
async def channel_profile(
    username: str,
    current_user: dict = Depends(get_current_user),
    store: UserStore = Depends(get_user_store),
):
    channel = await user_service.get_channel_profile(store, username, current_user)
    return api_response(status.HTTP_200_OK, channel, "User channel fetched successfully")

@router.get("/history")
async def watch_history(
    current_user: dict = Depends(get_current_user),
    store: UserStore = Depends(get_user_store),
):
    history = await user_service.get_watch_history(store, current_user)
    return api_response(status.HTTP_200_OK, history, "Watch history fetched successfully")
