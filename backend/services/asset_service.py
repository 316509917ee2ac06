from typing import Any, Dict, Optional
import hashlib
import logging
import time
import aiohttp
from fastapi import UploadFile
from core.config import settings

logger = logging.getLogger(__name__)


def sign_upload_params(params: Dict[str, Any], api_secret: str) -> str:
    """Cloudinary signature: sha1 of the sorted ``k=v`` pairs joined by ``&`` plus the secret"""
    to_sign = "&".join(f"{k}={params[k]}" for k in sorted(params) if params[k] not in (None, ""))
    return hashlib.sha1(f"{to_sign}{api_secret}".encode("utf-8")).hexdigest()


class CloudinaryUploader:
    """Uploads avatar and cover images to Cloudinary.

    ``upload`` returns the parsed Cloudinary response (with ``url`` and
    ``secure_url``) or None when the upload did not happen; callers decide
    whether a missing asset is an error.
    """

    def __init__(
        self,
        cloud_name: Optional[str] = None,
        api_key: Optional[str] = None,
        api_secret: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[int] = None,
    ):
        self.cloud_name = cloud_name or settings.CLOUDINARY_CLOUD_NAME
        self.api_key = api_key or settings.CLOUDINARY_API_KEY
        self.api_secret = api_secret or settings.CLOUDINARY_API_SECRET
        self.base_url = (base_url or settings.CLOUDINARY_UPLOAD_URL).rstrip("/")
        self.timeout = timeout or settings.CLOUDINARY_TIMEOUT

    @property
    def configured(self) -> bool:
        return bool(self.cloud_name and self.api_key and self.api_secret)

    @property
    def upload_url(self) -> str:
        return f"{self.base_url}/{self.cloud_name}/auto/upload"

    async def upload(self, file: Optional[UploadFile]) -> Optional[Dict[str, Any]]:
        if file is None:
            return None
        if not self.configured:
            logger.error("Cloudinary credentials missing in environment")
            return None
        content = await file.read()
        if not content:
            logger.warning(f"Refusing to upload empty file {file.filename!r}")
            return None

        params = {"timestamp": int(time.time())}
        form = aiohttp.FormData()
        form.add_field(
            "file",
            content,
            filename=file.filename or "upload",
            content_type=file.content_type or "application/octet-stream",
        )
        form.add_field("api_key", self.api_key)
        form.add_field("timestamp", str(params["timestamp"]))
        form.add_field("signature", sign_upload_params(params, self.api_secret))

        try:
            timeout = aiohttp.ClientTimeout(total=self.timeout)
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(self.upload_url, data=form) as resp:
                    data = await resp.json(content_type=None)
                    if resp.status >= 400:
                        msg = (data.get("error") or {}).get("message") if isinstance(data, dict) else data
                        logger.error(f"Cloudinary upload failed: {resp.status} {msg}")
                        return None
                    if not data.get("url") and not data.get("secure_url"):
                        logger.error(f"Cloudinary upload missing url: {data}")
                        return None
                    logger.info(f"File uploaded to Cloudinary: {data.get('secure_url') or data.get('url')}")
                    return data
        except aiohttp.ClientError as e:
            logger.error(f"Cloudinary connection error: {e}")
            return None
        except Exception as e:
            logger.exception(f"Error uploading file to Cloudinary: {e}")
            return None


def asset_url(uploaded: Optional[Dict[str, Any]]) -> str:
    if not uploaded:
        return ""
    return uploaded.get("secure_url") or uploaded.get("url") or ""
