from typing import Any, List, Optional
from bson import ObjectId
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

NO_STORE_HEADERS = {
    "Cache-Control": "no-store, no-cache, must-revalidate, max-age=0",
    "Pragma": "no-cache",
    "Expires": "0",
}

def to_jsonable(data: Any) -> Any:
    """Encode Mongo documents: ObjectId as str, datetimes as ISO-8601."""
    return jsonable_encoder(data, custom_encoder={ObjectId: str})

def no_store_json(data, status_code: int = 200, headers: Optional[dict] = None):
    """Return JSONResponse with no-store caching headers."""
    merged = {**NO_STORE_HEADERS, **(headers or {})}
    return JSONResponse(content=data, status_code=status_code, headers=merged)

def api_response(status_code: int, data: Any, message: str = "Success") -> JSONResponse:
    """Success envelope: {statusCode, data, message, success}."""
    return no_store_json({
        "statusCode": status_code,
        "data": to_jsonable(data),
        "message": message,
        "success": status_code < 400,
    }, status_code=status_code)

def api_error(status_code: int, message: str, errors: Optional[List[Any]] = None, headers: Optional[dict] = None) -> JSONResponse:
    """Error envelope: {statusCode, message, success, errors}."""
    return no_store_json({
        "statusCode": status_code,
        "message": message,
        "success": False,
        "errors": to_jsonable(errors or []),
    }, status_code=status_code, headers=headers)
