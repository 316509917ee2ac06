import logging
import logging.handlers
import contextvars
import time
from pathlib import Path
from typing import Optional

from core.config import settings
from core.security import extract_access_token, verify_token
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request


def _ensure_log_dir(directory: Path) -> None:
    directory.mkdir(parents=True, exist_ok=True)


def map_log_level(level_name: str) -> int:
    level = logging.getLevelName((level_name or "INFO").upper())
    return level if isinstance(level, int) else logging.INFO


user_id_var = contextvars.ContextVar("user_id", default="-")
api_var = contextvars.ContextVar("api", default="-")


class ContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        # Inject per-request context variables
        record.user_id = user_id_var.get()
        record.api = api_var.get()
        return True


def _build_rotating_file_handler(filename: str, level: int, formatter: logging.Formatter, log_dir: Path) -> logging.Handler:
    handler = logging.handlers.TimedRotatingFileHandler(
        filename=str(log_dir / filename),
        when="midnight",
        interval=1,
        backupCount=max(int(settings.LOG_TTL_DAYS), 0),
        encoding="utf-8",
        utc=True,
    )
    handler.suffix = "%Y-%m-%d"
    handler.setLevel(level)
    handler.setFormatter(formatter)
    handler.addFilter(ContextFilter())
    return handler


def _build_handlers(level: int, log_dir: Path, to_file: bool = True) -> dict[str, list[logging.Handler]]:
    formatter = logging.Formatter(
        fmt="%(levelname)s - %(asctime)s - %(user_id)s - %(api)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    console_handler.addFilter(ContextFilter())

    if not to_file:
        return {"app": [console_handler], "access": [console_handler]}

    app_file = _build_rotating_file_handler("app.log", level, formatter, log_dir)
    access_file = _build_rotating_file_handler("access.log", level, formatter, log_dir)
    error_file = _build_rotating_file_handler("error.log", logging.WARNING, formatter, log_dir)

    return {
        "app": [app_file, error_file, console_handler],
        "access": [access_file, console_handler],
    }


def _reset_handlers(target_logger: logging.Logger, handlers: list[logging.Handler], level: int) -> None:
    for h in list(target_logger.handlers):
        target_logger.removeHandler(h)
    for h in handlers:
        target_logger.addHandler(h)
    target_logger.setLevel(level)


def configure_logging(app_logger_name: Optional[str] = None) -> logging.Logger:
    """Configure logging with daily rotation and TTL-based retention.

    - Rotates at midnight; keeps last LOG_TTL_DAYS files
    - LOG_TO_FILE=false keeps only the console handler
    - Applies handlers to root, app, and Uvicorn loggers
    """
    level = map_log_level(settings.LOG_LEVEL)
    log_dir = Path(settings.LOG_DIR)
    if settings.LOG_TO_FILE:
        _ensure_log_dir(log_dir)
    handlers = _build_handlers(level, log_dir, to_file=settings.LOG_TO_FILE)

    # Root logger -> app + error + console
    _reset_handlers(logging.getLogger(), handlers["app"], level)

    app_name = app_logger_name or "videotube"
    app_logger = logging.getLogger(app_name)
    app_logger.propagate = False
    _reset_handlers(app_logger, handlers["app"], level)

    for name in ("uvicorn", "uvicorn.error", "fastapi"):
        lgr = logging.getLogger(name)
        lgr.propagate = False
        _reset_handlers(lgr, handlers["app"], level)
    # uvicorn.access -> access + console
    access_logger = logging.getLogger("uvicorn.access")
    access_logger.propagate = False
    _reset_handlers(access_logger, handlers["access"], level)

    return app_logger


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Tags every log line of a request with the caller and route, and logs its duration."""

    async def dispatch(self, request: Request, call_next):
        user_id = "-"
        token = extract_access_token(request)
        config = getattr(request.app.state, "token_config", None)
        if token and config is not None:
            payload = verify_token(token, config)
            if payload:
                user_id = payload.get("sub") or "-"

        context_token_user = user_id_var.set(user_id)
        context_token_api = api_var.set(f"{request.method} {request.url.path}")
        start = time.perf_counter()
        try:
            response = await call_next(request)
            elapsed_ms = (time.perf_counter() - start) * 1000.0
            logging.getLogger("videotube.request").info(
                f"[timing] {response.status_code} in {elapsed_ms:.2f} ms"
            )
            return response
        finally:
            user_id_var.reset(context_token_user)
            api_var.reset(context_token_api)
