# backend/aihub/core/errors.py
"""
Error envelope shared by all endpoints: ``{"error": "<message>"}``.

Messages are user-facing and therefore Persian; the HTTP status carries the
machine-readable distinction (401 "log in" vs. 402 "top up", ...).
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

log = logging.getLogger("uvicorn.error")

# User-facing messages
MSG_LOGIN_REQUIRED = "لطفا وارد شوید"
MSG_EMPTY_MESSAGE = "پیام خالی است"
MSG_MESSAGE_TOO_LONG = "پیام بیش از حد طولانی است"
MSG_INSUFFICIENT_CREDITS = "اعتبار کافی نیست"
MSG_CHAT_PROCESSING_FAILED = "خطا در پردازش پیام"
MSG_STREAM_FAILED = "خطا در دریافت پاسخ"
MSG_CHAT_NOT_FOUND = "گفتگو یافت نشد"
MSG_CHAT_ID_REQUIRED = "شناسه گفتگو الزامی است"
MSG_INVALID_REQUEST = "درخواست نامعتبر است"
MSG_INTERNAL = "خطای داخلی سرور"


class ApiError(Exception):
    def __init__(self, status_code: int, error: str) -> None:
        super().__init__(error)
        self.status_code = status_code
        self.error = error


def error_response(status_code: int, error: str) -> JSONResponse:
    return JSONResponse({"error": error}, status_code=status_code)


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(ApiError)
    async def _api_error(_request: Request, exc: ApiError) -> JSONResponse:
        return error_response(exc.status_code, exc.error)

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return error_response(exc.status_code, str(exc.detail))

    @app.exception_handler(RequestValidationError)
    async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        log.info("invalid request on %s: %s", request.url.path, exc.errors())
        return error_response(400, MSG_INVALID_REQUEST)

    @app.exception_handler(Exception)
    async def _unhandled(request: Request, exc: Exception) -> JSONResponse:
        log.exception("unhandled error on %s %s", request.method, request.url.path)
        return error_response(500, MSG_INTERNAL)
