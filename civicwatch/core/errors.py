# civicwatch/core/errors.py
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Generic, Optional, TypeVar

from fastapi import FastAPI, Request, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

log = logging.getLogger("civicwatch.errors")

T = TypeVar("T")


# -----------------------------
# Domain error taxonomy
# -----------------------------
class ErrorKind(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    VALIDATION = "validation"
    INTERNAL = "internal"


STATUS_BY_KIND: Dict[ErrorKind, int] = {
    ErrorKind.UNAUTHENTICATED: 401,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 409,
    ErrorKind.VALIDATION: 400,
    ErrorKind.INTERNAL: 500,
}


@dataclass(frozen=True)
class DomainError:
    kind: ErrorKind
    message: str
    details: Optional[Dict[str, Any]] = None

    @property
    def status_code(self) -> int:
        return STATUS_BY_KIND[self.kind]


@dataclass(frozen=True)
class Result(Generic[T]):
    """
    Outcome of a domain operation: either a value or a DomainError.
    Services return these; routers unwrap them at the HTTP edge.
    """

    value: Optional[T] = None
    error: Optional[DomainError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: Optional[T] = None) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def failure(
        cls,
        kind: ErrorKind,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> "Result[T]":
        return cls(error=DomainError(kind, message, details))

    @classmethod
    def from_error(cls, error: DomainError) -> "Result[T]":
        return cls(error=error)


def forbidden(message: str = "Forbidden") -> DomainError:
    return DomainError(ErrorKind.FORBIDDEN, message)


def not_found(message: str) -> DomainError:
    return DomainError(ErrorKind.NOT_FOUND, message)


class ApiError(Exception):
    """Carries a DomainError out of a route handler to the registered handler."""

    def __init__(self, error: DomainError):
        super().__init__(error.message)
        self.error = error


def unwrap(result: Result[T]) -> T:
    if result.error is not None:
        raise ApiError(result.error)
    return result.value  # type: ignore[return-value]


def guard(error: Optional[DomainError]) -> None:
    """Raise for a failed access predicate; no-op when it passed."""
    if error is not None:
        raise ApiError(error)


# -----------------------------
# Trace / request id helpers
# -----------------------------
def _ensure_trace_id(request: Request) -> str:
    """
    Return a stable trace_id for this request.
    Prefer a value already set on request.state, then common headers,
    and finally generate a new one (and store it on request.state).
    """
    for attr in ("trace_id", "request_id"):
        val = getattr(getattr(request, "state", object()), attr, None)
        if val:
            return str(val)

    for h in ("x-request-id", "x-correlation-id", "x-trace-id"):
        v = request.headers.get(h)
        if v:
            request.state.trace_id = v
            return v

    new_id = uuid.uuid4().hex
    request.state.trace_id = new_id
    return new_id


def _payload(
    *,
    message: str,
    typ: str,
    status: int,
    trace_id: str,
    details: Optional[Any] = None,
) -> Dict[str, Any]:
    body: Dict[str, Any] = {
        "ok": False,
        "error": {
            "type": typ,
            "message": message,
            "status": status,
            "trace_id": trace_id,
        },
    }
    if details is not None:
        body["error"]["details"] = details
    return body


# -----------------------------
# Install / register handlers
# -----------------------------
def register_exception_handlers(app: FastAPI, *, development: bool = False) -> None:
    """
    Registers consistent JSON error handlers.
    Also ensures X-Request-ID header is present on error responses.
    """

    @app.exception_handler(ApiError)
    async def api_error_handler(request: Request, exc: ApiError):
        trace_id = _ensure_trace_id(request)
        err = exc.error
        headers = {"X-Request-ID": trace_id}
        if err.kind is ErrorKind.UNAUTHENTICATED:
            headers["WWW-Authenticate"] = "Bearer"

        level = logging.ERROR if err.status_code >= 500 else logging.INFO
        log.log(
            level,
            "%s %s %s -> %s | trace_id=%s | %s",
            err.kind.value,
            request.method,
            request.url.path,
            err.status_code,
            trace_id,
            err.message,
        )
        return JSONResponse(
            status_code=err.status_code,
            headers=headers,
            content=_payload(
                message=err.message,
                typ=err.kind.value,
                status=err.status_code,
                trace_id=trace_id,
                details=err.details,
            ),
        )

    @app.exception_handler(HTTPException)
    async def http_exc_handler(request: Request, exc: HTTPException):
        trace_id = _ensure_trace_id(request)
        status_code = int(exc.status_code)
        message = exc.detail if isinstance(exc.detail, str) else "HTTP error"
        details = exc.detail if isinstance(exc.detail, dict) else None

        headers = dict(exc.headers or {})
        headers["X-Request-ID"] = trace_id

        level = logging.ERROR if status_code >= 500 else logging.WARNING
        log.log(
            level,
            "HTTPException %s %s -> %s | trace_id=%s | detail=%r",
            request.method,
            request.url.path,
            status_code,
            trace_id,
            exc.detail,
        )

        return JSONResponse(
            status_code=status_code,
            headers=headers,
            content=_payload(
                message=message,
                typ="http_error",
                status=status_code,
                trace_id=trace_id,
                details=details,
            ),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exc_handler(request: Request, exc: RequestValidationError):
        trace_id = _ensure_trace_id(request)
        errors = exc.errors()
        log.warning(
            "ValidationError %s %s -> 422 | trace_id=%s | errors=%s",
            request.method,
            request.url.path,
            trace_id,
            errors,
        )
        return JSONResponse(
            status_code=422,
            headers={"X-Request-ID": trace_id},
            content=_payload(
                message="Validation failed.",
                typ="validation_error",
                status=422,
                trace_id=trace_id,
                details=jsonable_errors(errors),
            ),
        )

    @app.exception_handler(Exception)
    async def unhandled_exc_handler(request: Request, exc: Exception):
        trace_id = _ensure_trace_id(request)
        # Full traceback to server logs; generic message to client
        log.exception(
            "Unhandled exception %s %s -> 500 | trace_id=%s",
            request.method,
            request.url.path,
            trace_id,
        )
        return JSONResponse(
            status_code=500,
            headers={"X-Request-ID": trace_id},
            content=_payload(
                message="Internal server error.",
                typ=ErrorKind.INTERNAL.value,
                status=500,
                trace_id=trace_id,
                details={"exception": repr(exc)} if development else None,
            ),
        )


def jsonable_errors(errors: Any) -> Any:
    # pydantic v2 puts raw exception objects under "ctx"
    out = []
    for e in errors or []:
        item = dict(e)
        if "ctx" in item:
            item["ctx"] = {k: str(v) for k, v in (item.get("ctx") or {}).items()}
        item.pop("input", None)
        out.append(item)
    return out
