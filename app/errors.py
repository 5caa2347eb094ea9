# app/errors.py
# Role: Global exception handlers.
#       Every error leaves the API as JSON: {"status": <int>, "message": <str>}.

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
import structlog

from app import config

logger = structlog.get_logger(__name__)


def error_body(status: int, message: str, **extra) -> dict:
    body = {"status": status, "message": message}
    body.update(extra)
    return body


def _validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request."
    first = errors[0]
    loc = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    msg = first.get("msg", "Invalid value")
    return f"{loc}: {msg}" if loc else msg


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    status = exc.status_code
    message = exc.detail if isinstance(exc.detail, str) else str(exc.detail)

    if status == 404 and message == "Not Found":
        # Unknown route
        return JSONResponse(status_code=404, content={"message": "Not Found", "status": 404})

    if status >= 500:
        logger.error(
            "http_exception",
            method=request.method,
            path=request.url.path,
            status=status,
            message=message,
        )

    return JSONResponse(
        status_code=status,
        content=error_body(status, message),
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=422,
        content=error_body(422, _validation_message(exc), errors=jsonable_errors(exc)),
    )


def jsonable_errors(exc: RequestValidationError) -> list:
    out = []
    for err in exc.errors():
        out.append(
            {
                "loc": [str(p) for p in err.get("loc", ())],
                "msg": str(err.get("msg", "")),
                "type": str(err.get("type", "")),
            }
        )
    return out


async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(
        "unhandled_error",
        method=request.method,
        path=request.url.path,
    )
    message = "Internal Server Error" if config.IS_PRODUCTION else str(exc) or "Internal Server Error"
    return JSONResponse(status_code=500, content=error_body(500, message))


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
