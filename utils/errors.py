import traceback

from fastapi import HTTPException, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError
from starlette.exceptions import HTTPException as StarletteHTTPException

from utils.logger_factory import new_logger


class AppError(HTTPException):
    """Base for errors that map directly onto a JSON `{message}` response."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, headers=None):
        super().__init__(status_code=self.status_code, detail=message, headers=headers)

    @property
    def message(self) -> str:
        return self.detail


class ValidationError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST


class AuthError(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND


class UpstreamUnavailable(AppError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


def error_response(status_code: int, message: str, **extra) -> JSONResponse:
    content = {"message": message}
    content.update({k: v for k, v in extra.items() if v is not None})
    return JSONResponse(status_code=status_code, content=jsonable_encoder(content))


def register_exception_handlers(app, settings):
    """Map every error raised by a handler onto the `{message, ...}` envelope."""

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        log = new_logger("http_exception_handler")
        log.info(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.detail}")
        if isinstance(exc.detail, dict):
            return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(exc.detail), headers=exc.headers)
        response = error_response(exc.status_code, str(exc.detail) or "Erro")
        if exc.headers:
            response.headers.update(exc.headers)
        return response

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        log = new_logger("validation_exception_handler")
        log.info(f"{request.method} {request.url.path} -> invalid request body")
        return error_response(status.HTTP_400_BAD_REQUEST, "Dados inválidos", errors=[{"loc": list(e.get("loc", ())), "msg": e.get("msg")} for e in exc.errors()])

    @app.exception_handler(OperationalError)
    async def database_unavailable_handler(request: Request, exc: OperationalError):
        log = new_logger("database_unavailable_handler")
        log.error(f"Database unavailable on {request.method} {request.url.path}: {exc}")
        error = UpstreamUnavailable("Serviço temporariamente indisponível")
        return error_response(error.status_code, error.message, error=None if settings.is_production else str(exc))

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        log = new_logger("general_exception_handler")
        log.exception(f"Unhandled exception on {request.method} {request.url.path}: {exc}")
        if settings.is_production:
            return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Erro interno do servidor")
        return error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "Erro interno do servidor",
            error=str(exc),
            traceback=traceback.format_exception(type(exc), exc, exc.__traceback__),
        )
