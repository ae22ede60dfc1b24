"""
Error taxonomy and global handlers.

Every failure leaves the API as the same envelope:
    {"success": false, "error": "...", "errors": [...]?, "stack": "..."?}
"""
import logging
import traceback

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import config

logger = logging.getLogger(__name__)


class AppError(Exception):
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(AppError):
    # duplicate relationship, duplicate registration, already a member...
    status_code = status.HTTP_400_BAD_REQUEST


class ForbiddenError(AppError):
    status_code = status.HTTP_403_FORBIDDEN


class MediaError(AppError):
    """Rejected or unprocessable upload."""
    status_code = status.HTTP_400_BAD_REQUEST


# driver error codes / messages -> client facing message
_INTEGRITY_MESSAGES = (
    (('ER_ROW_IS_REFERENCED_2', 'is still referenced'),
     'Cannot delete record as it is referenced by other records'),
    (('ER_DUP_ENTRY', 'UNIQUE constraint failed', 'duplicate key', '23505'),
     'Duplicate field value entered'),
    (('ER_NO_REFERENCED_ROW_2', 'FOREIGN KEY constraint failed', 'is not present in table', '23503'),
     'Referenced record does not exist'),
)


def integrity_message(exc: IntegrityError) -> str:
    raw = str(exc.orig) if exc.orig is not None else str(exc)
    code = getattr(exc.orig, 'sqlstate', None) or getattr(exc.orig, 'pgcode', None)
    for markers, message in _INTEGRITY_MESSAGES:
        if code in markers or any(m in raw for m in markers):
            return message
    return 'Duplicate field value entered'


def error_body(message: str, **extra) -> dict:
    body = {'success': False, 'error': message}
    body.update({k: v for k, v in extra.items() if v is not None})
    return body


def _validation_errors(exc: RequestValidationError) -> list[dict]:
    out = []
    for e in exc.errors():
        loc = [str(part) for part in e.get('loc', ()) if part not in ('body', 'query', 'path', 'form')]
        value = e.get('input')
        if isinstance(value, (dict, list)):
            value = None
        elif value is not None and not isinstance(value, (str, int, float, bool)):
            value = str(value)
        out.append({
            'field': '.'.join(loc) or None,
            'message': e.get('msg'),
            'value': value,
        })
    return out


def register_error_handlers(app: FastAPI) -> None:

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        logger.info({'msg': 'app_error', 'path': request.url.path, 'status': exc.status_code, 'error': exc.message})
        return JSONResponse(status_code=exc.status_code, content=error_body(exc.message))

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        message = exc.detail if isinstance(exc.detail, str) else 'Request failed'
        if exc.status_code == 429:
            message = 'Too many requests, please try again later'
        return JSONResponse(status_code=exc.status_code, content=error_body(message), headers=exc.headers)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        errors = _validation_errors(exc)
        logger.info({'msg': 'validation_failed', 'path': request.url.path, 'errors': errors})
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={'success': False, 'message': 'Validation failed', 'error': 'Validation failed', 'errors': errors},
        )

    @app.exception_handler(IntegrityError)
    async def integrity_error_handler(request: Request, exc: IntegrityError):
        message = integrity_message(exc)
        logger.warning({'msg': 'integrity_error', 'path': request.url.path, 'error': str(exc.orig)})
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=error_body(message))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.error({'msg': 'unhandled_error', 'path': request.url.path, 'method': request.method,
                      'error': str(exc)}, exc_info=True)
        stack = None
        if not config.IS_PRODUCTION:
            stack = ''.join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                            content=error_body('Server Error', stack=stack))
