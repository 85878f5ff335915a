"""Application errors and their JSON rendering."""

import traceback
from typing import Any, Dict, List, Optional

from fastapi import Request
from sqlalchemy.exc import DBAPIError, SQLAlchemyError


class AppError(Exception):
    """Base error carrying an HTTP status code."""

    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None,
                 errors: Optional[List[Dict[str, Any]]] = None, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.errors = errors
        self.code = code

    @property
    def status(self) -> str:
        return "fail" if 400 <= self.status_code < 500 else "error"


class ValidationError(AppError):
    status_code = 400

    def __init__(self, message: str = "Validation failed", errors: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message, errors=errors if errors is not None else [])


class AuthenticationError(AppError):
    status_code = 401

    def __init__(self, message: str = "Authentication failed", code: Optional[str] = None,
                 errors: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message, errors=errors, code=code)


class AuthorizationError(AppError):
    status_code = 403

    def __init__(self, message: str = "Access denied"):
        super().__init__(message)


class NotFoundError(AppError):
    status_code = 404

    def __init__(self, resource: str = "Resource"):
        super().__init__(f"{resource} not found")


class ConflictError(AppError):
    status_code = 409

    def __init__(self, message: str = "Resource already exists",
                 errors: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message, errors=errors)


class DatabaseError(AppError):
    status_code = 500

    def __init__(self, message: str = "Database operation failed"):
        super().__init__(message)


class ServiceUnavailableError(AppError):
    status_code = 503

    def __init__(self, message: str = "Service temporarily unavailable"):
        super().__init__(message)


# SQLSTATE codes, PostgreSQL naming
UNIQUE_VIOLATION = "23505"
FOREIGN_KEY_VIOLATION = "23503"
NOT_NULL_VIOLATION = "23502"
CHECK_VIOLATION = "23514"
UNDEFINED_TABLE = "42P01"
DUPLICATE_TABLE = "42P07"

# SQLite n'expose pas de SQLSTATE, on déduit le code du message
_SQLITE_MESSAGES = [
    ("UNIQUE constraint failed", UNIQUE_VIOLATION),
    ("FOREIGN KEY constraint failed", FOREIGN_KEY_VIOLATION),
    ("NOT NULL constraint failed", NOT_NULL_VIOLATION),
    ("CHECK constraint failed", CHECK_VIOLATION),
    ("no such table", UNDEFINED_TABLE),
    ("already exists", DUPLICATE_TABLE),
]


def sqlstate_of(exc: SQLAlchemyError) -> Optional[str]:
    if not isinstance(exc, DBAPIError):
        return None
    orig = exc.orig
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if code:
        return code
    text = str(orig)
    for fragment, sqlstate in _SQLITE_MESSAGES:
        if fragment in text:
            return sqlstate
    return None


def map_database_error(exc: SQLAlchemyError) -> AppError:
    """Translate a store-level failure into the closest application error."""
    code = sqlstate_of(exc)
    if code == UNIQUE_VIOLATION:
        return ConflictError("Resource already exists")
    if code == FOREIGN_KEY_VIOLATION:
        return ValidationError("Invalid reference to related resource")
    if code == NOT_NULL_VIOLATION:
        return ValidationError("Required field is missing")
    if code == CHECK_VIOLATION:
        return ValidationError("Field value violates constraint")
    if code == UNDEFINED_TABLE:
        return DatabaseError("Database table not found")
    if code == DUPLICATE_TABLE:
        return DatabaseError("Database table already exists")
    return DatabaseError("Database operation failed")


def coerce_error(exc: Exception) -> AppError:
    if isinstance(exc, AppError):
        return exc
    if isinstance(exc, SQLAlchemyError):
        return map_database_error(exc)
    return AppError("Internal server error", 500)


def format_error_response(err: AppError, request: Request, debug: bool = False,
                          original: Optional[BaseException] = None) -> Dict[str, Any]:
    """Build the JSON body for an error.

    Stack traces and the request echo are only added when ``debug`` is set,
    production responses never carry them.
    """
    response: Dict[str, Any] = {"success": False, "message": err.message}

    if err.errors:
        response["errors"] = err.errors
    if err.code:
        response["code"] = err.code

    if debug:
        source = original if original is not None else err
        response["stack"] = "".join(
            traceback.format_exception(type(source), source, source.__traceback__)
        )
        response["request"] = {
            "method": request.method,
            "url": str(request.url),
            "headers": dict(request.headers),
            "params": dict(request.path_params),
            "query": dict(request.query_params),
        }

    return response
