import pytest
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError

from taskmanager.core.errors import (
    AppError,
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    DatabaseError,
    NotFoundError,
    ServiceUnavailableError,
    ValidationError,
    coerce_error,
    map_database_error,
)


class FakePgError(Exception):
    def __init__(self, sqlstate):
        super().__init__("driver error")
        self.sqlstate = sqlstate


def integrity(message):
    return IntegrityError("INSERT ...", {}, Exception(message))


@pytest.mark.parametrize("error,status_code,status", [
    (ValidationError(), 400, "fail"),
    (AuthenticationError(), 401, "fail"),
    (AuthorizationError(), 403, "fail"),
    (NotFoundError("Task"), 404, "fail"),
    (ConflictError(), 409, "fail"),
    (DatabaseError(), 500, "error"),
    (ServiceUnavailableError(), 503, "error"),
])
def test_taxonomy_status(error, status_code, status):
    assert isinstance(error, AppError)
    assert error.status_code == status_code
    assert error.status == status


def test_not_found_message():
    assert NotFoundError("Task").message == "Task not found"


@pytest.mark.parametrize("message,expected_type,expected_message", [
    ("UNIQUE constraint failed: users.email", ConflictError, "Resource already exists"),
    ("FOREIGN KEY constraint failed", ValidationError, "Invalid reference to related resource"),
    ("NOT NULL constraint failed: tasks.title", ValidationError, "Required field is missing"),
    ("CHECK constraint failed: ck_tasks_status", ValidationError, "Field value violates constraint"),
    ("something odd", DatabaseError, "Database operation failed"),
])
def test_map_sqlite_errors(message, expected_type, expected_message):
    mapped = map_database_error(integrity(message))
    assert type(mapped) is expected_type
    assert mapped.message == expected_message


def test_map_schema_errors():
    missing = OperationalError("SELECT", {}, Exception("no such table: users"))
    duplicate = OperationalError("CREATE", {}, Exception("table users already exists"))
    assert map_database_error(missing).message == "Database table not found"
    assert map_database_error(duplicate).message == "Database table already exists"
    assert map_database_error(missing).status_code == 500


def test_map_driver_sqlstate():
    error = IntegrityError("INSERT ...", {}, FakePgError("23505"))
    assert isinstance(map_database_error(error), ConflictError)


def test_coerce_error():
    conflict = ConflictError()
    assert coerce_error(conflict) is conflict
    assert isinstance(coerce_error(SQLAlchemyError("boom")), DatabaseError)
    unknown = coerce_error(RuntimeError("boom"))
    assert unknown.status_code == 500
    assert unknown.message == "Internal server error"
