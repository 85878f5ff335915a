import contextvars
from concurrent.futures import ThreadPoolExecutor

import pytest
from sqlalchemy.exc import IntegrityError

from taskmanager.core.database import Database, StoreLock
from taskmanager.core.errors import ConflictError, ServiceUnavailableError
from taskmanager.models.task import Task
from taskmanager.models.user import User


def test_lazy_initialization():
    """La base crée son schéma au premier usage"""
    database = Database()
    assert database.check_setup() is False
    result = database.execute("SELECT COUNT(*) AS n FROM users")
    assert result.rows == [{"n": 0}]
    assert database.check_setup() is True
    database.close()


def test_initialize_is_idempotent(database):
    database.execute("INSERT INTO users (email, password, created_at) VALUES (:e, :p, CURRENT_TIMESTAMP)",
                     {"e": "a@b.com", "p": "hash"})
    database.initialize()
    database._initialized = False
    database.initialize()
    assert database.execute("SELECT email FROM users").rows == [{"email": "a@b.com"}]


def test_execute_uses_bound_parameters(database):
    # la valeur est un paramètre, pas du SQL
    hostile = "x'); DROP TABLE users; --"
    database.execute("INSERT INTO users (email, password, created_at) VALUES (:e, :p, CURRENT_TIMESTAMP)",
                     {"e": hostile, "p": "hash"})
    assert database.check_setup() is True
    rows = database.execute("SELECT email FROM users WHERE email = :e", {"e": hostile}).rows
    assert rows == [{"email": hostile}]


def test_execute_row_count(database):
    for email in ("a@b.com", "c@d.com"):
        database.execute("INSERT INTO users (email, password, created_at) VALUES (:e, 'h', CURRENT_TIMESTAMP)",
                         {"e": email})
    result = database.execute("UPDATE users SET password = 'x'")
    assert result.row_count == 2
    assert result.rows == []


def test_check_constraints_enforced_by_store(database):
    database.execute("INSERT INTO users (id, email, password, created_at) VALUES (1, 'a@b.com', 'h', CURRENT_TIMESTAMP)")
    with pytest.raises(IntegrityError):
        database.execute(
            "INSERT INTO tasks (title, status, priority, user_id, created_at, updated_at) "
            "VALUES ('t', 'done', 'medium', 1, CURRENT_TIMESTAMP, CURRENT_TIMESTAMP)"
        )
    with pytest.raises(IntegrityError):
        database.execute(
            "INSERT INTO tasks (title, status, priority, user_id, created_at, updated_at) "
            "VALUES ('t', 'pending', 'urgent', 1, CURRENT_TIMESTAMP, CURRENT_TIMESTAMP)"
        )


def test_foreign_key_enforced(database):
    with pytest.raises(IntegrityError):
        database.execute(
            "INSERT INTO tasks (title, status, priority, user_id, created_at, updated_at) "
            "VALUES ('t', 'pending', 'low', 999, CURRENT_TIMESTAMP, CURRENT_TIMESTAMP)"
        )


def test_transaction_commits(database):
    with database.transaction() as db:
        db.add(User(email="t@example.com", password="h"))
    assert database.execute("SELECT COUNT(*) AS n FROM users").rows[0]["n"] == 1


def test_transaction_rolls_back(database):
    with pytest.raises(RuntimeError):
        with database.transaction() as db:
            db.add(User(email="t@example.com", password="h"))
            db.flush()
            raise RuntimeError("boom")
    assert database.execute("SELECT COUNT(*) AS n FROM users").rows[0]["n"] == 0


def test_duplicate_email_maps_to_conflict(db):
    User.create(db, "dup@example.com", "abc123", rounds=4)
    with pytest.raises(ConflictError):
        User.create(db, "DUP@example.com", "abc123", rounds=4)


def test_separate_databases_are_isolated():
    first, second = Database(), Database()
    first.execute("INSERT INTO users (email, password, created_at) VALUES ('a@b.com', 'h', CURRENT_TIMESTAMP)")
    assert second.execute("SELECT COUNT(*) AS n FROM users").rows[0]["n"] == 0
    first.close()
    second.close()


def test_indexes_created(database):
    from sqlalchemy import inspect

    inspector = inspect(database.engine)
    task_indexes = {tuple(index["column_names"]) for index in inspector.get_indexes("tasks")}
    assert {("user_id",), ("status",), ("priority",)} <= task_indexes
    user_indexes = {tuple(index["column_names"]) for index in inspector.get_indexes("users")}
    assert ("email",) in user_indexes


def test_task_model_requires_existing_owner(db):
    with pytest.raises(IntegrityError):
        Task.create(db, title="orpheline", user_id=12345)


def test_session_lock_is_reentrant(database):
    """execute() dans une session ouverte ne bloque pas"""
    with database.session() as db:
        db.add(User(email="t@example.com", password="h"))
        db.commit()
        assert database.execute("SELECT COUNT(*) AS n FROM users").rows[0]["n"] == 1
    assert not database._lock.locked


def test_session_blocks_other_contexts():
    database = Database(lock_timeout=0.2)
    database.initialize()

    with database.session():
        with ThreadPoolExecutor(max_workers=1) as pool:
            # contexte vide : ce thread ne détient pas le verrou
            future = pool.submit(contextvars.Context().run, database.execute, "SELECT 1")
            with pytest.raises(ServiceUnavailableError):
                future.result()

    assert database.execute("SELECT 1 AS one").rows == [{"one": 1}]
    database.close()


def test_lock_released_from_another_thread():
    lock = StoreLock(timeout=1)
    with ThreadPoolExecutor(max_workers=1) as pool:
        pool.submit(contextvars.Context().run, lock.acquire).result()
    assert lock.locked
    lock.release()
    assert not lock.locked
    lock.acquire()
    lock.release()
