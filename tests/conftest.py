import sys
from pathlib import Path

# Ajoute la racine du projet au PYTHONPATH EN PREMIER
sys.path.insert(0, str(Path(__file__).parent.parent))

import pytest
from fastapi.testclient import TestClient

from taskmanager.core.config import Settings
from taskmanager.core.database import Database
from taskmanager.main import create_app

TEST_PASSWORD = "pass123"


@pytest.fixture
def settings():
    """Settings de test : bcrypt rapide, secret fixe"""
    return Settings(JWT_SECRET="test-secret", BCRYPT_ROUNDS=4, APP_ENV="test", LOG_LEVEL="WARNING")


@pytest.fixture
def database():
    """Base en mémoire neuve pour chaque test"""
    db = Database()
    db.initialize()
    yield db
    db.close()


@pytest.fixture
def app(settings, database):
    return create_app(settings, database)


@pytest.fixture
def client(app):
    """Client de test FastAPI"""
    return TestClient(app)


@pytest.fixture
def db(database):
    """Session DB pour les tests

    Ouverte sans le verrou du store : les requêtes du client de test
    passent entre deux appels, jamais en même temps.
    """
    session = database.SessionLocal()
    yield session
    session.close()


def register(client, email, password=TEST_PASSWORD):
    return client.post("/api/auth/register", json={"email": email, "password": password})


def auth_headers_for(client, email, password=TEST_PASSWORD):
    response = register(client, email, password)
    assert response.status_code == 201, response.json()
    return {"Authorization": f"Bearer {response.json()['data']['token']}"}


@pytest.fixture
def auth_headers(client):
    """Crée un utilisateur et retourne son header Authorization"""
    return auth_headers_for(client, "test@example.com")


@pytest.fixture
def other_headers(client):
    """Un deuxième utilisateur, pour les tests de propriété"""
    return auth_headers_for(client, "other@example.com")
