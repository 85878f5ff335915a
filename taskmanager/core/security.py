import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, Header, Request
from jose import ExpiredSignatureError, JWTError, jwt
from sqlalchemy.orm import Session

from taskmanager.core.config import Settings
from taskmanager.core.database import get_db
from taskmanager.core.errors import AuthenticationError
from taskmanager.models.user import User

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"

TOKEN_EXPIRED = "TOKEN_EXPIRED"
INVALID_TOKEN = "INVALID_TOKEN"


def _encode(payload: dict, settings: Settings, lifetime: timedelta) -> str:
    now = datetime.now(timezone.utc)
    payload = dict(payload)
    payload.update({
        "iat": now,
        "exp": now + lifetime,
        "iss": settings.JWT_ISSUER,
        "aud": settings.JWT_AUDIENCE,
    })
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=ALGORITHM)


def create_access_token(user_id: int, settings: Settings, expires_delta: Optional[timedelta] = None) -> str:
    #crée un token d'accès JWT, 24h par défaut
    payload = {
        "user_id": user_id,
        "jti": f"{user_id}-{uuid.uuid4().hex}",
    }
    return _encode(payload, settings, expires_delta or settings.access_token_lifetime)


def create_refresh_token(user_id: int, settings: Settings, expires_delta: Optional[timedelta] = None) -> str:
    #crée un token de rafraîchissement JWT, 7 jours par défaut
    payload = {
        "user_id": user_id,
        "type": "refresh",
        "jti": f"refresh-{user_id}-{uuid.uuid4().hex}",
    }
    return _encode(payload, settings, expires_delta or settings.refresh_token_lifetime)


def decode_token(token: str, settings: Settings) -> dict:
    """Verify signature, expiry, issuer and audience; raises jose errors."""
    return jwt.decode(
        token,
        settings.JWT_SECRET,
        algorithms=[ALGORITHM],
        audience=settings.JWT_AUDIENCE,
        issuer=settings.JWT_ISSUER,
    )


def decode_access_token(token: str, settings: Settings) -> dict:
    try:
        payload = decode_token(token, settings)
    except ExpiredSignatureError:
        raise AuthenticationError("Token has expired", code=TOKEN_EXPIRED)
    except JWTError:
        raise AuthenticationError("Invalid token", code=INVALID_TOKEN)

    # un refresh token ne sert pas d'access token
    if payload.get("type") == "refresh" or not isinstance(payload.get("user_id"), int):
        raise AuthenticationError("Invalid token", code=INVALID_TOKEN)
    return payload


def verify_refresh_token(token: str, settings: Settings) -> dict:
    error_field = [{"field": "refreshToken", "message": "Invalid token format"}]
    try:
        payload = decode_token(token, settings)
    except ExpiredSignatureError:
        raise AuthenticationError(
            "Refresh token has expired",
            code=TOKEN_EXPIRED,
            errors=[{"field": "refreshToken", "message": "Please login again"}],
        )
    except JWTError:
        raise AuthenticationError("Invalid refresh token", code=INVALID_TOKEN, errors=error_field)

    if payload.get("type") != "refresh" or not isinstance(payload.get("user_id"), int):
        raise AuthenticationError("Invalid refresh token", code=INVALID_TOKEN, errors=error_field)
    return payload


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_current_user(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    authorization: Optional[str] = Header(None)
) -> User:
    # Check token
    token = extract_bearer_token(authorization)
    if not token:
        raise AuthenticationError("Access token required")

    payload = decode_access_token(token, settings)

    # l'utilisateur peut avoir été supprimé depuis l'émission du token
    user = User.find_by_id(db, payload["user_id"])
    if not user:
        logger.info("Token for missing user %s rejected", payload["user_id"])
        raise AuthenticationError("Invalid token - user not found")

    return user
