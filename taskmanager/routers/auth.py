import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from taskmanager.core.config import Settings
from taskmanager.core.database import get_db
from taskmanager.core.errors import AuthenticationError, ConflictError
from taskmanager.core.security import (
    create_access_token,
    create_refresh_token,
    get_current_user,
    get_settings,
    verify_refresh_token,
)
from taskmanager.core.validation import (
    CHANGE_PASSWORD_RULES,
    LOGIN_RULES,
    REFRESH_RULES,
    REGISTER_RULES,
    validated_body,
)
from taskmanager.models.user import User
from taskmanager.schemas.common import MessageResponse
from taskmanager.schemas.user import AuthResponse, UserEnvelope, UserResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


def issue_tokens(user_id: int, settings: Settings) -> dict:
    access_token = create_access_token(user_id, settings)
    refresh_token = create_refresh_token(user_id, settings)
    return {
        "token": access_token,
        "refresh_token": refresh_token,
        "tokens": {
            "access_token": access_token,
            "refresh_token": refresh_token,
            "expires_in": settings.JWT_EXPIRES_IN,
        },
    }


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
def register(
    payload: dict = Depends(validated_body(REGISTER_RULES)),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings)
):
    """Créer un nouvel utilisateur"""
    email_taken = [{"field": "email", "message": "Email is already registered"}]

    # Vérifie si l'email existe déjà
    if User.find_by_email(db, payload["email"]):
        raise ConflictError("User with this email already exists", errors=email_taken)

    try:
        user = User.create(db, payload["email"], payload["password"], rounds=settings.BCRYPT_ROUNDS)
    except ConflictError:
        # inscription concurrente sur le même email
        raise ConflictError("User with this email already exists", errors=email_taken)

    logger.info("User %s registered", user.id)
    return {
        "message": "User registered successfully",
        "data": {"user": UserResponse.model_validate(user), **issue_tokens(user.id, settings)},
    }


@router.post("/login", response_model=AuthResponse)
def login(
    credentials: dict = Depends(validated_body(LOGIN_RULES)),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings)
):
    """Se connecter et recevoir les tokens"""

    # même message pour email inconnu et mauvais password
    user = User.find_by_email(db, credentials["email"])
    if not user or not user.verify_password(credentials["password"]):
        raise AuthenticationError(
            "Invalid credentials",
            errors=[{"field": "email", "message": "Email or password is incorrect"}],
        )

    return {
        "message": "Login successful",
        "data": {"user": UserResponse.model_validate(user), **issue_tokens(user.id, settings)},
    }


@router.post("/refresh", response_model=AuthResponse, response_model_exclude_none=True)
def refresh(
    payload: dict = Depends(validated_body(REFRESH_RULES)),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings)
):
    """Utiliser un refresh_token pour obtenir une nouvelle paire de tokens"""

    # Vérifie le refresh_token (type, signature, expiration)
    claims = verify_refresh_token(payload["refreshToken"], settings)

    user = User.find_by_id(db, claims["user_id"])
    if not user:
        raise AuthenticationError(
            "Invalid refresh token",
            errors=[{"field": "refreshToken", "message": "User not found"}],
        )

    return {"message": "Token refreshed successfully", "data": issue_tokens(user.id, settings)}


@router.get("/me", response_model=UserEnvelope)
def me(current_user: User = Depends(get_current_user)):
    return {
        "message": "User information retrieved successfully",
        "data": {"user": UserResponse.model_validate(current_user)},
    }


@router.post("/logout", response_model=MessageResponse)
def logout(current_user: User = Depends(get_current_user)):
    # tokens sans état : le client supprime le sien, rien à invalider côté serveur
    return {
        "message": "Logout successful",
        "data": {"message": "Please remove the token from client storage"},
    }


@router.post("/change-password", response_model=MessageResponse)
def change_password(
    current_user: User = Depends(get_current_user),
    payload: dict = Depends(validated_body(CHANGE_PASSWORD_RULES)),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings)
):
    if not current_user.verify_password(payload["currentPassword"]):
        raise AuthenticationError(
            "Invalid current password",
            errors=[{"field": "currentPassword", "message": "Current password is incorrect"}],
        )

    current_user.update_password(db, payload["newPassword"], rounds=settings.BCRYPT_ROUNDS)
    logger.info("User %s changed password", current_user.id)

    return {
        "message": "Password changed successfully",
        "data": {"message": "Your password has been updated"},
    }
