from os import getenv
from datetime import timedelta
import re

DEV_JWT_SECRET = "dev-secret-change-in-prod"

_DURATION_RE = re.compile(r"^\s*(\d+)\s*([smhd]?)\s*$")
_DURATION_UNITS = {"": "seconds", "s": "seconds", "m": "minutes", "h": "hours", "d": "days"}


def parse_duration(value: str) -> timedelta:
    """Convertit une durée type "24h", "15m", "7d" ou "3600" en timedelta"""
    match = _DURATION_RE.match(str(value))
    if not match:
        raise ValueError(f"Invalid duration: {value!r}")
    amount, unit = match.groups()
    return timedelta(**{_DURATION_UNITS[unit]: int(amount)})


class Settings:
    def __init__(self, **overrides):
        self.APP_ENV = getenv("APP_ENV", getenv("NODE_ENV", "development"))
        self.JWT_SECRET = getenv("JWT_SECRET")
        self.JWT_EXPIRES_IN = getenv("JWT_EXPIRES_IN", "24h")  # access token, 24h par défaut
        self.JWT_REFRESH_EXPIRES_IN = getenv("JWT_REFRESH_EXPIRES_IN", "7d")
        self.JWT_ISSUER = "task-management-api"
        self.JWT_AUDIENCE = "task-management-client"
        self.PORT = int(getenv("PORT", "3000"))
        self.CORS_ORIGIN = getenv("CORS_ORIGIN", "*")
        self.DATABASE_URL = getenv("DATABASE_URL", "sqlite+pysqlite:///:memory:")
        self.BCRYPT_ROUNDS = int(getenv("BCRYPT_ROUNDS", "12"))
        self.LOG_LEVEL = getenv("LOG_LEVEL", "INFO")
        # Informatif seulement, pas de limiteur intégré
        self.RATE_LIMIT_WINDOW_MS = int(getenv("RATE_LIMIT_WINDOW_MS", "900000"))
        self.RATE_LIMIT_MAX_REQUESTS = int(getenv("RATE_LIMIT_MAX_REQUESTS", "100"))

        for key, value in overrides.items():
            if not hasattr(self, key):
                raise AttributeError(f"Unknown setting: {key}")
            setattr(self, key, value)

        if not self.JWT_SECRET:
            if self.is_production:
                raise RuntimeError("JWT_SECRET must be set in production")
            self.JWT_SECRET = DEV_JWT_SECRET

        # valide tôt pour ne pas échouer à la première connexion
        parse_duration(self.JWT_EXPIRES_IN)
        parse_duration(self.JWT_REFRESH_EXPIRES_IN)

    @property
    def is_production(self) -> bool:
        return self.APP_ENV == "production"

    @property
    def access_token_lifetime(self) -> timedelta:
        return parse_duration(self.JWT_EXPIRES_IN)

    @property
    def refresh_token_lifetime(self) -> timedelta:
        return parse_duration(self.JWT_REFRESH_EXPIRES_IN)


