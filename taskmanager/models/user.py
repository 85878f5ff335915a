from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from typing import Optional, Tuple
from taskmanager.core.database import Base, utcnow
from taskmanager.core.errors import map_database_error
from taskmanager.core.validation import is_valid_email, check_password_strength
import bcrypt

# bcrypt ne lit que les 72 premiers octets
BCRYPT_MAX_BYTES = 72


def normalize_email(email: str) -> str:
    return email.strip().lower()


def _password_bytes(password: str) -> bytes:
    return password.encode("utf-8")[:BCRYPT_MAX_BYTES]


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password = Column(String(255), nullable=False)  # hash bcrypt, jamais en clair
    created_at = Column(DateTime, default=utcnow, nullable=False)

    @classmethod
    def create(cls, db: Session, email: str, password: str, rounds: int = 12) -> "User":
        user = cls(email=normalize_email(email))
        user.set_password(password, rounds)
        db.add(user)
        try:
            db.commit()
        except IntegrityError as e:
            db.rollback()
            # email déjà pris -> ConflictError
            raise map_database_error(e) from e
        db.refresh(user)
        return user

    @classmethod
    def find_by_email(cls, db: Session, email: str) -> Optional["User"]:
        return db.query(cls).filter(cls.email == normalize_email(email)).first()

    @classmethod
    def find_by_id(cls, db: Session, user_id: int) -> Optional["User"]:
        return db.get(cls, user_id)

    def set_password(self, password: str, rounds: int = 12):
        self.password = bcrypt.hashpw(_password_bytes(password), bcrypt.gensalt(rounds)).decode()

    def verify_password(self, password: str) -> bool:
        if not isinstance(password, str) or not self.password:
            return False
        try:
            return bcrypt.checkpw(_password_bytes(password), self.password.encode())
        except ValueError:
            # hash corrompu
            return False

    def update_password(self, db: Session, new_password: str, rounds: int = 12):
        # le mot de passe actuel doit déjà avoir été vérifié par l'appelant
        self.set_password(new_password, rounds)
        db.commit()

    def delete(self, db: Session):
        db.delete(self)
        db.commit()

    @staticmethod
    def validate_email(email) -> bool:
        return is_valid_email(email)

    @staticmethod
    def validate_password(password) -> Tuple[bool, Optional[str]]:
        message = check_password_strength(password)
        return message is None, message
