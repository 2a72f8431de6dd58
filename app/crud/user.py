import logging
from typing import Optional
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from app.core.errors import DuplicateIdentity, InfrastructureError, InvalidCredentials
from app.core.security import hash_password, verify_password
from app.db.models.user import User

logger = logging.getLogger(__name__)

_dummy_hash = None


def _get_dummy_hash() -> str:
    global _dummy_hash
    if _dummy_hash is None:
        _dummy_hash = hash_password("not-a-real-password")
    return _dummy_hash


def normalize_email(email: str) -> str:
    return email.strip().lower()


def get_user_by_email(db: Session, email: str) -> Optional[User]:
    return db.query(User).filter(User.email == normalize_email(email)).first()


def create_user(db: Session, email: str, password: str) -> User:
    if get_user_by_email(db, email):
        raise DuplicateIdentity()
    new_user = User(email=normalize_email(email), password_hash=hash_password(password))
    try:
        db.add(new_user)
        db.commit()
        db.refresh(new_user)
    except IntegrityError:
        # Lost a race with a concurrent registration of the same email
        db.rollback()
        raise DuplicateIdentity()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Database error registering user: %s", e)
        raise InfrastructureError()
    logger.info("Registered user %s", new_user.id)
    return new_user


def authenticate_user(db: Session, email: str, password: str) -> User:
    user = get_user_by_email(db, email)
    if user is None:
        # Unknown emails still pay for one bcrypt check
        verify_password(password, _get_dummy_hash())
        raise InvalidCredentials()
    if not verify_password(password, user.password_hash):
        raise InvalidCredentials()
    return user
