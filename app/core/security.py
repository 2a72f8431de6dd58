import hmac
from passlib.context import CryptContext
from jose import jwt, JWTError
from datetime import datetime, timedelta, timezone
from typing import Optional
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from app.core.config import settings
from app.core.errors import Unauthorized
from app.schemas.token import TokenData

DEV_USER_ID = "dev-user-id"
DEV_USER_EMAIL = "dev@localhost"

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

bearer_scheme = HTTPBearer(auto_error=False)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(user_id: str, email: str, expires_delta: Optional[timedelta] = None) -> str:
    """Issue a signed JWT asserting the user's id (``sub``) and email."""
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode = {
        "sub": str(user_id),
        "email": email,
        "iss": settings.JWT_ISSUER,
        "aud": settings.JWT_AUDIENCE,
        "iat": now,
        "exp": expire,
    }
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def verify_token(token: str) -> TokenData:
    """Decode a token, checking signature, expiry, issuer and audience."""
    try:
        payload = jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
            audience=settings.JWT_AUDIENCE,
            issuer=settings.JWT_ISSUER,
        )
    except JWTError:
        raise Unauthorized()
    user_id = payload.get("sub")
    if user_id is None:
        raise Unauthorized()
    return TokenData(user_id=user_id, email=payload.get("email"))


def get_current_user(credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)) -> TokenData:
    # Claims only: dev-token identities have no row in the users table
    if credentials is None:
        raise Unauthorized("Not authenticated")
    return verify_token(credentials.credentials)


def dev_secret_matches(secret: Optional[str]) -> bool:
    expected = settings.DEV_TOKEN_SECRET
    if not expected or not secret:
        return False
    return hmac.compare_digest(secret.encode(), expected.encode())
