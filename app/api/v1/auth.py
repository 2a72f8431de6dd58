import logging
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from app.core.errors import Unauthorized
from app.core.security import create_access_token, dev_secret_matches, DEV_USER_ID, DEV_USER_EMAIL
from app.crud import user as crud
from app.db.session import get_db
from app.schemas.user import UserRegister, UserLogin, DevTokenRequest, UserOut

logger = logging.getLogger(__name__)

router = APIRouter()


def _user_out(user_id: str, email: str) -> UserOut:
    return UserOut(id=user_id, email=email, token=create_access_token(user_id, email))


@router.post("/register", response_model=UserOut)
def register(user_in: UserRegister, db: Session = Depends(get_db)):
    user = crud.create_user(db, user_in.email, user_in.password)
    return _user_out(user.id, user.email)


@router.post("/login", response_model=UserOut)
def login(credentials: UserLogin, db: Session = Depends(get_db)):
    user = crud.authenticate_user(db, credentials.email, credentials.password)
    return _user_out(user.id, user.email)


@router.post("/dev-token", response_model=UserOut)
def dev_token(body: DevTokenRequest):
    if not dev_secret_matches(body.secret):
        logger.warning("Rejected dev-token request")
        raise Unauthorized("Invalid dev secret")
    return _user_out(DEV_USER_ID, DEV_USER_EMAIL)
