from pydantic import BaseModel, EmailStr, Field

PASSWORD_MIN_LENGTH = 6


class UserRegister(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=PASSWORD_MIN_LENGTH)


class UserLogin(BaseModel):
    email: EmailStr
    password: str


class DevTokenRequest(BaseModel):
    secret: str


class UserOut(BaseModel):
    id: str
    email: str
    token: str
