from datetime import datetime

from pydantic import BaseModel, Field


class TokenResponse(BaseModel):
    AccessToken: str
    RefreshToken: str
    TokenType: str = "bearer"
    ExpiresIn: int
    UserId: int
    Username: str
    Email: str


class RegisterRequest(BaseModel):
    Username: str = Field(..., min_length=3, max_length=50)
    Email: str = Field(..., max_length=254, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    Password: str = Field(..., max_length=200)


class LoginRequest(BaseModel):
    Email: str = Field(..., max_length=254)
    Password: str = Field(..., max_length=200)


class RefreshRequest(BaseModel):
    RefreshToken: str = Field(..., max_length=400)


class UserOut(BaseModel):
    Id: int
    Username: str
    Email: str
    CreatedAt: datetime
