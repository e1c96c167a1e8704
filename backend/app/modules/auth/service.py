import secrets
from datetime import timedelta

import jwt
from passlib.context import CryptContext

from app.core.settings import Settings
from app.modules.auth.deps import NowUtc

pwd_context = CryptContext(schemes=["argon2"], deprecated="auto")


def HashPassword(password: str) -> str:
    return pwd_context.hash(password)


def VerifyPassword(password: str, password_hash: str) -> bool:
    return pwd_context.verify(password, password_hash)


def CreateAccessToken(settings: Settings, user_id: int, username: str, email: str) -> tuple[str, int]:
    ttl_minutes = settings.JwtAccessTtlMinutes
    now = NowUtc()
    expires = now + timedelta(minutes=ttl_minutes)
    payload = {
        "sub": str(user_id),
        "username": username,
        "email": email,
        "iat": int(now.timestamp()),
        "exp": int(expires.timestamp()),
    }
    token = jwt.encode(payload, settings.JwtSecretKey, algorithm="HS256")
    return token, ttl_minutes * 60


def CreateRefreshToken() -> str:
    return secrets.token_urlsafe(48)


def HashRefreshToken(token: str) -> str:
    return pwd_context.hash(token)


def VerifyRefreshToken(token: str, token_hash: str) -> bool:
    return pwd_context.verify(token, token_hash)
