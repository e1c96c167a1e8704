from dataclasses import dataclass
from datetime import datetime, timezone

import jwt
from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from app.core.settings import Settings
from app.db import GetDb
from app.modules.auth.models import User


def GetSettings(request: Request) -> Settings:
    return request.app.state.settings


def _decode_access_token(token: str, secret: str) -> dict:
    try:
        return jwt.decode(token, secret, algorithms=["HS256"])
    except jwt.ExpiredSignatureError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token expired") from exc
    except jwt.InvalidTokenError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token") from exc


@dataclass(frozen=True)
class UserContext:
    Id: int
    Username: str
    Email: str


def RequireAuthenticated(
    request: Request,
    db: Session = Depends(GetDb),
    settings: Settings = Depends(GetSettings),
) -> UserContext:
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")

    token = auth_header.replace("Bearer ", "", 1).strip()
    payload = _decode_access_token(token, settings.JwtSecretKey)
    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    try:
        user_id = int(user_id)
    except (TypeError, ValueError) as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token") from exc

    user = db.query(User).filter(User.Id == user_id).first()
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")

    return UserContext(Id=user.Id, Username=user.Username, Email=user.Email)


def NowUtc() -> datetime:
    return datetime.now(tz=timezone.utc)
