from datetime import timedelta
import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.settings import Settings
from app.db import GetDb
from app.modules.auth.deps import GetSettings, NowUtc, RequireAuthenticated, UserContext
from app.modules.auth.models import RefreshToken, User
from app.modules.auth.schemas import (
    LoginRequest,
    RefreshRequest,
    RegisterRequest,
    TokenResponse,
    UserOut,
)
from app.modules.auth.service import (
    CreateAccessToken,
    CreateRefreshToken,
    HashPassword,
    HashRefreshToken,
    VerifyPassword,
    VerifyRefreshToken,
)

router = APIRouter(prefix="/api/auth", tags=["auth"])
logger = logging.getLogger("app.auth")


def _IssueTokens(db: Session, settings: Settings, user: User) -> TokenResponse:
    access_token, expires_in = CreateAccessToken(settings, user.Id, user.Username, user.Email)
    refresh_token = CreateRefreshToken()
    expires_at = NowUtc() + timedelta(days=settings.JwtRefreshTtlDays)
    db.add(
        RefreshToken(
            UserId=user.Id,
            TokenHash=HashRefreshToken(refresh_token),
            ExpiresAt=expires_at,
        )
    )
    db.commit()
    return TokenResponse(
        AccessToken=access_token,
        RefreshToken=refresh_token,
        ExpiresIn=expires_in,
        UserId=user.Id,
        Username=user.Username,
        Email=user.Email,
    )


@router.post("/register", response_model=UserOut, status_code=status.HTTP_201_CREATED)
def Register(
    payload: RegisterRequest,
    db: Session = Depends(GetDb),
    settings: Settings = Depends(GetSettings),
) -> UserOut:
    username = payload.Username.strip()
    email = payload.Email.strip().lower()
    if not username:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Username required")

    if len(payload.Password) < settings.PasswordMinLength:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Password must be at least {settings.PasswordMinLength} characters",
        )

    existing = (
        db.query(User)
        .filter((User.Username == username) | (User.Email == email))
        .first()
    )
    if existing:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Username or email already exists")

    record = User(
        Username=username,
        Email=email,
        PasswordHash=HashPassword(payload.Password),
    )
    db.add(record)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Username or email already exists")
    db.refresh(record)
    logger.info("registered user %s", record.Id)

    return UserOut(Id=record.Id, Username=record.Username, Email=record.Email, CreatedAt=record.CreatedAt)


@router.post("/login", response_model=TokenResponse)
def Login(
    payload: LoginRequest,
    db: Session = Depends(GetDb),
    settings: Settings = Depends(GetSettings),
) -> TokenResponse:
    email = payload.Email.strip().lower()
    user = db.query(User).filter(User.Email == email).first()
    if not user or not VerifyPassword(payload.Password, user.PasswordHash):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
    return _IssueTokens(db, settings, user)


@router.post("/refresh", response_model=TokenResponse)
def Refresh(
    payload: RefreshRequest,
    db: Session = Depends(GetDb),
    settings: Settings = Depends(GetSettings),
) -> TokenResponse:
    now = NowUtc()
    tokens = (
        db.query(RefreshToken)
        .filter(RefreshToken.RevokedAt.is_(None), RefreshToken.ExpiresAt > now)
        .all()
    )
    matched = None
    for token in tokens:
        if VerifyRefreshToken(payload.RefreshToken, token.TokenHash):
            matched = token
            break

    if not matched:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid refresh token")

    user = db.query(User).filter(User.Id == matched.UserId).first()
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")

    matched.RevokedAt = now
    return _IssueTokens(db, settings, user)


@router.post("/logout")
def Logout(
    payload: RefreshRequest,
    user: UserContext = Depends(RequireAuthenticated),
    db: Session = Depends(GetDb),
) -> dict:
    tokens = db.query(RefreshToken).filter(RefreshToken.UserId == user.Id, RefreshToken.RevokedAt.is_(None)).all()
    for token in tokens:
        if VerifyRefreshToken(payload.RefreshToken, token.TokenHash):
            token.RevokedAt = NowUtc()
            db.add(token)
            db.commit()
            return {"status": "ok"}
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Refresh token not found")


@router.get("/me", response_model=UserOut)
def Me(user: UserContext = Depends(RequireAuthenticated), db: Session = Depends(GetDb)) -> UserOut:
    record = db.query(User).filter(User.Id == user.Id).first()
    if not record:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return UserOut(Id=record.Id, Username=record.Username, Email=record.Email, CreatedAt=record.CreatedAt)
