from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from app.db import Base


class User(Base):
    __tablename__ = "users"

    Id = Column(Integer, primary_key=True, index=True)
    Username = Column(String(50), nullable=False, unique=True, index=True)
    Email = Column(String(254), nullable=False, unique=True, index=True)
    PasswordHash = Column(String(255), nullable=False)
    CreatedAt = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    UpdatedAt = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    RefreshTokens = relationship("RefreshToken", back_populates="User", cascade="all, delete-orphan")


class RefreshToken(Base):
    __tablename__ = "refresh_tokens"

    Id = Column(Integer, primary_key=True, index=True)
    UserId = Column(Integer, ForeignKey("users.Id", ondelete="CASCADE"), nullable=False, index=True)
    TokenHash = Column(String(255), nullable=False)
    CreatedAt = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    ExpiresAt = Column(DateTime(timezone=True), nullable=False)
    RevokedAt = Column(DateTime(timezone=True))

    User = relationship("User", back_populates="RefreshTokens")
