from datetime import datetime

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    LargeBinary,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from app.db import Base


class Note(Base):
    __tablename__ = "notes"
    __table_args__ = (
        CheckConstraint("Version >= 1", name="ck_notes_version_positive"),
    )

    Id = Column(Integer, primary_key=True, index=True)
    UserId = Column(Integer, ForeignKey("users.Id", ondelete="CASCADE"), nullable=False, index=True)
    Title = Column(String(255), nullable=False)
    Content = Column(Text, nullable=False)
    Version = Column(Integer, nullable=False, default=1)
    DeletedAt = Column(DateTime, nullable=True, index=True)
    CreatedAt = Column(DateTime, default=datetime.utcnow, nullable=False)
    UpdatedAt = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    versions = relationship("NoteVersion", back_populates="note", cascade="all, delete-orphan", passive_deletes=True)
    shares = relationship("NoteShare", back_populates="note", cascade="all, delete-orphan", passive_deletes=True)
    media = relationship("NoteMedia", back_populates="note", cascade="all, delete-orphan", passive_deletes=True)


class NoteVersion(Base):
    __tablename__ = "note_versions"
    __table_args__ = (
        Index("ix_note_versions_note_version", "NoteId", "VersionNumber"),
    )

    Id = Column(Integer, primary_key=True, index=True)
    NoteId = Column(Integer, ForeignKey("notes.Id", ondelete="CASCADE"), nullable=False)
    Title = Column(String(255), nullable=False)
    Content = Column(Text, nullable=False)
    VersionNumber = Column(Integer, nullable=False, default=1)
    CreatedBy = Column(Integer, ForeignKey("users.Id"), nullable=False)
    CreatedAt = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    note = relationship("Note", back_populates="versions")


class NoteShare(Base):
    __tablename__ = "note_shares"
    __table_args__ = (
        UniqueConstraint("NoteId", "UserId", name="uq_note_shares_note_user"),
    )

    Id = Column(Integer, primary_key=True, index=True)
    NoteId = Column(Integer, ForeignKey("notes.Id", ondelete="CASCADE"), nullable=False)
    UserId = Column(Integer, ForeignKey("users.Id", ondelete="CASCADE"), nullable=False, index=True)
    Permission = Column(String(10), nullable=False, default="READ")
    CreatedAt = Column(DateTime, default=datetime.utcnow, nullable=False)
    UpdatedAt = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    note = relationship("Note", back_populates="shares")


class NoteMedia(Base):
    __tablename__ = "note_media"

    Id = Column(Integer, primary_key=True, index=True)
    NoteId = Column(Integer, ForeignKey("notes.Id", ondelete="CASCADE"), nullable=False, index=True)
    FileName = Column(String(255), nullable=False)
    MimeType = Column(String(100), nullable=False)
    Size = Column(Integer, nullable=False)
    Data = Column(LargeBinary, nullable=False)
    CreatedAt = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    note = relationship("Note", back_populates="media")
