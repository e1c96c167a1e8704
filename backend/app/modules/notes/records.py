"""Plain value records handed between the note services.

ORM rows stay inside the stores; everything crossing a service boundary is
one of these frozen dataclasses.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from app.modules.notes.models import Note, NoteMedia, NoteShare, NoteVersion


@dataclass(frozen=True)
class NoteRecord:
    Id: int
    UserId: int
    Title: str
    Content: str
    Version: int
    DeletedAt: datetime | None
    CreatedAt: datetime
    UpdatedAt: datetime

    @classmethod
    def FromRow(cls, note: Note) -> "NoteRecord":
        return cls(
            Id=note.Id,
            UserId=note.UserId,
            Title=note.Title,
            Content=note.Content,
            Version=note.Version,
            DeletedAt=note.DeletedAt,
            CreatedAt=note.CreatedAt,
            UpdatedAt=note.UpdatedAt,
        )


@dataclass(frozen=True)
class VersionRecord:
    Id: int
    NoteId: int
    Title: str
    Content: str
    VersionNumber: int
    CreatedBy: int
    CreatedAt: datetime

    @classmethod
    def FromRow(cls, version: NoteVersion) -> "VersionRecord":
        return cls(
            Id=version.Id,
            NoteId=version.NoteId,
            Title=version.Title,
            Content=version.Content,
            VersionNumber=version.VersionNumber,
            CreatedBy=version.CreatedBy,
            CreatedAt=version.CreatedAt,
        )


@dataclass(frozen=True)
class ShareRecord:
    Id: int
    NoteId: int
    UserId: int
    Permission: str
    CreatedAt: datetime
    UpdatedAt: datetime

    @classmethod
    def FromRow(cls, share: NoteShare) -> "ShareRecord":
        return cls(
            Id=share.Id,
            NoteId=share.NoteId,
            UserId=share.UserId,
            Permission=share.Permission,
            CreatedAt=share.CreatedAt,
            UpdatedAt=share.UpdatedAt,
        )


@dataclass(frozen=True)
class MediaRecord:
    Id: int
    NoteId: int
    FileName: str
    MimeType: str
    Size: int
    CreatedAt: datetime

    @classmethod
    def FromRow(cls, media: NoteMedia) -> "MediaRecord":
        return cls(
            Id=media.Id,
            NoteId=media.NoteId,
            FileName=media.FileName,
            MimeType=media.MimeType,
            Size=media.Size,
            CreatedAt=media.CreatedAt,
        )


@dataclass(frozen=True)
class MediaUpload:
    FileName: str
    MimeType: str
    Data: bytes

    @property
    def Size(self) -> int:
        return len(self.Data)


@dataclass(frozen=True)
class AccessDecision:
    Permission: str
    Note: NoteRecord


@dataclass(frozen=True)
class UpdateResult:
    Note: NoteRecord
    Changed: bool
