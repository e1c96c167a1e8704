from datetime import datetime
from typing import Any, List, Optional
from pydantic import BaseModel, Field


# Note schemas
class NoteOut(BaseModel):
    Id: int
    UserId: int
    Title: str
    Content: str
    Version: int
    CreatedAt: datetime
    UpdatedAt: datetime

    class Config:
        from_attributes = True


class NoteMediaOut(BaseModel):
    Id: int
    FileName: str
    MimeType: str
    Size: int
    CreatedAt: datetime

    class Config:
        from_attributes = True


class NoteDetailOut(NoteOut):
    Permission: str
    Media: List[NoteMediaOut] = Field(default_factory=list)


class PaginationOut(BaseModel):
    Total: int
    Page: int
    Limit: int
    TotalPages: int


class NoteListOut(BaseModel):
    Notes: List[NoteOut]
    Pagination: PaginationOut


class NoteSearchOut(BaseModel):
    Keyword: str
    Count: int
    Notes: List[NoteOut]


# Version schemas
class NoteVersionOut(BaseModel):
    Id: int
    NoteId: int
    Title: str
    Content: str
    VersionNumber: int
    CreatedBy: int
    CreatedAt: datetime

    class Config:
        from_attributes = True


class NoteVersionListOut(BaseModel):
    NoteId: int
    Count: int
    Versions: List[NoteVersionOut]


class RevertRequest(BaseModel):
    NoteId: int = Field(..., ge=1)
    RevertVersion: int = Field(..., ge=1)


# Share schemas
class ShareRequest(BaseModel):
    NoteId: int = Field(..., ge=1)
    UserId: int = Field(..., ge=1)
    Permission: str = Field(..., max_length=10)


class NoteShareOut(BaseModel):
    Id: int
    NoteId: int
    UserId: int
    Permission: str
    CreatedAt: datetime
    UpdatedAt: datetime

    class Config:
        from_attributes = True


# Envelope
class ApiResponse(BaseModel):
    success: bool = True
    message: str
    data: Optional[Any] = None
    cached: bool = False
