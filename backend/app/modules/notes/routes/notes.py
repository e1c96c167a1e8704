from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile

from app.core.settings import Settings
from app.modules.auth.deps import GetSettings, RequireAuthenticated, UserContext
from app.modules.notes.deps import GetNotesService
from app.modules.notes.records import MediaUpload
from app.modules.notes.schemas import (
    ApiResponse,
    NoteOut,
    NoteShareOut,
    NoteVersionOut,
    RevertRequest,
    ShareRequest,
)
from app.modules.notes.services.notes_service import NotesService


router = APIRouter(prefix="/api/notes", tags=["notes"])


def _ReadMedia(media: UploadFile | None, settings: Settings) -> MediaUpload | None:
    if media is None or not media.filename:
        return None
    # One byte past the limit is enough for the size check to reject it.
    data = media.file.read(settings.MediaMaxBytes + 1)
    return MediaUpload(
        FileName=media.filename,
        MimeType=media.content_type or "application/octet-stream",
        Data=data,
    )


@router.post("", response_model=ApiResponse, status_code=201)
def CreateNote(
    title: Optional[str] = Form(None),
    content: Optional[str] = Form(None),
    media: Optional[UploadFile] = File(None),
    service: NotesService = Depends(GetNotesService),
    settings: Settings = Depends(GetSettings),
    user: UserContext = Depends(RequireAuthenticated),
):
    """Create a note at version 1."""
    note = service.CreateNote(user, title, content, _ReadMedia(media, settings))
    return ApiResponse(
        message="Note created successfully",
        data=NoteOut.model_validate(note).model_dump(mode="json"),
    )


@router.get("", response_model=ApiResponse)
def ListNotes(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    service: NotesService = Depends(GetNotesService),
    user: UserContext = Depends(RequireAuthenticated),
):
    result, cached = service.ListNotes(user, page, limit)
    return ApiResponse(message="Notes retrieved", data=result.model_dump(mode="json"), cached=cached)


@router.get("/search", response_model=ApiResponse)
def SearchNotes(
    keyword: Optional[str] = Query(None),
    service: NotesService = Depends(GetNotesService),
    user: UserContext = Depends(RequireAuthenticated),
):
    result, cached = service.SearchNotes(user, keyword)
    return ApiResponse(message="Search completed", data=result.model_dump(mode="json"), cached=cached)


@router.post("/revert", response_model=ApiResponse)
def RevertNote(
    data: RevertRequest,
    service: NotesService = Depends(GetNotesService),
    user: UserContext = Depends(RequireAuthenticated),
):
    """Restore an earlier version as a new version."""
    note = service.RevertNote(user, data.NoteId, data.RevertVersion)
    return ApiResponse(
        message=f"Note reverted to version {data.RevertVersion}",
        data=NoteOut.model_validate(note).model_dump(mode="json"),
    )


@router.post("/share", response_model=ApiResponse)
def ShareNote(
    data: ShareRequest,
    service: NotesService = Depends(GetNotesService),
    user: UserContext = Depends(RequireAuthenticated),
):
    share = service.ShareNote(user, data.NoteId, data.UserId, data.Permission)
    return ApiResponse(
        message="Note shared successfully",
        data=NoteShareOut.model_validate(share).model_dump(mode="json"),
    )


@router.get("/{note_id}", response_model=ApiResponse)
def GetNote(
    note_id: int,
    service: NotesService = Depends(GetNotesService),
    user: UserContext = Depends(RequireAuthenticated),
):
    note, cached = service.GetNote(user, note_id)
    return ApiResponse(message="Note retrieved", data=note.model_dump(mode="json"), cached=cached)


@router.put("/{note_id}", response_model=ApiResponse)
def UpdateNote(
    note_id: int,
    title: Optional[str] = Form(None),
    content: Optional[str] = Form(None),
    version: Optional[int] = Form(None),
    media: Optional[UploadFile] = File(None),
    service: NotesService = Depends(GetNotesService),
    settings: Settings = Depends(GetSettings),
    user: UserContext = Depends(RequireAuthenticated),
):
    """Update title and/or content; `version` must match the note's current version."""
    result = service.UpdateNote(user, note_id, version, title, content, _ReadMedia(media, settings))
    message = "Note updated successfully" if result.Changed else "No changes detected"
    return ApiResponse(message=message, data=NoteOut.model_validate(result.Note).model_dump(mode="json"))


@router.delete("/{note_id}", response_model=ApiResponse)
def DeleteNote(
    note_id: int,
    service: NotesService = Depends(GetNotesService),
    user: UserContext = Depends(RequireAuthenticated),
):
    service.DeleteNote(user, note_id)
    return ApiResponse(message="Note deleted successfully")


@router.get("/{note_id}/versions", response_model=ApiResponse)
def ListVersions(
    note_id: int,
    service: NotesService = Depends(GetNotesService),
    user: UserContext = Depends(RequireAuthenticated),
):
    result, cached = service.ListVersions(user, note_id)
    return ApiResponse(message="Versions retrieved", data=result.model_dump(mode="json"), cached=cached)


@router.get("/{note_id}/versions/{version_number}", response_model=ApiResponse)
def GetVersion(
    note_id: int,
    version_number: int,
    service: NotesService = Depends(GetNotesService),
    user: UserContext = Depends(RequireAuthenticated),
):
    version = service.GetVersion(user, note_id, version_number)
    return ApiResponse(
        message="Version retrieved",
        data=NoteVersionOut.model_validate(version).model_dump(mode="json"),
    )


@router.get("/{note_id}/shares", response_model=ApiResponse)
def ListShares(
    note_id: int,
    service: NotesService = Depends(GetNotesService),
    user: UserContext = Depends(RequireAuthenticated),
):
    shares = service.ListShares(user, note_id)
    return ApiResponse(
        message="Shares retrieved",
        data=[NoteShareOut.model_validate(share).model_dump(mode="json") for share in shares],
    )
