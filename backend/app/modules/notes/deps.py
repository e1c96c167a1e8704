from fastapi import Request

from app.modules.notes.services.notes_service import NotesService


def GetNotesService(request: Request) -> NotesService:
    return request.app.state.notes_service
