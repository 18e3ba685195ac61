"""
Process-wide objects created at startup and stored on app.state
"""
from fastapi import Request

from conditions.core.exceptions import MassifDirectoryError
from conditions.domain.massif_directory import MassifDirectory
from conditions.state_machine.session_store import ConversationSessionStore


def get_massif_directory(request: Request) -> MassifDirectory:
    directory = getattr(request.app.state, "directory", None)
    if directory is None:
        raise MassifDirectoryError("Massif directory is not loaded")
    return directory


def get_session_store(request: Request) -> ConversationSessionStore:
    sessions = getattr(request.app.state, "sessions", None)
    if sessions is None:
        sessions = ConversationSessionStore()
        request.app.state.sessions = sessions
    return sessions
