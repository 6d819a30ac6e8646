"""Document session storage."""

from __future__ import annotations

import threading
from typing import Protocol

from core.sessions.models import DocumentSession


class SessionStore(Protocol):
    """Keyed storage for document sessions."""

    def get(self, document_id: str) -> DocumentSession | None:
        """Return the session or None."""

    def put(self, session: DocumentSession) -> None:
        """Insert or overwrite a session under its document id."""

    def delete(self, document_id: str) -> bool:
        """Remove a session; return whether it existed."""

    def list_ids(self) -> list[str]:
        """Return stored document ids in stable order."""


class InMemorySessionStore:
    """Process-lifetime store backed by a dict."""

    def __init__(self) -> None:
        self._sessions: dict[str, DocumentSession] = {}
        self._lock = threading.Lock()

    def get(self, document_id: str) -> DocumentSession | None:
        with self._lock:
            return self._sessions.get(document_id)

    def put(self, session: DocumentSession) -> None:
        with self._lock:
            self._sessions[session.document_id] = session

    def delete(self, document_id: str) -> bool:
        with self._lock:
            return self._sessions.pop(document_id, None) is not None

    def list_ids(self) -> list[str]:
        with self._lock:
            return sorted(self._sessions)
