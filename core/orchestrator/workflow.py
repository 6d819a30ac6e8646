"""Document session workflow: upload, questionnaire, conversation, finalize."""

from __future__ import annotations

import logging
import threading
import uuid
from collections.abc import Callable, Iterator, Mapping, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import PurePath
from typing import Any

from core.config.settings import AppSettings
from core.llm.completion import CompletionClient
from core.orchestrator.questions import build_conversation_messages, generate_question
from core.render.docx_renderer import render_filled_document
from core.render.html_preview import render_html
from core.render.models import ReplaceReport
from core.sessions.models import DocumentSession, QuestionnaireState
from core.sessions.store import SessionStore
from core.templates.discovery import DiscoveryStrategy, build_strategies, discover_placeholders
from core.templates.models import Placeholder
from core.templates.normalizer import normalize_document_xml
from core.utils.docx_xml import DocxContainer
from core.utils.errors import (
    InvalidStateError,
    MissingValuesError,
    NotFoundError,
    UpstreamServiceError,
    ValidationError,
)

logger = logging.getLogger("docfill.workflow")

COMPLETED_MESSAGE = "All placeholders captured. Review the preview and download the document."


@dataclass(frozen=True)
class UploadResult:
    document_id: str
    placeholders: list[Placeholder]
    preview_html: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "document_id": self.document_id,
            "placeholders": [placeholder.to_dict() for placeholder in self.placeholders],
            "preview_html": self.preview_html,
        }


@dataclass(frozen=True)
class QuestionnaireTurn:
    done: bool
    message: str | None = None
    placeholder_id: str | None = None
    preview_html: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "done": self.done,
            "message": self.message,
            "placeholder_id": self.placeholder_id,
            "preview_html": self.preview_html,
        }


@dataclass(frozen=True)
class FinalizeResult:
    document_id: str
    preview_html: str
    replace_report: ReplaceReport = field(repr=False)


@dataclass(frozen=True)
class DownloadResult:
    filename: str
    content: bytes
    finalized: bool


class DocumentWorkflow:
    """Runs every session operation against an injected store.

    Operations on one document id are serialized with a per-id lock; different
    documents proceed in parallel.
    """

    def __init__(
        self,
        store: SessionStore,
        *,
        settings: AppSettings | None = None,
        client: CompletionClient | None = None,
        strategies: Sequence[DiscoveryStrategy] | None = None,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        self._store = store
        self._settings = settings or AppSettings()
        self._client = client
        self._strategies = list(strategies or build_strategies(self._settings, client))
        self._id_factory = id_factory or (lambda: uuid.uuid4().hex)
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def upload(self, filename: str | None, data: bytes) -> UploadResult:
        """Ingest a template, render its preview and discover placeholders once."""

        if not filename or not filename.lower().endswith(".docx"):
            raise ValidationError(
                "only .docx files are supported", detail={"filename": filename}
            )
        if not data:
            raise ValidationError("uploaded file is empty", detail={"filename": filename})

        container = DocxContainer.from_bytes(data)
        xml = container.read_main_part()

        session = DocumentSession(
            document_id=self._id_factory(),
            filename=filename,
            original_bytes=data,
        )
        session.preview_html = render_html(data)
        session.normalized_text = normalize_document_xml(xml)

        session.state = "discovering"
        result = discover_placeholders(session.normalized_text, self._strategies)
        session.placeholders = list(result.placeholders)
        session.metadata = dict(result.metadata)
        session.discovery_source = result.source
        session.state = "ready"

        self._store.put(session)
        logger.info(
            "uploaded document %s: %d placeholders via %s",
            session.document_id,
            len(session.placeholders),
            result.source,
        )
        return UploadResult(
            document_id=session.document_id,
            placeholders=list(session.placeholders),
            preview_html=session.preview_html,
        )

    def get_summary(self, document_id: str) -> dict[str, Any]:
        return self._require(document_id).summary()

    def start_questionnaire(self, document_id: str) -> QuestionnaireTurn:
        """Begin (or restart) the sequential flow, skipping already answered ids."""

        with self._document_lock(document_id):
            session = self._require(document_id)
            known_ids = [placeholder.id for placeholder in session.placeholders]
            state = QuestionnaireState(
                order=known_ids,
                values={
                    key: value for key, value in session.last_values.items() if key in known_ids
                },
            )
            state.skip_answered()
            session.questionnaire = state
            session.state = "answering"
            turn = self._next_turn(session)
            self._store.put(session)
            return turn

    def submit_answer(self, document_id: str, answer: str | None) -> QuestionnaireTurn:
        """Record the answer for the current placeholder and move on."""

        with self._document_lock(document_id):
            session = self._require(document_id)
            state = session.questionnaire
            if state is None or state.done or session.state != "answering":
                raise InvalidStateError(
                    "no questionnaire is active for this document",
                    detail={"document_id": document_id, "state": session.state},
                )

            text = (answer or "").strip()
            if not text:
                raise ValidationError("answer must not be empty", detail={"field": "answer"})

            current_id = state.current_id
            if current_id is None:
                raise InvalidStateError(
                    "questionnaire has no current placeholder",
                    detail={"document_id": document_id},
                )
            snapshot = (state.index, dict(state.values), len(state.history))

            try:
                state.history.append({"role": "user", "content": text})
                state.values[current_id] = text
                state.index += 1
                state.skip_answered()
                turn = self._next_turn(session)
            except Exception:
                state.index, state.values = snapshot[0], snapshot[1]
                del state.history[snapshot[2] :]
                raise

            self._store.put(session)
            return turn

    def converse(
        self,
        document_id: str,
        placeholder_id: str,
        messages: Sequence[Mapping[str, object]],
    ) -> str:
        """Free-form assistant turn about one placeholder. No static fallback exists."""

        session = self._require(document_id)
        placeholder = session.find_placeholder(placeholder_id)
        if placeholder is None:
            raise NotFoundError(
                "placeholder not found",
                detail={"document_id": document_id, "placeholder_id": placeholder_id},
            )
        if self._client is None:
            raise UpstreamServiceError("text-completion service is not configured")

        return self._client.chat(build_conversation_messages(placeholder, messages))

    def finalize(self, document_id: str, values: Mapping[str, str]) -> FinalizeResult:
        """Fill every placeholder from ``values``; all ids need a non-empty value."""

        with self._document_lock(document_id):
            session = self._require(document_id)
            missing = [
                placeholder
                for placeholder in session.placeholders
                if not str(values.get(placeholder.id) or "").strip()
            ]
            if missing:
                labels = [placeholder.label for placeholder in missing]
                raise MissingValuesError(
                    f"missing values for: {', '.join(labels)}",
                    missing_labels=labels,
                    missing_ids=[placeholder.id for placeholder in missing],
                )
            result = self._finalize_locked(session, values)
            # A direct finalize ends any questionnaire in progress.
            session.questionnaire = None
            self._store.put(session)
            return result

    def download(self, document_id: str) -> DownloadResult:
        """Filled package when finalized, otherwise the original upload."""

        session = self._require(document_id)
        stem = PurePath(session.filename).stem or session.document_id
        if session.filled_bytes is not None:
            return DownloadResult(
                filename=f"{stem}-filled.docx", content=session.filled_bytes, finalized=True
            )
        return DownloadResult(
            filename=f"{stem}.docx", content=session.original_bytes, finalized=False
        )

    def evict(self, document_id: str) -> None:
        with self._document_lock(document_id):
            if not self._store.delete(document_id):
                raise NotFoundError("document not found", detail={"document_id": document_id})
        with self._locks_guard:
            self._locks.pop(document_id, None)

    def _next_turn(self, session: DocumentSession) -> QuestionnaireTurn:
        state = session.questionnaire
        if state is None:
            raise InvalidStateError(
                "no questionnaire is active for this document",
                detail={"document_id": session.document_id},
            )

        if state.done:
            result = self._finalize_locked(session, state.values)
            state.history.append({"role": "assistant", "content": COMPLETED_MESSAGE})
            return QuestionnaireTurn(
                done=True, message=COMPLETED_MESSAGE, preview_html=result.preview_html
            )

        placeholder_id = state.current_id
        placeholder = session.find_placeholder(placeholder_id or "")
        if placeholder is None:
            raise InvalidStateError(
                "questionnaire points at an unknown placeholder",
                detail={"document_id": session.document_id, "placeholder_id": placeholder_id},
            )
        question = generate_question(
            placeholder,
            self._client,
            use_llm=self._settings.questionnaire.llm_questions,
        )
        state.history.append({"role": "assistant", "content": question})
        return QuestionnaireTurn(done=False, message=question, placeholder_id=placeholder.id)

    def _finalize_locked(
        self, session: DocumentSession, values: Mapping[str, str]
    ) -> FinalizeResult:
        known_ids = {placeholder.id for placeholder in session.placeholders}
        applied = {key: str(value) for key, value in values.items() if key in known_ids}

        # Always from the original bytes; nothing is assigned until rendering succeeds.
        output = render_filled_document(
            session.original_bytes, session.placeholders, session.metadata, applied
        )
        filled_html = render_html(output.docx_bytes)

        session.filled_bytes = output.docx_bytes
        session.filled_html = filled_html
        session.last_values = applied
        session.replace_report = output.replace_report
        session.state = "finalized"
        self._store.put(session)

        logger.info(
            "finalized document %s: replaced=%d unmatched=%d",
            session.document_id,
            output.replace_report.summary.replaced_count,
            output.replace_report.summary.unmatched_count,
        )
        return FinalizeResult(
            document_id=session.document_id,
            preview_html=filled_html,
            replace_report=output.replace_report,
        )

    def _require(self, document_id: str) -> DocumentSession:
        session = self._store.get(document_id)
        if session is None:
            raise NotFoundError("document not found", detail={"document_id": document_id})
        return session

    @contextmanager
    def _document_lock(self, document_id: str) -> Iterator[None]:
        with self._locks_guard:
            lock = self._locks.get(document_id)
            if lock is None:
                # Locks exist only for stored documents.
                self._require(document_id)
                lock = self._locks[document_id] = threading.Lock()
        with lock:
            yield
