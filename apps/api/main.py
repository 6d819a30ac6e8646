"""FastAPI wrapper for the docfill document workflow."""

from __future__ import annotations

import asyncio
import json
import logging
import os
import threading
import uuid
from pathlib import Path
from typing import Annotated, Any, TypeVar
from urllib.parse import quote

from fastapi import FastAPI, File, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from core.config.settings import load_settings
from core.llm.completion import build_completion_client
from core.orchestrator.workflow import DocumentWorkflow
from core.sessions.store import InMemorySessionStore
from core.utils.errors import DocfillError

app = FastAPI(title="docfill-agent API", version="0.1.0")
logger = logging.getLogger("docfill.api")

REQUEST_ID_HEADER = "X-Docfill-Request-Id"
DOCX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"

_DEFAULT_MAX_UPLOAD_BYTES = 8 * 1024 * 1024
_ZIP_MAGIC = b"PK\x03\x04"

_STATUS_BY_ERROR_CODE = {
    "INVALID_ARGUMENT": 400,
    "NOT_FOUND": 404,
    "INVALID_CONTAINER": 415,
    "INVALID_STATE": 409,
    "UPSTREAM_ERROR": 502,
}

_ModelT = TypeVar("_ModelT", bound=BaseModel)


class ApiRequestError(Exception):
    def __init__(
        self,
        *,
        status_code: int,
        error_code: str,
        message: str,
        detail: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.error_code = error_code
        self.message = message
        self.detail = detail or {}


class AnswerRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    answer: str


class ChatTurn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    role: str
    content: str


class ConversationRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    placeholder_id: str = Field(min_length=1)
    messages: list[ChatTurn] = Field(default_factory=list)


class FinalizeRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    values: dict[str, str]


_workflow_lock = threading.Lock()
_workflow_cache: DocumentWorkflow | None = None


def _cors_enabled() -> bool:
    raw = os.getenv("DOCFILL_ENABLE_CORS", "0").strip().lower()
    return raw in {"1", "true", "on", "yes"}


def _cors_allow_origins() -> list[str]:
    raw = os.getenv("DOCFILL_CORS_ALLOW_ORIGINS", "http://localhost:5173")
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


# Registered before the request id middleware so preflight responses still get an id.
if _cors_enabled():
    app.add_middleware(
        CORSMiddleware,
        allow_origins=_cors_allow_origins(),
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=[REQUEST_ID_HEADER, "Content-Disposition"],
    )


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    """Ensure every response has a request id header."""

    request_id = uuid.uuid4().hex
    request.state.request_id = request_id
    try:
        response = await call_next(request)
    except Exception:  # noqa: BLE001
        _log_event(
            logging.ERROR,
            "error",
            request_id,
            error_code="INTERNAL_ERROR",
            status_code=500,
            failure_stage="middleware",
        )
        response = _error_response(
            status_code=500,
            error_code="INTERNAL_ERROR",
            message="internal server error",
            request_id=request_id,
            detail={"path": request.url.path},
        )
    response.headers.setdefault(REQUEST_ID_HEADER, request_id)
    return response


@app.get("/healthz")
async def healthz() -> dict[str, str]:
    """Liveness endpoint."""

    return {"status": "ok"}


@app.post("/v1/documents", response_model=None)
async def upload_document(
    request: Request,
    file: Annotated[UploadFile, File(...)],
) -> JSONResponse:
    """Store a template, discover its placeholders and return the preview."""

    request_id = _request_id_from_request(request)
    failure_stage = "upload"
    try:
        max_upload_bytes = _max_upload_bytes()
        _validate_upload_name(file.filename, field_name="file")
        data = _read_upload_with_limit(upload=file, max_bytes=max_upload_bytes, field_name="file")
        if data[:4] != _ZIP_MAGIC:
            raise ApiRequestError(
                status_code=415,
                error_code="INVALID_MEDIA_TYPE",
                message="file must be a valid .docx file",
                detail={"field": "file"},
            )

        _log_event(
            logging.INFO,
            "start",
            request_id,
            operation="upload",
            filename=file.filename,
            size_bytes=len(data),
            max_upload_bytes=max_upload_bytes,
        )

        failure_stage = "discover"
        workflow = _get_workflow()
        result = await asyncio.to_thread(workflow.upload, file.filename, data)

        _log_event(
            logging.INFO,
            "done",
            request_id,
            operation="upload",
            document_id=result.document_id,
            placeholder_count=len(result.placeholders),
        )
        return _json_response(result.to_dict(), request_id=request_id, status_code=201)
    except Exception as exc:  # noqa: BLE001
        return _failure_response(
            exc, request_id=request_id, failure_stage=failure_stage, operation="upload"
        )


@app.get("/v1/documents/{document_id}", response_model=None)
async def get_document(request: Request, document_id: str) -> JSONResponse:
    """Session summary."""

    request_id = _request_id_from_request(request)
    try:
        summary = await asyncio.to_thread(_get_workflow().get_summary, document_id)
        return _json_response(summary, request_id=request_id)
    except Exception as exc:  # noqa: BLE001
        return _failure_response(
            exc,
            request_id=request_id,
            failure_stage="lookup",
            operation="get",
            document_id=document_id,
        )


@app.delete("/v1/documents/{document_id}", response_model=None)
async def delete_document(request: Request, document_id: str) -> JSONResponse:
    request_id = _request_id_from_request(request)
    try:
        await asyncio.to_thread(_get_workflow().evict, document_id)
        _log_event(logging.INFO, "done", request_id, operation="evict", document_id=document_id)
        return _json_response({"document_id": document_id, "deleted": True}, request_id=request_id)
    except Exception as exc:  # noqa: BLE001
        return _failure_response(
            exc,
            request_id=request_id,
            failure_stage="evict",
            operation="evict",
            document_id=document_id,
        )


@app.post("/v1/documents/{document_id}/questionnaire/start", response_model=None)
async def start_questionnaire(request: Request, document_id: str) -> JSONResponse:
    """Return the first unanswered question, or the filled preview when none remain."""

    request_id = _request_id_from_request(request)
    try:
        _log_event(
            logging.INFO,
            "start",
            request_id,
            operation="questionnaire_start",
            document_id=document_id,
        )
        turn = await asyncio.to_thread(_get_workflow().start_questionnaire, document_id)
        _log_event(
            logging.INFO,
            "done",
            request_id,
            operation="questionnaire_start",
            document_id=document_id,
            done=turn.done,
        )
        return _json_response(turn.to_dict(), request_id=request_id)
    except Exception as exc:  # noqa: BLE001
        return _failure_response(
            exc,
            request_id=request_id,
            failure_stage="questionnaire",
            operation="questionnaire_start",
            document_id=document_id,
        )


@app.post("/v1/documents/{document_id}/questionnaire/answer", response_model=None)
async def answer_questionnaire(request: Request, document_id: str) -> JSONResponse:
    request_id = _request_id_from_request(request)
    failure_stage = "parse_body"
    try:
        body = await _parse_body(request, AnswerRequest)

        failure_stage = "questionnaire"
        _log_event(
            logging.INFO,
            "start",
            request_id,
            operation="questionnaire_answer",
            document_id=document_id,
        )
        turn = await asyncio.to_thread(_get_workflow().submit_answer, document_id, body.answer)
        _log_event(
            logging.INFO,
            "done",
            request_id,
            operation="questionnaire_answer",
            document_id=document_id,
            done=turn.done,
        )
        return _json_response(turn.to_dict(), request_id=request_id)
    except Exception as exc:  # noqa: BLE001
        return _failure_response(
            exc,
            request_id=request_id,
            failure_stage=failure_stage,
            operation="questionnaire_answer",
            document_id=document_id,
        )


@app.post("/v1/documents/{document_id}/conversation", response_model=None)
async def converse(request: Request, document_id: str) -> JSONResponse:
    """One free-form assistant turn about a single placeholder."""

    request_id = _request_id_from_request(request)
    failure_stage = "parse_body"
    try:
        body = await _parse_body(request, ConversationRequest)

        failure_stage = "completion"
        _log_event(
            logging.INFO,
            "start",
            request_id,
            operation="conversation",
            document_id=document_id,
            placeholder_id=body.placeholder_id,
            message_count=len(body.messages),
        )
        reply = await asyncio.to_thread(
            _get_workflow().converse,
            document_id,
            body.placeholder_id,
            [turn.model_dump() for turn in body.messages],
        )
        _log_event(
            logging.INFO, "done", request_id, operation="conversation", document_id=document_id
        )
        return _json_response({"assistant_message": reply}, request_id=request_id)
    except Exception as exc:  # noqa: BLE001
        return _failure_response(
            exc,
            request_id=request_id,
            failure_stage=failure_stage,
            operation="conversation",
            document_id=document_id,
        )


@app.post("/v1/documents/{document_id}/finalize", response_model=None)
async def finalize_document(request: Request, document_id: str) -> JSONResponse:
    """Fill the document from the submitted values and return the new preview."""

    request_id = _request_id_from_request(request)
    failure_stage = "parse_body"
    try:
        body = await _parse_body(request, FinalizeRequest)

        failure_stage = "finalize"
        _log_event(
            logging.INFO,
            "start",
            request_id,
            operation="finalize",
            document_id=document_id,
            value_count=len(body.values),
        )
        result = await asyncio.to_thread(_get_workflow().finalize, document_id, body.values)
        summary = result.replace_report.summary
        _log_event(
            logging.INFO,
            "done",
            request_id,
            operation="finalize",
            document_id=document_id,
            replaced_count=summary.replaced_count,
            unmatched_count=summary.unmatched_count,
        )
        return _json_response(
            {
                "document_id": result.document_id,
                "preview_html": result.preview_html,
                "replace_summary": summary.model_dump(),
            },
            request_id=request_id,
        )
    except Exception as exc:  # noqa: BLE001
        return _failure_response(
            exc,
            request_id=request_id,
            failure_stage=failure_stage,
            operation="finalize",
            document_id=document_id,
        )


@app.get("/v1/documents/{document_id}/download", response_model=None)
async def download_document(request: Request, document_id: str) -> Response:
    """Filled document when finalized, otherwise the original upload."""

    request_id = _request_id_from_request(request)
    try:
        result = await asyncio.to_thread(_get_workflow().download, document_id)
        _log_event(
            logging.INFO,
            "done",
            request_id,
            operation="download",
            document_id=document_id,
            finalized=result.finalized,
        )
        return Response(
            content=result.content,
            media_type=DOCX_MEDIA_TYPE,
            headers={
                REQUEST_ID_HEADER: request_id,
                "X-Docfill-Finalized": "1" if result.finalized else "0",
                "Content-Disposition": _content_disposition(result.filename),
            },
        )
    except Exception as exc:  # noqa: BLE001
        return _failure_response(
            exc,
            request_id=request_id,
            failure_stage="download",
            operation="download",
            document_id=document_id,
        )


def _get_workflow() -> DocumentWorkflow:
    global _workflow_cache

    with _workflow_lock:
        if _workflow_cache is None:
            settings = load_settings(_settings_path())
            _workflow_cache = DocumentWorkflow(
                InMemorySessionStore(),
                settings=settings,
                client=build_completion_client(settings.llm),
            )
        return _workflow_cache


def _settings_path() -> Path | None:
    raw = os.getenv("DOCFILL_SETTINGS_PATH")
    if raw is None or not raw.strip():
        return None
    return Path(raw.strip())


def _request_id_from_request(request: Request) -> str:
    request_id = getattr(request.state, "request_id", None)
    if isinstance(request_id, str) and request_id:
        return request_id
    generated = uuid.uuid4().hex
    request.state.request_id = generated
    return generated


async def _parse_body(request: Request, model: type[_ModelT]) -> _ModelT:
    raw = await request.body()
    try:
        payload = json.loads(raw.decode("utf-8")) if raw else None
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ApiRequestError(
            status_code=400,
            error_code="INVALID_JSON",
            message="request body must be valid UTF-8 JSON",
            detail={"error": str(exc)},
        ) from exc

    if not isinstance(payload, dict):
        raise ApiRequestError(
            status_code=400,
            error_code="INVALID_JSON",
            message="request body must be a JSON object",
        )

    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise ApiRequestError(
            status_code=400,
            error_code="INVALID_ARGUMENT",
            message="request body schema validation failed",
            detail={"errors": exc.errors(include_url=False, include_context=False)},
        ) from exc


def _validate_upload_name(filename: str | None, *, field_name: str) -> None:
    if filename is None or not filename.lower().endswith(".docx"):
        raise ApiRequestError(
            status_code=415,
            error_code="INVALID_MEDIA_TYPE",
            message=f"{field_name} must be a .docx file",
            detail={"field": field_name, "filename": filename},
        )


def _read_upload_with_limit(*, upload: UploadFile, max_bytes: int, field_name: str) -> bytes:
    chunks: list[bytes] = []
    total_size = 0

    source = upload.file
    source.seek(0)
    while True:
        chunk = source.read(1024 * 1024)
        if not chunk:
            break
        total_size += len(chunk)
        if total_size > max_bytes:
            raise ApiRequestError(
                status_code=413,
                error_code="UPLOAD_TOO_LARGE",
                message=f"{field_name} exceeds upload size limit",
                detail={
                    "field": field_name,
                    "max_bytes": max_bytes,
                    "received_bytes": total_size,
                },
            )
        chunks.append(chunk)

    source.close()
    return b"".join(chunks)


def _max_upload_bytes() -> int:
    raw = os.getenv("DOCFILL_MAX_UPLOAD_BYTES")
    if raw is None:
        return _DEFAULT_MAX_UPLOAD_BYTES
    try:
        parsed = int(raw)
    except ValueError:
        return _DEFAULT_MAX_UPLOAD_BYTES
    return parsed if parsed > 0 else _DEFAULT_MAX_UPLOAD_BYTES


def _content_disposition(filename: str) -> str:
    fallback = filename.encode("ascii", "ignore").decode("ascii").replace('"', "")
    fallback = fallback or "document.docx"
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename)}"


def _failure_response(
    exc: Exception,
    *,
    request_id: str,
    failure_stage: str,
    operation: str,
    document_id: str | None = None,
) -> JSONResponse:
    if isinstance(exc, ApiRequestError):
        status_code, error_code, message, detail = (
            exc.status_code,
            exc.error_code,
            exc.message,
            exc.detail,
        )
    elif isinstance(exc, DocfillError):
        status_code = _STATUS_BY_ERROR_CODE.get(exc.error_code, 500)
        error_code, message, detail = exc.error_code, exc.message, exc.detail
    else:
        logger.exception("unexpected failure in %s", operation)
        status_code, error_code, message = 500, "INTERNAL_ERROR", "internal server error"
        detail = {"error": str(exc)}

    _log_event(
        logging.ERROR,
        "error",
        request_id,
        operation=operation,
        document_id=document_id,
        error_code=error_code,
        status_code=status_code,
        failure_stage=failure_stage,
    )
    return _error_response(
        status_code=status_code,
        error_code=error_code,
        message=message,
        request_id=request_id,
        detail=detail,
    )


def _dump_json(payload: dict[str, Any]) -> str:
    return json.dumps(payload, ensure_ascii=False, sort_keys=True, separators=(",", ":"))


def _json_response(
    payload: dict[str, Any], *, request_id: str, status_code: int = 200
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        headers={REQUEST_ID_HEADER: request_id},
        content=payload,
    )


def _error_response(
    *,
    status_code: int,
    error_code: str,
    message: str,
    request_id: str,
    detail: dict[str, Any] | None = None,
) -> JSONResponse:
    payload_detail = dict(detail or {})
    payload_detail["request_id"] = request_id

    return JSONResponse(
        status_code=status_code,
        headers={REQUEST_ID_HEADER: request_id},
        content={
            "error_code": error_code,
            "message": message,
            "detail": payload_detail,
        },
    )


def _log_event(level: int, event: str, request_id: str, **fields: Any) -> None:
    payload = {
        "event": event,
        "request_id": request_id,
        **fields,
    }
    logger.log(level, _dump_json(payload))
