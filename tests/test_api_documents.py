from __future__ import annotations

import io
from collections.abc import Sequence

import httpx
import pytest
from docx import Document

import apps.api.main as api_main
from core.config.settings import AppSettings
from core.llm.completion import ChatMessage
from core.orchestrator.workflow import DocumentWorkflow
from core.sessions.store import InMemorySessionStore

DOCX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"


class FakeClient:
    def complete(self, system_prompt: str, user_prompt: str) -> str:
        return "not json"

    def chat(self, messages: Sequence[ChatMessage]) -> str:
        return f"Tell me about {messages[0]['content'].splitlines()[-1]}"


def _build_docx_bytes() -> bytes:
    document = Document()
    paragraph = document.add_paragraph()
    paragraph.add_run("Dear {{client")
    paragraph.add_run("_name}}, sign here: $[__")
    paragraph.add_run("___]")
    buffer = io.BytesIO()
    document.save(buffer)
    return buffer.getvalue()


def _install_workflow(
    monkeypatch: pytest.MonkeyPatch, client: FakeClient | None = None
) -> DocumentWorkflow:
    workflow = DocumentWorkflow(InMemorySessionStore(), settings=AppSettings(), client=client)
    monkeypatch.setattr(api_main, "_workflow_cache", workflow)
    return workflow


def _transport() -> httpx.ASGITransport:
    return httpx.ASGITransport(app=api_main.app)


async def _upload(client: httpx.AsyncClient) -> dict:
    response = await client.post(
        "/v1/documents",
        files={"file": ("contract.docx", _build_docx_bytes(), DOCX_MEDIA_TYPE)},
    )
    assert response.status_code == 201
    return response.json()


@pytest.mark.anyio
async def test_upload_returns_placeholders_and_preview(monkeypatch: pytest.MonkeyPatch) -> None:
    _install_workflow(monkeypatch)

    async with httpx.AsyncClient(transport=_transport(), base_url="http://testserver") as client:
        payload = await _upload(client)
        summary = await client.get(f"/v1/documents/{payload['document_id']}")

    assert [item["id"] for item in payload["placeholders"]] == ["client_name", "placeholder_1"]
    assert payload["placeholders"][0]["label"] == "Client Name"
    assert "Dear" in payload["preview_html"]
    assert summary.status_code == 200
    assert summary.json()["state"] == "ready"


@pytest.mark.anyio
async def test_finalize_and_download_filled_document(monkeypatch: pytest.MonkeyPatch) -> None:
    _install_workflow(monkeypatch)

    async with httpx.AsyncClient(transport=_transport(), base_url="http://testserver") as client:
        document_id = (await _upload(client))["document_id"]
        original = await client.get(f"/v1/documents/{document_id}/download")
        finalized = await client.post(
            f"/v1/documents/{document_id}/finalize",
            json={"values": {"client_name": "Acme Corp", "placeholder_1": "Jane Doe"}},
        )
        filled = await client.get(f"/v1/documents/{document_id}/download")

    assert original.status_code == 200
    assert original.headers["X-Docfill-Finalized"] == "0"
    original_texts = [
        paragraph.text for paragraph in Document(io.BytesIO(original.content)).paragraphs
    ]
    assert original_texts == ["Dear {{client_name}}, sign here: $[_____]"]

    assert finalized.status_code == 200
    body = finalized.json()
    assert body["document_id"] == document_id
    assert "Acme Corp" in body["preview_html"]
    assert body["replace_summary"]["replaced_count"] == 2

    assert filled.status_code == 200
    assert filled.headers["content-type"] == DOCX_MEDIA_TYPE
    assert filled.headers["X-Docfill-Finalized"] == "1"
    assert "contract-filled.docx" in filled.headers["content-disposition"]
    texts = [paragraph.text for paragraph in Document(io.BytesIO(filled.content)).paragraphs]
    assert texts == ["Dear Acme Corp, sign here: Jane Doe"]


@pytest.mark.anyio
async def test_finalize_with_missing_values_returns_400(monkeypatch: pytest.MonkeyPatch) -> None:
    _install_workflow(monkeypatch)

    async with httpx.AsyncClient(transport=_transport(), base_url="http://testserver") as client:
        document_id = (await _upload(client))["document_id"]
        response = await client.post(
            f"/v1/documents/{document_id}/finalize",
            json={"values": {"client_name": "Acme Corp"}},
        )

    assert response.status_code == 400
    payload = response.json()
    assert payload["error_code"] == "INVALID_ARGUMENT"
    assert payload["detail"]["missing_labels"] == ["Placeholder 1"]
    assert payload["detail"]["request_id"] == response.headers["X-Docfill-Request-Id"]


@pytest.mark.anyio
async def test_finalize_unknown_document_returns_404(monkeypatch: pytest.MonkeyPatch) -> None:
    _install_workflow(monkeypatch)

    async with httpx.AsyncClient(transport=_transport(), base_url="http://testserver") as client:
        response = await client.post("/v1/documents/missing/finalize", json={"values": {}})

    assert response.status_code == 404
    assert response.json()["error_code"] == "NOT_FOUND"


@pytest.mark.anyio
@pytest.mark.parametrize(
    ("body", "error_code"),
    [
        (b"{not json", "INVALID_JSON"),
        (b"[1, 2]", "INVALID_JSON"),
        (b'{"values": {"client_name": 5}}', "INVALID_ARGUMENT"),
        (b'{"values": {}, "extra": true}', "INVALID_ARGUMENT"),
    ],
)
async def test_finalize_rejects_malformed_body(
    monkeypatch: pytest.MonkeyPatch, body: bytes, error_code: str
) -> None:
    _install_workflow(monkeypatch)

    async with httpx.AsyncClient(transport=_transport(), base_url="http://testserver") as client:
        document_id = (await _upload(client))["document_id"]
        response = await client.post(
            f"/v1/documents/{document_id}/finalize",
            content=body,
            headers={"Content-Type": "application/json"},
        )

    assert response.status_code == 400
    assert response.json()["error_code"] == error_code


@pytest.mark.anyio
async def test_questionnaire_flow(monkeypatch: pytest.MonkeyPatch) -> None:
    _install_workflow(monkeypatch)

    async with httpx.AsyncClient(transport=_transport(), base_url="http://testserver") as client:
        document_id = (await _upload(client))["document_id"]
        premature = await client.post(
            f"/v1/documents/{document_id}/questionnaire/answer", json={"answer": "x"}
        )
        first = await client.post(f"/v1/documents/{document_id}/questionnaire/start")
        blank = await client.post(
            f"/v1/documents/{document_id}/questionnaire/answer", json={"answer": "  "}
        )
        second = await client.post(
            f"/v1/documents/{document_id}/questionnaire/answer", json={"answer": "Acme Corp"}
        )
        last = await client.post(
            f"/v1/documents/{document_id}/questionnaire/answer", json={"answer": "Jane Doe"}
        )
        filled = await client.get(f"/v1/documents/{document_id}/download")

    assert premature.status_code == 409
    assert premature.json()["error_code"] == "INVALID_STATE"

    assert first.json() == {
        "done": False,
        "message": "Please provide a value for Client Name.",
        "placeholder_id": "client_name",
        "preview_html": None,
    }
    assert blank.status_code == 400
    assert second.json()["placeholder_id"] == "placeholder_1"

    final_turn = last.json()
    assert final_turn["done"] is True
    assert "Jane Doe" in final_turn["preview_html"]
    assert filled.headers["X-Docfill-Finalized"] == "1"


@pytest.mark.anyio
async def test_conversation_without_service_returns_502(monkeypatch: pytest.MonkeyPatch) -> None:
    _install_workflow(monkeypatch)

    async with httpx.AsyncClient(transport=_transport(), base_url="http://testserver") as client:
        document_id = (await _upload(client))["document_id"]
        response = await client.post(
            f"/v1/documents/{document_id}/conversation",
            json={
                "placeholder_id": "client_name",
                "messages": [{"role": "user", "content": "hi"}],
            },
        )

    assert response.status_code == 502
    assert response.json()["error_code"] == "UPSTREAM_ERROR"


@pytest.mark.anyio
async def test_conversation_returns_assistant_message(monkeypatch: pytest.MonkeyPatch) -> None:
    _install_workflow(monkeypatch, FakeClient())

    async with httpx.AsyncClient(transport=_transport(), base_url="http://testserver") as client:
        document_id = (await _upload(client))["document_id"]
        response = await client.post(
            f"/v1/documents/{document_id}/conversation",
            json={
                "placeholder_id": "client_name",
                "messages": [{"role": "user", "content": "What goes here?"}],
            },
        )
        unknown = await client.post(
            f"/v1/documents/{document_id}/conversation",
            json={"placeholder_id": "nobody", "messages": []},
        )

    assert response.status_code == 200
    assert response.json()["assistant_message"].startswith("Tell me about Context:")
    assert unknown.status_code == 404


@pytest.mark.anyio
async def test_delete_evicts_document(monkeypatch: pytest.MonkeyPatch) -> None:
    _install_workflow(monkeypatch)

    async with httpx.AsyncClient(transport=_transport(), base_url="http://testserver") as client:
        document_id = (await _upload(client))["document_id"]
        deleted = await client.delete(f"/v1/documents/{document_id}")
        again = await client.delete(f"/v1/documents/{document_id}")
        lookup = await client.get(f"/v1/documents/{document_id}")

    assert deleted.status_code == 200
    assert deleted.json() == {"document_id": document_id, "deleted": True}
    assert again.status_code == 404
    assert lookup.status_code == 404
