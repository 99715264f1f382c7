import asyncio
import json
from datetime import datetime, timezone
from types import SimpleNamespace

import httpx
import pytest
import pytest_asyncio

import api.main as main_module
from api.main import create_app
from api.routers.messages import TurnOut, _sse, stream_messages
from pdf_chat.exception.custom_exception import NotFound

USER = {"X-User-Id": "user_1"}
PDF = ("policy.pdf", b"%PDF-1.4 refund policy", "application/pdf")


@pytest_asyncio.fixture
async def client(container):
    transport = httpx.ASGITransport(app=create_app(container))
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


async def _upload(client, headers=USER) -> dict:
    r = await client.post("/documents", files={"file": PDF}, headers=headers)
    assert r.status_code == 201, r.text
    return r.json()


@pytest.mark.asyncio
async def test_health(client) -> None:
    r = await client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_upload_and_list(client, tmp_path) -> None:
    doc = await _upload(client)

    assert doc["name"] == "policy.pdf"
    assert doc["size"] == len(PDF[1])
    assert doc["storage_path"] == f"users/user_1/files/{doc['id']}"
    assert (tmp_path / "storage" / doc["storage_path"]).read_bytes() == PDF[1]

    listed = (await client.get("/documents", headers=USER)).json()
    assert [d["id"] for d in listed] == [doc["id"]]

    # other users do not see it
    assert (await client.get("/documents", headers={"X-User-Id": "user_2"})).json() == []
    r = await client.get(f"/documents/{doc['id']}", headers={"X-User-Id": "user_2"})
    assert r.status_code == 404
    assert r.json()["error"] == "not_found"


@pytest.mark.asyncio
async def test_non_pdf_upload_rejected(client) -> None:
    r = await client.post(
        "/documents", files={"file": ("notes.txt", b"hello", "text/plain")}, headers=USER
    )
    assert r.status_code == 422
    assert r.json() == {
        "success": False,
        "error": "validation_failure",
        "message": "Only PDF documents are supported",
    }


@pytest.mark.asyncio
async def test_requests_without_user_are_unauthenticated(client) -> None:
    r = await client.get("/documents")
    assert r.status_code == 401
    assert r.json()["error"] == "unauthenticated"


@pytest.mark.asyncio
async def test_chat_flow(client, vector_index, ingestor) -> None:
    doc = await _upload(client)

    r = await client.post(
        f"/documents/{doc['id']}/chat", json={"question": "What is the refund policy?"}, headers=USER
    )
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["success"] is True
    assert body["answer"] == "Refunds are accepted within 30 days of purchase."
    assert body["ai_turn_id"] > body["human_turn_id"]
    assert vector_index.population_events == [doc["id"]]

    messages = (await client.get(f"/documents/{doc['id']}/messages", headers=USER)).json()
    assert [(m["role"], m["message"]) for m in messages] == [
        ("human", "What is the refund policy?"),
        ("ai", "Refunds are accepted within 30 days of purchase."),
    ]

    usage = (await client.get(f"/documents/{doc['id']}/usage", headers=USER)).json()
    assert usage == {"questions_asked": 1, "question_limit": 100, "remaining": 99}


@pytest.mark.asyncio
async def test_chat_errors(client) -> None:
    doc = await _upload(client)

    blank = await client.post(f"/documents/{doc['id']}/chat", json={"question": "  "}, headers=USER)
    assert blank.status_code == 422
    assert blank.json()["error"] == "validation_failure"

    missing = await client.post("/documents/nope/chat", json={"question": "q"}, headers=USER)
    assert missing.status_code == 404

    messages = await client.get("/documents/nope/messages", headers=USER)
    assert messages.status_code == 404


@pytest.mark.asyncio
async def test_upstream_failure_maps_to_502(container_factory, failing_llm) -> None:
    app = create_app(container_factory(failing_llm))
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as c:
        doc = await _upload(c)
        r = await c.post(f"/documents/{doc['id']}/chat", json={"question": "q"}, headers=USER)
        assert r.status_code == 502
        assert r.json()["error"] == "upstream_failure"

        messages = (await c.get(f"/documents/{doc['id']}/messages", headers=USER)).json()
        assert [m["role"] for m in messages] == ["human"]


@pytest.mark.asyncio
async def test_generate_embeddings_endpoint(client, ingestor) -> None:
    doc = await _upload(client)

    first = (await client.post(f"/documents/{doc['id']}/embeddings", headers=USER)).json()
    again = (await client.post(f"/documents/{doc['id']}/embeddings", headers=USER)).json()

    assert first == {"completed": True, "created": True, "namespace": doc["id"]}
    assert again["created"] is False
    assert ingestor.calls == [doc["id"]]

    stats = (await client.get("/namespaces", headers=USER)).json()
    assert stats["namespaces"][doc["id"]]["vector_count"] == 1
    assert (await client.get("/namespaces", headers={"X-User-Id": "user_2"})).json() == {"namespaces": {}}


@pytest.mark.asyncio
async def test_api_key_is_enforced(container_factory, llm) -> None:
    app = create_app(container_factory(llm, api_key="s3cret"))
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as c:
        denied = await c.get("/documents", headers=USER)
        allowed = await c.get("/documents", headers={**USER, "X-API-Key": "s3cret"})
        non_ascii = await c.get(
            "/documents", headers={**USER, "X-API-Key": "caf\u00e9".encode("latin-1")}
        )

    assert denied.status_code == 401
    assert non_ascii.status_code == 401
    assert non_ascii.json()["error"] == "unauthenticated"
    assert allowed.status_code == 200


def test_snapshot_event_format() -> None:
    turn = TurnOut(id=1, role="human", message="hi", created_at=datetime(2025, 1, 1, tzinfo=timezone.utc))
    event = _sse([turn])

    assert event.startswith("event: snapshot\ndata: ")
    assert event.endswith("\n\n")
    assert '"message": "hi"' in event


def _snapshot(event: str) -> list[dict]:
    header, data = event.strip().split("\n", 1)
    assert header == "event: snapshot"
    return json.loads(data.removeprefix("data: "))


@pytest.mark.asyncio
async def test_message_stream_pushes_snapshot_per_append(db, document, container, feed) -> None:
    await container.chat_repo.add_turn(db, "user_1", "doc1", "human", "What is the refund policy?")

    async def is_disconnected() -> bool:
        return False

    request = SimpleNamespace(
        app=SimpleNamespace(state=SimpleNamespace(container=container)),
        is_disconnected=is_disconnected,
    )
    response = await stream_messages("doc1", request, user_id="user_1", db=db)
    events = response.body_iterator

    first = _snapshot(await events.__anext__())
    assert [(t["role"], t["message"]) for t in first] == [("human", "What is the refund policy?")]

    async def next_event():
        return await events.__anext__()

    pending = asyncio.create_task(next_event())
    for _ in range(100):
        if feed.subscriber_count("user_1", "doc1"):
            break
        await asyncio.sleep(0.01)
    assert feed.subscriber_count("user_1", "doc1") == 1

    await container.chat_repo.add_turn(db, "user_1", "doc1", "ai", "Within 30 days.")

    second = _snapshot(await asyncio.wait_for(pending, timeout=2))
    assert [t["role"] for t in second] == ["human", "ai"]
    assert second[-1]["message"] == "Within 30 days."

    await events.aclose()
    assert feed.subscriber_count("user_1", "doc1") == 0


@pytest.mark.asyncio
async def test_message_stream_requires_owned_document(db, document, container) -> None:
    request = SimpleNamespace(app=SimpleNamespace(state=SimpleNamespace(container=container)))
    with pytest.raises(NotFound):
        await stream_messages("doc1", request, user_id="user_2", db=db)


def test_run_serves_app_with_uvicorn(monkeypatch) -> None:
    calls = []
    monkeypatch.setattr(main_module.uvicorn, "run", lambda app, **kw: calls.append((app, kw)))
    monkeypatch.setenv("PORT", "9001")
    monkeypatch.delenv("HOST", raising=False)

    main_module.run()

    assert calls == [("api.main:app", {"host": "0.0.0.0", "port": 9001})]
