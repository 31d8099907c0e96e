"""Tests for conversations and messages (campusgig/services/conversation.py)."""

import uuid

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from campusgig.errors import InvalidTransition, NotFound, Unauthorized, ValidationError
from campusgig.models.conversation import Conversation, MessageKind
from campusgig.models.job import JobStatus
from campusgig.realtime import InMemoryEventBus, MessageInserted, conversation_topic, user_topic
from campusgig.services import conversation as conversation_service
from campusgig.services import job as job_service
from tests.conftest import make_headers, make_job, make_job_data, make_profile


@pytest.mark.asyncio
async def test_get_or_create_is_idempotent(db_session: AsyncSession) -> None:
    owner = await make_profile(db_session)
    worker = await make_profile(db_session)
    job = await make_job(db_session, owner)

    first = await conversation_service.get_or_create_conversation(db_session, job.id, worker.user_id)
    second = await conversation_service.get_or_create_conversation(db_session, job.id, worker.user_id)

    assert first.id == second.id
    count = await db_session.scalar(
        select(func.count(Conversation.id)).where(Conversation.job_id == job.id)
    )
    assert count == 1


@pytest.mark.asyncio
async def test_cannot_apply_to_own_job(db_session: AsyncSession) -> None:
    owner = await make_profile(db_session)
    job = await make_job(db_session, owner)

    with pytest.raises(ValidationError, match="You cannot apply to your own job"):
        await conversation_service.get_or_create_conversation(db_session, job.id, owner.user_id)


@pytest.mark.asyncio
async def test_cannot_apply_to_closed_job(db_session: AsyncSession, bus: InMemoryEventBus) -> None:
    owner = await make_profile(db_session)
    worker = await make_profile(db_session)
    job = await make_job(db_session, owner)
    await job_service.set_job_status(db_session, bus, job.id, JobStatus.CANCELLED, owner.user_id)

    with pytest.raises(InvalidTransition):
        await conversation_service.get_or_create_conversation(db_session, job.id, worker.user_id)


@pytest.mark.asyncio
async def test_apply_to_unknown_job(db_session: AsyncSession) -> None:
    worker = await make_profile(db_session)
    with pytest.raises(NotFound):
        await conversation_service.get_or_create_conversation(db_session, uuid.uuid4(), worker.user_id)


@pytest.mark.asyncio
async def test_messages_read_back_in_order(db_session: AsyncSession, bus: InMemoryEventBus) -> None:
    owner = await make_profile(db_session)
    worker = await make_profile(db_session)
    job = await make_job(db_session, owner)
    conversation = await conversation_service.get_or_create_conversation(db_session, job.id, worker.user_id)

    for i, sender in enumerate([worker, owner, worker, worker]):
        await conversation_service.append_message(
            db_session, bus, conversation.id, sender.user_id, f"message {i}"
        )

    messages = await conversation_service.list_messages(db_session, conversation.id, owner.user_id)
    assert [m.content for m in messages] == ["message 0", "message 1", "message 2", "message 3"]
    assert all(m.kind == MessageKind.USER_TEXT for m in messages)


@pytest.mark.asyncio
async def test_blank_message_rejected(db_session: AsyncSession, bus: InMemoryEventBus) -> None:
    owner = await make_profile(db_session)
    worker = await make_profile(db_session)
    job = await make_job(db_session, owner)
    conversation = await conversation_service.get_or_create_conversation(db_session, job.id, worker.user_id)
    received: list = []
    bus.subscribe(conversation_topic(conversation.id), received.append)

    with pytest.raises(ValidationError, match="Message cannot be empty"):
        await conversation_service.append_message(db_session, bus, conversation.id, worker.user_id, "   ")

    assert await conversation_service.list_messages(db_session, conversation.id, worker.user_id) == []
    assert received == []


@pytest.mark.asyncio
async def test_message_content_is_trimmed(db_session: AsyncSession, bus: InMemoryEventBus) -> None:
    owner = await make_profile(db_session)
    worker = await make_profile(db_session)
    job = await make_job(db_session, owner)
    conversation = await conversation_service.get_or_create_conversation(db_session, job.id, worker.user_id)

    message = await conversation_service.append_message(
        db_session, bus, conversation.id, worker.user_id, "  I can help  \n"
    )
    assert message.content == "I can help"


@pytest.mark.asyncio
async def test_outsider_cannot_read_or_post(db_session: AsyncSession, bus: InMemoryEventBus) -> None:
    owner = await make_profile(db_session)
    worker = await make_profile(db_session)
    outsider = await make_profile(db_session)
    job = await make_job(db_session, owner)
    conversation = await conversation_service.get_or_create_conversation(db_session, job.id, worker.user_id)

    with pytest.raises(Unauthorized, match="You are not part of this conversation"):
        await conversation_service.list_messages(db_session, conversation.id, outsider.user_id)
    with pytest.raises(Unauthorized):
        await conversation_service.append_message(
            db_session, bus, conversation.id, outsider.user_id, "hello"
        )


@pytest.mark.asyncio
async def test_append_publishes_to_conversation_and_participants(
    db_session: AsyncSession, bus: InMemoryEventBus
) -> None:
    owner = await make_profile(db_session, "Ada")
    worker = await make_profile(db_session, "Grace")
    job = await make_job(db_session, owner, title="Fix my laptop")
    conversation = await conversation_service.get_or_create_conversation(db_session, job.id, worker.user_id)

    seen: dict[str, list] = {"conversation": [], "owner": [], "worker": []}
    bus.subscribe(conversation_topic(conversation.id), seen["conversation"].append)
    bus.subscribe(user_topic(owner.user_id), seen["owner"].append)
    bus.subscribe(user_topic(worker.user_id), seen["worker"].append)

    message = await conversation_service.append_message(
        db_session, bus, conversation.id, worker.user_id, "On my way"
    )

    for events in seen.values():
        assert len(events) == 1
    event = seen["owner"][0]
    assert isinstance(event, MessageInserted)
    assert event.message_id == message.id
    assert event.job_title == "Fix my laptop"
    assert event.sender_name == "Grace"
    assert event.poster_id == owner.user_id
    assert event.worker_id == worker.user_id


@pytest.mark.asyncio
async def test_list_applicants(db_session: AsyncSession, bus: InMemoryEventBus) -> None:
    owner = await make_profile(db_session)
    quiet = await make_profile(db_session, "Quiet")
    chatty = await make_profile(db_session, "Chatty")
    job = await make_job(db_session, owner)

    await conversation_service.get_or_create_conversation(db_session, job.id, quiet.user_id)
    conversation = await conversation_service.get_or_create_conversation(db_session, job.id, chatty.user_id)
    await conversation_service.append_message(db_session, bus, conversation.id, chatty.user_id, "Hi")
    await conversation_service.append_message(db_session, bus, conversation.id, owner.user_id, "Hello")

    applicants = await conversation_service.list_applicants(db_session, job.id)
    assert [a.worker.display_name for a in applicants] == ["Quiet", "Chatty"]
    assert applicants[0].last_message is None
    assert applicants[0].message_count == 0
    assert applicants[1].last_message.content == "Hello"
    assert applicants[1].message_count == 2


# ---------------------------------------------------------------------------
# HTTP surface
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_message_round_trip_over_http(client: AsyncClient) -> None:
    owner = make_headers(uuid.uuid4())
    worker = make_headers(uuid.uuid4())
    job_id = (await client.post("/jobs", json=make_job_data(), headers=owner)).json()["id"]
    conversation_id = (await client.post(f"/jobs/{job_id}/conversations", headers=worker)).json()["id"]

    resp = await client.post(
        f"/conversations/{conversation_id}/messages", json={"content": "Can do it"}, headers=worker
    )
    assert resp.status_code == 201
    assert resp.json()["is_system"] is False

    resp = await client.get(f"/conversations/{conversation_id}/messages", headers=owner)
    assert resp.status_code == 200
    assert [m["content"] for m in resp.json()] == ["Can do it"]

    resp = await client.get("/conversations", headers=owner)
    assert [c["id"] for c in resp.json()] == [conversation_id]


@pytest.mark.asyncio
async def test_empty_message_over_http(client: AsyncClient) -> None:
    owner = make_headers(uuid.uuid4())
    worker = make_headers(uuid.uuid4())
    job_id = (await client.post("/jobs", json=make_job_data(), headers=owner)).json()["id"]
    conversation_id = (await client.post(f"/jobs/{job_id}/conversations", headers=worker)).json()["id"]

    resp = await client.post(
        f"/conversations/{conversation_id}/messages", json={"content": "  "}, headers=worker
    )
    assert resp.status_code == 422
    assert resp.json()["detail"] == "Message cannot be empty"


@pytest.mark.asyncio
async def test_applicants_owner_only(client: AsyncClient) -> None:
    owner = make_headers(uuid.uuid4())
    worker = make_headers(uuid.uuid4())
    job_id = (await client.post("/jobs", json=make_job_data(), headers=owner)).json()["id"]
    await client.post(f"/jobs/{job_id}/conversations", headers=worker)

    resp = await client.get(f"/jobs/{job_id}/applicants", headers=worker)
    assert resp.status_code == 403

    resp = await client.get(f"/jobs/{job_id}/applicants", headers=owner)
    assert resp.status_code == 200
    assert len(resp.json()) == 1
    assert resp.json()[0]["message_count"] == 0


@pytest.mark.asyncio
async def test_conversation_events_participants_only(client: AsyncClient) -> None:
    owner = make_headers(uuid.uuid4())
    worker = make_headers(uuid.uuid4())
    job_id = (await client.post("/jobs", json=make_job_data(), headers=owner)).json()["id"]
    conversation_id = (await client.post(f"/jobs/{job_id}/conversations", headers=worker)).json()["id"]

    resp = await client.get(
        f"/conversations/{conversation_id}/events", headers=make_headers(uuid.uuid4())
    )
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_message_length_checked_after_trimming(client: AsyncClient) -> None:
    owner = make_headers(uuid.uuid4())
    worker = make_headers(uuid.uuid4())
    job_id = (await client.post("/jobs", json=make_job_data(), headers=owner)).json()["id"]
    conversation_id = (await client.post(f"/jobs/{job_id}/conversations", headers=worker)).json()["id"]
    url = f"/conversations/{conversation_id}/messages"

    resp = await client.post(url, json={"content": "x" * 4000 + "\n"}, headers=worker)
    assert resp.status_code == 201
    assert len(resp.json()["content"]) == 4000

    resp = await client.post(url, json={"content": "x" * 4001}, headers=worker)
    assert resp.status_code == 422
    assert resp.json()["detail"] == "Message is too long (max 4000 characters)"
