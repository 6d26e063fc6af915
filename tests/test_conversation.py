"""Test suite for persistence, history and semantic search."""

from datetime import datetime, timezone
from uuid import UUID

import pytest

from direct_chat.domain.errors import (
    EmbeddingUnavailable,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from direct_chat.domain.models import Message
from direct_chat.repositories.memory import InMemoryRepository
from direct_chat.services.conversation import ConversationService, similarity

from .support import USERS, FailingEmbeddings, KeywordEmbeddings, WrongSizeEmbeddings


@pytest.mark.asyncio
async def test_send_then_list_roundtrip(service: ConversationService):
    """A sent message comes back from the pair's history with the same fields."""
    view = await service.send_message("u1", "u2", "  hello  ")
    assert view.message == "hello"
    assert view.sender.name == "Alice"
    assert view.receiver.name == "Bob"

    history = await service.list_conversation("u1", "u2")
    assert len(history) == 1
    assert history[0].id == view.id
    assert history[0].sender_id == "u1"
    assert history[0].receiver_id == "u2"
    assert history[0].message == "hello"

    # Same conversation seen from the other side
    assert [m.id for m in await service.list_conversation("u2", "u1")] == [view.id]


@pytest.mark.asyncio
async def test_self_send_is_rejected_and_not_persisted(service: ConversationService, repository):
    with pytest.raises(ValidationError):
        await service.send_message("u1", "u1", "note to self")
    assert await repository.list_messages("u1") == []


@pytest.mark.asyncio
async def test_empty_body_is_rejected(service: ConversationService, embeddings):
    with pytest.raises(ValidationError):
        await service.send_message("u1", "u2", "   ")
    assert embeddings.calls == []


@pytest.mark.asyncio
async def test_unknown_users_are_rejected_before_write(service: ConversationService, repository):
    with pytest.raises(NotFoundError, match="Receiver"):
        await service.send_message("u1", "ghost", "hi")
    with pytest.raises(NotFoundError, match="Sender"):
        await service.send_message("ghost", "u1", "hi")
    assert await repository.list_messages("u1") == []


@pytest.mark.asyncio
async def test_send_survives_embedding_outage():
    """Provider failure degrades to a message without a vector."""
    repository = InMemoryRepository(embedding_dimension=3, users=USERS)
    service = ConversationService(repository, FailingEmbeddings())

    view = await service.send_message("u1", "u2", "hello")

    stored = await repository.list_messages("u1", "u2")
    assert [m.id for m in stored] == [view.id]
    assert stored[0].embedding is None


@pytest.mark.asyncio
async def test_vector_write_failure_retries_without_vector():
    """A vector the store refuses does not cost the message."""
    repository = InMemoryRepository(embedding_dimension=3, users=USERS)
    service = ConversationService(repository, WrongSizeEmbeddings())

    await service.send_message("u1", "u2", "hello")

    stored = await repository.list_messages("u1", "u2")
    assert len(stored) == 1
    assert stored[0].embedding is None


@pytest.mark.asyncio
async def test_create_message_validates_directly(repository: InMemoryRepository):
    with pytest.raises(ValidationError):
        await repository.create_message("u1", "u1", "hi")
    with pytest.raises(ValidationError):
        await repository.create_message("u1", "u2", "")

    message = await repository.create_message("u1", "u2", "hi", [0.0, 1.0, 0.0])
    assert message.embedding == [0.0, 1.0, 0.0]


@pytest.mark.asyncio
async def test_duplicate_message_id_is_refused(repository: InMemoryRepository):
    message = Message(sender_id="u1", receiver_id="u2", message="once")
    await repository.insert_message(message)
    with pytest.raises(PersistenceError):
        await repository.insert_message(message)


@pytest.mark.asyncio
async def test_history_order_breaks_timestamp_ties_by_id(repository: InMemoryRepository):
    """Messages with equal timestamps come back ordered by id."""
    when = datetime(2024, 1, 1, tzinfo=timezone.utc)
    ids = [
        UUID("cccccccc-0000-0000-0000-000000000000"),
        UUID("aaaaaaaa-0000-0000-0000-000000000000"),
        UUID("bbbbbbbb-0000-0000-0000-000000000000"),
    ]
    for message_id in ids:
        await repository.insert_message(
            Message(id=message_id, sender_id="u1", receiver_id="u2", message="x", created_at=when)
        )
    earlier = Message(
        sender_id="u2", receiver_id="u1", message="first",
        created_at=datetime(2023, 12, 31, tzinfo=timezone.utc),
    )
    await repository.insert_message(earlier)

    history = await repository.list_messages("u1", "u2")
    assert [m.id for m in history] == [earlier.id] + sorted(ids, key=str)


@pytest.mark.asyncio
async def test_history_scoping_and_limit(service: ConversationService):
    await service.send_message("u1", "u2", "to bob")
    await service.send_message("u3", "u1", "from carol")
    await service.send_message("u2", "u3", "bob to carol")

    everything = await service.list_conversation("u1")
    assert [m.message for m in everything] == ["to bob", "from carol"]

    with_carol = await service.list_conversation("u1", "u3")
    assert [m.message for m in with_carol] == ["from carol"]

    limited = await service.list_conversation("u1", limit=1)
    assert [m.message for m in limited] == ["to bob"]

    with pytest.raises(ValidationError):
        await service.list_conversation("u1", limit=0)
    with pytest.raises(NotFoundError):
        await service.list_conversation("ghost")


@pytest.mark.asyncio
async def test_semantic_search_ranking(repository: InMemoryRepository, embeddings: KeywordEmbeddings):
    """Scores are non-increasing and unembedded messages sort last."""
    service = ConversationService(repository, embeddings)
    await service.send_message("u1", "u2", "my cat is asleep")
    await service.send_message("u2", "u1", "booked a flight for the trip")
    await service.send_message("u1", "u2", "pizza for lunch?")
    # Stored without a vector
    await repository.create_message("u2", "u1", "my dog chewed the sofa")
    # Not touching u1
    await service.send_message("u2", "u3", "cat pictures")

    results = await service.semantic_search("u1", "pet cat")

    assert [r.message for r in results][0] == "my cat is asleep"
    assert results[0].score == pytest.approx(1.0)
    assert results[0].sender_name == "Alice"
    assert results[0].receiver_name == "Bob"
    scores = [r.score for r in results]
    assert scores == sorted(scores, reverse=True)
    assert results[-1].message == "my dog chewed the sofa"
    assert results[-1].score == 0.0
    assert "cat pictures" not in [r.message for r in results]


@pytest.mark.asyncio
async def test_semantic_search_top_k_and_ties(service: ConversationService, repository):
    """Equal scores fall back to (created_at, id) ascending."""
    def at(day):
        return datetime(2024, 1, day, tzinfo=timezone.utc)

    later = Message(sender_id="u1", receiver_id="u2", message="lunch", created_at=at(3), embedding=[0.0, 0.0, 1.0])
    earlier = Message(sender_id="u2", receiver_id="u1", message="pizza", created_at=at(2), embedding=[0.0, 0.0, 2.0])
    other = Message(sender_id="u1", receiver_id="u2", message="flight", created_at=at(1), embedding=[0.0, 1.0, 0.0])
    for message in (later, earlier, other):
        await repository.insert_message(message)

    results = await service.semantic_search("u1", "food", k=2)
    assert [r.id for r in results] == [earlier.id, later.id]
    assert [r.score for r in results] == [pytest.approx(1.0), pytest.approx(1.0)]


@pytest.mark.asyncio
async def test_semantic_search_empty_query_makes_no_embedding_call(
    service: ConversationService, embeddings: KeywordEmbeddings
):
    with pytest.raises(ValidationError):
        await service.semantic_search("u1", "")
    with pytest.raises(ValidationError):
        await service.semantic_search("u1", "   ")
    assert embeddings.calls == []


@pytest.mark.asyncio
async def test_semantic_search_surfaces_provider_failure():
    repository = InMemoryRepository(embedding_dimension=3, users=USERS)
    service = ConversationService(repository, FailingEmbeddings())
    await service.send_message("u1", "u2", "hello")

    with pytest.raises(EmbeddingUnavailable):
        await service.semantic_search("u1", "hello")


def test_similarity():
    assert similarity([1.0, 0.0], [1.0, 0.0]) == pytest.approx(1.0)
    assert similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)
    assert similarity([1.0, 0.0], [-1.0, 0.0]) == pytest.approx(-1.0)
    assert similarity([0.0, 0.0], [1.0, 0.0]) == 0.0


@pytest.mark.asyncio
async def test_semantic_search_orders_negative_similarities(service: ConversationService, repository):
    """Among opposite-leaning messages the less dissimilar one still ranks first."""
    far = Message(
        sender_id="u1", receiver_id="u2", message="far",
        created_at=datetime(2024, 1, 1, tzinfo=timezone.utc), embedding=[-1.0, 1.0, 1.0],
    )
    closer = Message(
        sender_id="u2", receiver_id="u1", message="closer",
        created_at=datetime(2024, 1, 2, tzinfo=timezone.utc), embedding=[-0.1, 1.0, 0.0],
    )
    unembedded = Message(
        sender_id="u1", receiver_id="u2", message="plain",
        created_at=datetime(2023, 1, 1, tzinfo=timezone.utc),
    )
    for message in (far, closer, unembedded):
        await repository.insert_message(message)

    top = await service.semantic_search("u1", "cat", k=1)
    assert [r.message for r in top] == ["closer"]

    results = await service.semantic_search("u1", "cat")
    assert [r.message for r in results] == ["closer", "far", "plain"]
    assert [r.score for r in results] == [0.0, 0.0, 0.0]
