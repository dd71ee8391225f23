"""Contract tests for ConversationStore backends.

Every test runs against the in-memory store and against PostgreSQL. The
Postgres variant is skipped when no database is reachable with the DB_*
settings (docker compose up -d postgres).
"""

import uuid

import pytest
import pytest_asyncio

from taskrelay.storage.base import ConversationNotFound
from taskrelay.storage.memory import InMemoryConversationStore
from taskrelay.storage.schemas import PREVIEW_CHARS, conversation_title

# ---------------------------------------------------------------------------
# Backends
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture(params=["memory", "postgres"])
async def backend(request, settings_factory):
    if request.param == "memory":
        s = InMemoryConversationStore()
        yield s
        await s.close()
        return

    from taskrelay.storage.conversations import SqlConversationStore
    from taskrelay.storage.database import Database

    database = Database(settings_factory(store_backend="postgres"))
    try:
        await database.connect()
    except Exception as e:
        await database.disconnect()
        pytest.skip(f"PostgreSQL unavailable: {e.__class__.__name__}")

    s = SqlConversationStore(database)
    yield s
    await s.close()


@pytest.fixture
def owner():
    """Unique owner per test so Postgres runs don't see each other's rows."""
    return f"test-{uuid.uuid4()}"


# ---------------------------------------------------------------------------
# Conversations
# ---------------------------------------------------------------------------


class TestConversations:
    @pytest.mark.asyncio
    async def test_create_and_get(self, backend, owner):
        created = await backend.create_conversation(owner, "Job status")
        fetched = await backend.get_conversation(created.id)

        assert fetched is not None
        assert fetched.id == created.id
        assert fetched.owner_id == owner
        assert fetched.title == "Job status"
        assert fetched.message_count == 0
        assert fetched.preview is None
        await backend.delete_conversation(created.id)

    @pytest.mark.asyncio
    async def test_get_missing(self, backend):
        assert await backend.get_conversation(str(uuid.uuid4())) is None
        assert await backend.get_conversation("not-a-uuid") is None

    @pytest.mark.asyncio
    async def test_list_is_scoped_to_owner(self, backend, owner):
        mine = await backend.create_conversation(owner, "mine")
        other = await backend.create_conversation(f"{owner}-other", "theirs")

        listed = await backend.list_conversations(owner)

        assert [c.id for c in listed] == [mine.id]
        await backend.delete_conversation(mine.id)
        await backend.delete_conversation(other.id)

    @pytest.mark.asyncio
    async def test_list_most_recent_first(self, backend, owner):
        older = await backend.create_conversation(owner, "older")
        newer = await backend.create_conversation(owner, "newer")
        await backend.append_message(older.id, "user", "bump")

        listed = await backend.list_conversations(owner)

        assert [c.id for c in listed] == [older.id, newer.id]
        for c in listed:
            await backend.delete_conversation(c.id)

    @pytest.mark.asyncio
    async def test_rename(self, backend, owner):
        conversation = await backend.create_conversation(owner, "before")
        await backend.rename_conversation(conversation.id, "after")

        assert (await backend.get_conversation(conversation.id)).title == "after"
        await backend.delete_conversation(conversation.id)

    @pytest.mark.asyncio
    async def test_rename_missing(self, backend):
        with pytest.raises(ConversationNotFound):
            await backend.rename_conversation(str(uuid.uuid4()), "nope")

    @pytest.mark.asyncio
    async def test_delete_removes_messages(self, backend, owner):
        conversation = await backend.create_conversation(owner, "short-lived")
        await backend.append_message(conversation.id, "user", "hello")

        await backend.delete_conversation(conversation.id)

        assert await backend.get_conversation(conversation.id) is None
        assert await backend.list_messages(conversation.id) == []


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------


class TestMessages:
    @pytest.mark.asyncio
    async def test_append_preserves_order_and_meta(self, backend, owner):
        conversation = await backend.create_conversation(owner, "ordering")

        await backend.append_message(conversation.id, "user", "What's the status of job 12345?")
        answer = await backend.append_message(
            conversation.id,
            "assistant",
            "Job 12345 is in production, 60% complete.",
            task_id="t1",
            agents_used=["erp-lookup"],
            tokens_used=42,
        )

        assert answer.role == "assistant"
        assert answer.task_id == "t1"

        messages = await backend.list_messages(conversation.id)
        assert [m.role for m in messages] == ["user", "assistant"]
        assert messages[1].tokens_used == 42
        assert messages[1].agents_used == ["erp-lookup"]
        assert messages[0].task_id is None
        assert messages[0].agents_used is None
        await backend.delete_conversation(conversation.id)

    @pytest.mark.asyncio
    async def test_append_updates_metadata(self, backend, owner):
        conversation = await backend.create_conversation(owner, "meta")
        long_text = "x" * (PREVIEW_CHARS + 40)

        message = await backend.append_message(conversation.id, "user", long_text)

        updated = await backend.get_conversation(conversation.id)
        assert updated.message_count == 1
        assert updated.preview == long_text[:PREVIEW_CHARS]
        assert updated.updated_at >= conversation.updated_at
        assert updated.updated_at == message.created_at
        await backend.delete_conversation(conversation.id)

    @pytest.mark.asyncio
    async def test_append_to_missing_conversation(self, backend):
        with pytest.raises(ConversationNotFound) as exc_info:
            await backend.append_message(str(uuid.uuid4()), "user", "orphan")
        assert "Conversation not found" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_list_messages_unknown(self, backend):
        assert await backend.list_messages(str(uuid.uuid4())) == []


# ---------------------------------------------------------------------------
# Titles
# ---------------------------------------------------------------------------


class TestConversationTitle:
    def test_short_message_kept(self):
        assert conversation_title("Where is order 77?") == "Where is order 77?"

    def test_whitespace_collapsed(self):
        assert conversation_title("  a \n b\t c ") == "a b c"

    def test_truncated_with_ellipsis(self):
        title = conversation_title("word " * 30)
        assert len(title) <= 50
        assert title.endswith("...")

    def test_blank(self):
        assert conversation_title("   ") == "New Conversation"


# ---------------------------------------------------------------------------
# Database lifecycle
# ---------------------------------------------------------------------------


class TestDatabaseLifecycle:
    @pytest.mark.asyncio
    async def test_context_manager_with_borrowed_database(self, settings_factory, owner):
        """A store that does not own its Database leaves disposal to the caller."""
        from taskrelay.storage.conversations import SqlConversationStore
        from taskrelay.storage.database import Database

        settings = settings_factory(store_backend="postgres")
        reachable = Database(settings)
        try:
            await reachable.connect()
        except Exception as e:
            pytest.skip(f"PostgreSQL unavailable: {e.__class__.__name__}")
        finally:
            await reachable.disconnect()

        database = Database(settings)
        async with database as db:
            assert db is database
            store = SqlConversationStore(db, owns_database=False)
            conv = await store.create_conversation(owner, "Lifecycle")
            await store.append_message(conv.id, "user", "hello")
            await store.close()

            # Still usable: close() did not dispose the borrowed engine
            assert len(await store.list_messages(conv.id)) == 1
