"""
Tests for the client conversation state machine.

Tests cover:
- Mount with and without existing sessions
- Lazy session creation on first submit
- Submission guards (blank text, request in flight)
- History preserved on failures
- Background refresh never touching messages
- Merge ordering and de-duplication
"""

import pytest
from fastapi.testclient import TestClient

from gracechat import conversation
from gracechat.client import ApiError, ChatApiClient
from gracechat.client_state import ConversationState, ConversationStatus, merge_messages
from gracechat.errors import PersistenceError
from gracechat.main import app
from gracechat.models import ChatSession, Message
from gracechat.schemas import (
    ClassificationPayload,
    ExchangeResponse,
    MessageResponse,
    SessionDetail,
    SessionSummary,
)
from gracechat.storage import Base, SessionLocal, engine


@pytest.fixture(scope="function")
def api():
    """Chat API client backed by the app, with a fresh database."""
    Base.metadata.create_all(bind=engine)

    with TestClient(app) as test_client:
        yield ChatApiClient(test_client)

    Base.metadata.drop_all(bind=engine)


def make_message(message_id, sender, ts, session_id="s1", content="text", category="TEXT"):
    return MessageResponse(
        id=message_id,
        session_id=session_id,
        content=content,
        sender=sender,
        category=category,
        created_at=ts,
    )


class FakeApi:
    """In-memory stand-in for ChatApiClient with scriptable failures."""

    def __init__(self):
        self.sessions = []
        self.details = {}
        self.replies = []
        self.fail_send = None
        self.fail_list = None
        self.on_send = None
        self.list_calls = 0

    def list_sessions(self):
        self.list_calls += 1
        if self.fail_list:
            raise self.fail_list
        return list(self.sessions)

    def get_session(self, session_id):
        if session_id not in self.details:
            raise ApiError("Chat session not found", status_code=404)
        return self.details[session_id]

    def send_message(self, content, session_id=None):
        if self.on_send:
            self.on_send()
        if self.fail_send:
            raise self.fail_send
        return self.replies.pop(0)


def make_reply(n, session_id="s1"):
    user = make_message(f"u{n}", "USER", f"2025-01-15T10:00:0{n}.000000Z", session_id)
    bot = make_message(f"b{n}", "BOT", f"2025-01-15T10:00:0{n}.000001Z", session_id)
    return ExchangeResponse(
        session_id=session_id,
        user_message=user,
        bot_message=bot,
        response=ClassificationPayload(category="TEXT", content="text"),
    )


class TestMount:

    def test_no_sessions_stays_uninitialized(self, api):
        state = ConversationState(api)

        state.mount()

        assert state.status == ConversationStatus.UNINITIALIZED
        assert state.session_id is None
        assert state.messages == ()

    def test_opens_most_recent_session(self, api):
        older = api.send_message("hello").session_id
        newer = api.send_message("prayer for anxiety").session_id
        state = ConversationState(api)

        state.mount()

        assert state.status == ConversationStatus.READY
        assert state.session_id == newer != older
        assert [m.sender.value for m in state.messages] == ["USER", "BOT"]
        assert state.messages[1].category.value == "PRAYER"

    def test_mount_failure(self):
        fake = FakeApi()
        fake.fail_list = ApiError("Could not reach the server")
        state = ConversationState(fake)

        state.mount()

        assert state.status == ConversationStatus.ERROR
        assert state.error == "Could not reach the server"
        assert state.messages == ()


class TestSubmit:

    def test_first_submit_creates_session(self, api):
        state = ConversationState(api)
        state.mount()

        assert state.submit("John 3:16 meaning") is True

        assert state.status == ConversationStatus.READY
        assert state.session_id is not None
        assert [m.sender.value for m in state.messages] == ["USER", "BOT"]
        assert "For God so loved the world" in state.messages[1].content
        assert [s.id for s in state.sessions] == [state.session_id]

    def test_follow_up_stays_in_session(self, api):
        state = ConversationState(api)
        state.submit("hello")
        session_id = state.session_id

        state.submit("how to grow in faith")

        assert state.session_id == session_id
        assert len(state.messages) == 4
        stamps = [m.created_at for m in state.messages]
        assert stamps == sorted(stamps)
        assert len(api.list_sessions()) == 1

    @pytest.mark.parametrize("text", ["", "   ", "\n"])
    def test_blank_text_ignored(self, text):
        fake = FakeApi()
        state = ConversationState(fake)

        assert state.submit(text) is False
        assert state.status == ConversationStatus.UNINITIALIZED

    def test_submit_while_loading_ignored(self):
        fake = FakeApi()
        fake.replies = [make_reply(1)]
        state = ConversationState(fake)
        nested = []
        fake.on_send = lambda: nested.append(state.submit("second"))

        state.submit("first")

        assert nested == [False]
        assert len(state.messages) == 2

    def test_failure_preserves_history(self):
        fake = FakeApi()
        fake.replies = [make_reply(1)]
        state = ConversationState(fake)
        state.submit("first")
        before = state.messages

        fake.fail_send = ApiError("Failed to process message", status_code=500)
        assert state.submit("second") is True

        assert state.status == ConversationStatus.ERROR
        assert state.error == "Failed to process message"
        assert state.messages == before
        assert state.session_id == "s1"

    def test_unexpected_error_is_caught(self):
        fake = FakeApi()
        fake.fail_send = RuntimeError("boom")
        state = ConversationState(fake)

        state.submit("hello")

        assert state.status == ConversationStatus.ERROR
        assert state.error == "Failed to send message"

    def test_server_error_surfaces_detail(self, api, monkeypatch):
        def failing_append(*args, **kwargs):
            raise PersistenceError("disk full")

        monkeypatch.setattr(conversation, "append_message", failing_append)
        state = ConversationState(api)

        state.submit("hello")

        assert state.status == ConversationStatus.ERROR
        assert state.error == "Failed to process message"

    def test_recovers_after_error(self):
        fake = FakeApi()
        fake.fail_send = ApiError("offline")
        state = ConversationState(fake)
        state.submit("hello")

        fake.fail_send = None
        fake.replies = [make_reply(1)]
        state.submit("hello")

        assert state.status == ConversationStatus.READY
        assert state.error is None
        assert len(state.messages) == 2

    def test_deleted_session_is_replaced(self, api):
        """A handle the server no longer knows is swapped for the new session."""
        state = ConversationState(api)
        state.submit("hello")
        stale = state.session_id

        with SessionLocal() as db:
            db.query(Message).filter(Message.session_id == stale).delete()
            db.query(ChatSession).filter(ChatSession.id == stale).delete()
            db.commit()

        state.submit("prayer for anxiety")
        replacement = state.session_id
        state.submit("how to grow in faith")

        assert replacement != stale
        assert state.session_id == replacement
        assert {m.session_id for m in state.messages} == {replacement}
        assert len(state.messages) == 4
        assert len(api.list_sessions()) == 1

    def test_changed_session_drops_old_messages(self):
        fake = FakeApi()
        fake.replies = [make_reply(1, session_id="s1"), make_reply(2, session_id="s2")]
        state = ConversationState(fake)
        state.submit("first")

        state.submit("second")

        assert state.session_id == "s2"
        assert [m.id for m in state.messages] == ["u2", "b2"]


class TestRefresh:

    def test_refresh_failure_keeps_messages(self):
        fake = FakeApi()
        fake.replies = [make_reply(1)]
        fake.fail_list = ApiError("offline")
        state = ConversationState(fake)

        state.submit("hello")

        assert state.status == ConversationStatus.READY
        assert state.error is None
        assert len(state.messages) == 2
        assert fake.list_calls == 1

    def test_refresh_does_not_replace_messages(self):
        fake = FakeApi()
        fake.replies = [make_reply(1)]
        state = ConversationState(fake)
        state.submit("hello")
        fake.sessions = [
            SessionSummary(id="s1", created_at="2025-01-15T10:00:00.000000Z",
                           updated_at="2025-01-15T10:00:01.000001Z"),
        ]

        state.refresh_sessions()

        assert [s.id for s in state.sessions] == ["s1"]
        assert [m.id for m in state.messages] == ["u1", "b1"]


class TestNavigation:

    def test_new_conversation_then_submit(self, api):
        state = ConversationState(api)
        state.submit("hello")
        first = state.session_id

        state.new_conversation()
        assert state.status == ConversationStatus.UNINITIALIZED
        assert state.messages == ()

        state.submit("hello")
        assert state.session_id != first
        assert len(state.sessions) == 2

    def test_select_session(self, api):
        first = api.send_message("hello").session_id
        api.send_message("prayer for anxiety")
        state = ConversationState(api)
        state.mount()

        state.select_session(first)

        assert state.session_id == first
        assert state.messages[0].content == "hello"

    def test_select_unknown_session_keeps_history(self):
        fake = FakeApi()
        fake.replies = [make_reply(1)]
        state = ConversationState(fake)
        state.submit("hello")

        state.select_session("missing")

        assert state.status == ConversationStatus.ERROR
        assert state.error == "Chat session not found"
        assert len(state.messages) == 2
        assert state.session_id == "s1"


class TestObservers:

    def test_listeners_see_transitions(self):
        fake = FakeApi()
        fake.replies = [make_reply(1)]
        state = ConversationState(fake)
        seen = []
        unsubscribe = state.subscribe(lambda snap: seen.append((snap.status, snap.is_loading)))

        state.submit("hello")
        unsubscribe()
        state.new_conversation()

        assert seen[0] == (ConversationStatus.LOADING, True)
        assert (ConversationStatus.READY, False) in seen
        assert (ConversationStatus.UNINITIALIZED, False) not in seen


class TestMerge:

    def test_sorts_by_timestamp(self):
        late = make_message("a", "BOT", "2025-01-15T10:00:02.000000Z")
        early = make_message("b", "USER", "2025-01-15T10:00:01.000000Z")

        merged = merge_messages([late], [early])

        assert [m.id for m in merged] == ["b", "a"]

    def test_replaces_duplicates(self):
        original = make_message("a", "USER", "2025-01-15T10:00:01.000000Z", content="old")
        updated = make_message("a", "USER", "2025-01-15T10:00:01.000000Z", content="new")

        merged = merge_messages([original], [updated])

        assert len(merged) == 1
        assert merged[0].content == "new"

    def test_detail_messages_are_ordered(self):
        detail = SessionDetail(
            id="s1",
            created_at="2025-01-15T10:00:00.000000Z",
            updated_at="2025-01-15T10:00:02.000000Z",
            messages=[
                make_message("b", "BOT", "2025-01-15T10:00:02.000000Z"),
                make_message("a", "USER", "2025-01-15T10:00:01.000000Z"),
            ],
        )
        fake = FakeApi()
        fake.sessions = [SessionSummary(id="s1", created_at=detail.created_at, updated_at=detail.updated_at)]
        fake.details = {"s1": detail}
        state = ConversationState(fake)

        state.mount()

        assert [m.id for m in state.messages] == ["a", "b"]
