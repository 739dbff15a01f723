"""Client-side view of a conversation, kept in sync with the chat API."""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, Optional, Protocol

from gracechat.client import ApiError
from gracechat.schemas import ExchangeResponse, MessageResponse, SessionDetail, SessionSummary
from gracechat.utils import parse_timestamp

logger = logging.getLogger(__name__)


class ChatApi(Protocol):
    def list_sessions(self) -> list[SessionSummary]: ...

    def get_session(self, session_id: str) -> SessionDetail: ...

    def send_message(self, content: str, session_id: Optional[str] = None) -> ExchangeResponse: ...


class ConversationStatus(str, Enum):
    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


@dataclass(frozen=True)
class ConversationSnapshot:
    """Immutable view handed to the UI and to listeners."""

    status: ConversationStatus
    session_id: Optional[str]
    messages: tuple[MessageResponse, ...] = ()
    sessions: tuple[SessionSummary, ...] = ()
    error: Optional[str] = None

    @property
    def is_loading(self) -> bool:
        return self.status is ConversationStatus.LOADING


Listener = Callable[[ConversationSnapshot], None]


def _sort_key(message: MessageResponse):
    return parse_timestamp(message.created_at), message.id


def merge_messages(
    current: Iterable[MessageResponse], incoming: Iterable[MessageResponse]
) -> tuple[MessageResponse, ...]:
    """Merge incoming messages into current ones (by id) and sort by timestamp."""
    by_id = {message.id: message for message in current}
    for message in incoming:
        by_id[message.id] = message
    return tuple(sorted(by_id.values(), key=_sort_key))


class ConversationState:
    """
    State machine behind the chat screen.

    Only one mutation runs at a time: mount, submit and select_session are
    ignored while the state is LOADING. A failed call moves to ERROR but
    keeps the messages already on screen.
    """

    def __init__(self, api: ChatApi) -> None:
        self.api = api
        self._status = ConversationStatus.UNINITIALIZED
        self._session_id: Optional[str] = None
        self._messages: tuple[MessageResponse, ...] = ()
        self._sessions: tuple[SessionSummary, ...] = ()
        self._error: Optional[str] = None
        self._listeners: list[Listener] = []

    # ------------------------------------------------------------------ views

    @property
    def status(self) -> ConversationStatus:
        return self._status

    @property
    def session_id(self) -> Optional[str]:
        return self._session_id

    @property
    def messages(self) -> tuple[MessageResponse, ...]:
        return self._messages

    @property
    def sessions(self) -> tuple[SessionSummary, ...]:
        return self._sessions

    @property
    def is_loading(self) -> bool:
        return self._status is ConversationStatus.LOADING

    @property
    def error(self) -> Optional[str]:
        return self._error

    def snapshot(self) -> ConversationSnapshot:
        return ConversationSnapshot(
            status=self._status,
            session_id=self._session_id,
            messages=self._messages,
            sessions=self._sessions,
            error=self._error,
        )

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener called after every transition. Returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            listener(snapshot)

    def _transition(self, status: ConversationStatus, error: Optional[str] = None) -> None:
        logger.debug(f"Conversation state {self._status.value} -> {status.value}")
        self._status = status
        self._error = error
        self._notify()

    # -------------------------------------------------------------- mutations

    def mount(self) -> None:
        """Load the session list and open the most recent session, if any."""
        if self._session_id is not None or self.is_loading:
            return

        self._transition(ConversationStatus.LOADING)
        try:
            self._sessions = tuple(self.api.list_sessions())
        except Exception as e:
            logger.warning(f"Failed to load chat sessions: {e}")
            self._transition(ConversationStatus.ERROR, _error_text(e, "Failed to load chat sessions"))
            return

        if not self._sessions:
            self._transition(ConversationStatus.UNINITIALIZED)
            return
        self._open(self._sessions[0].id)

    def select_session(self, session_id: str) -> None:
        """Switch to another session and load its messages."""
        if self.is_loading:
            return
        self._transition(ConversationStatus.LOADING)
        self._open(session_id)

    def new_conversation(self) -> None:
        """Drop the active session; the next submit starts a new one on the server."""
        if self.is_loading:
            return
        self._session_id = None
        self._messages = ()
        self._transition(ConversationStatus.UNINITIALIZED)

    def submit(self, text: str) -> bool:
        """
        Send one message.

        Returns:
            False if the submission was ignored (blank text or a call
            already in flight), True otherwise, even if the call failed.
        """
        if not isinstance(text, str) or not text.strip():
            return False
        if self.is_loading:
            logger.debug("Ignoring submit while a request is in flight")
            return False

        self._transition(ConversationStatus.LOADING)
        try:
            result = self.api.send_message(text.strip(), self._session_id)
        except Exception as e:
            logger.warning(f"Failed to send message: {e}")
            self._transition(ConversationStatus.ERROR, _error_text(e, "Failed to send message"))
            return True

        reply = (result.user_message, result.bot_message)
        if result.session_id == self._session_id:
            self._messages = merge_messages(self._messages, reply)
        else:
            # New conversation, or the server no longer knew our handle
            if self._session_id is not None:
                logger.info(f"Session {self._session_id} replaced by {result.session_id}")
            self._session_id = result.session_id
            self._messages = merge_messages((), reply)
        self._transition(ConversationStatus.READY)

        self.refresh_sessions()
        return True

    def refresh_sessions(self) -> None:
        """
        Reload the session list in the background.

        Failures are logged only. The active session and its messages are
        never touched.
        """
        try:
            sessions = tuple(self.api.list_sessions())
        except Exception as e:
            logger.warning(f"Background session refresh failed: {e}")
            return
        self._sessions = sessions
        self._notify()

    # ---------------------------------------------------------------- helpers

    def _open(self, session_id: str) -> None:
        try:
            detail = self.api.get_session(session_id)
        except Exception as e:
            logger.warning(f"Failed to load messages for session {session_id}: {e}")
            self._transition(ConversationStatus.ERROR, _error_text(e, "Failed to load messages"))
            return

        self._session_id = detail.id
        self._messages = merge_messages((), detail.messages)
        self._transition(ConversationStatus.READY)


def _error_text(error: Exception, fallback: str) -> str:
    if isinstance(error, ApiError) and error.message:
        return error.message
    return fallback
