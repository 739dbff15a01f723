import logging
from typing import Generator, Optional, Tuple

from sqlalchemy import and_, create_engine, func, inspect, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from gracechat.config import settings
from gracechat.enums import Category, Sender
from gracechat.errors import NotFoundError, PersistenceError
from gracechat.utils import format_timestamp, next_timestamp, utc_now

logger = logging.getLogger(__name__)

# check_same_thread=False is required for SQLite to work with FastAPI's threadpool
engine = create_engine(
    settings.DATABASE_URL,
    connect_args={"check_same_thread": False} if settings.DATABASE_URL.startswith("sqlite") else {},
    echo=False,
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()

REQUIRED_TABLES = ("chat_sessions", "messages")


def init_db() -> None:
    """
    Initialize the database by creating all tables.
    Called during application startup.
    """
    logger.debug(f"Initializing database with URL: {settings.DATABASE_URL}")
    try:
        # Import models to register them with Base.metadata
        from gracechat import models  # noqa: F401

        logger.debug("Creating database tables...")
        Base.metadata.create_all(bind=engine)
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise


def get_db() -> Generator[Session, None, None]:
    """
    Dependency to get database session.
    Yields a session and ensures it's closed after use.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def check_db_health() -> bool:
    """
    Check if the database is reachable and schema is applied.

    Returns:
        True if DB is healthy and schema exists, False otherwise.
    """
    logger.debug("Checking database health...")
    try:
        with SessionLocal() as db:
            db.execute(text("SELECT 1"))
            logger.debug("Database connectivity OK")

        inspector = inspect(engine)
        for table in REQUIRED_TABLES:
            if not inspector.has_table(table):
                logger.error(f"Database schema not applied: '{table}' table not found")
                return False
        logger.debug("Database health check passed")
        return True
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return False


# =============================================================================
# Session Repository Functions
# =============================================================================

def resolve_session(db: Session, session_id: Optional[str] = None, user_id: Optional[str] = None):
    """
    Find a session by ID, or create a new one.

    A new session is created when no ID is given or the ID is unknown.
    A known ID is returned unchanged and never creates anything.

    Args:
        db: Database session
        session_id: Optional handle returned by an earlier exchange
        user_id: Optional owner recorded on a newly created session

    Returns:
        ChatSession object (persisted)

    Raises:
        PersistenceError: if the lookup or insert fails
    """
    from gracechat.models import ChatSession

    try:
        if session_id:
            existing = db.get(ChatSession, session_id)
            if existing is not None:
                logger.debug(f"Resolved existing session: {session_id}")
                return existing
            logger.info(f"Session {session_id} not found, creating a new one")

        now = format_timestamp(utc_now())
        chat_session = ChatSession(user_id=user_id, created_at=now, updated_at=now)
        db.add(chat_session)
        db.commit()
        db.refresh(chat_session)
        logger.info(f"Session created: {chat_session.id}")
        return chat_session

    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to resolve session {session_id}: {e}")
        raise PersistenceError("Failed to resolve chat session") from e


def get_session(db: Session, session_id: str):
    """
    Retrieve a session by its ID.

    Raises:
        NotFoundError: if no session has this ID
        PersistenceError: if the lookup fails
    """
    from gracechat.models import ChatSession

    try:
        chat_session = db.get(ChatSession, session_id)
    except SQLAlchemyError as e:
        logger.error(f"Failed to load session {session_id}: {e}")
        raise PersistenceError("Failed to load chat session") from e

    if chat_session is None:
        logger.info(f"Session lookup result: not found ({session_id})")
        raise NotFoundError(f"Chat session {session_id} not found")
    return chat_session


def list_sessions(db: Session, limit: int = 50) -> list[Tuple[object, Optional[object]]]:
    """
    List sessions by recency, each paired with its first message.

    Args:
        db: Database session
        limit: Maximum number of sessions to return

    Returns:
        List of (ChatSession, first Message or None), most recently updated first
    """
    from gracechat.models import ChatSession, Message

    logger.info(f"Listing sessions: limit={limit}")
    try:
        sessions = (
            db.query(ChatSession)
            .order_by(ChatSession.updated_at.desc(), ChatSession.created_at.desc())
            .limit(limit)
            .all()
        )
        previews = {}
        if sessions:
            # Timestamps are unique within a session, so min(created_at) picks one message
            first_at = (
                db.query(
                    Message.session_id.label("session_id"),
                    func.min(Message.created_at).label("first_at"),
                )
                .filter(Message.session_id.in_([s.id for s in sessions]))
                .group_by(Message.session_id)
                .subquery()
            )
            rows = (
                db.query(Message)
                .join(
                    first_at,
                    and_(
                        Message.session_id == first_at.c.session_id,
                        Message.created_at == first_at.c.first_at,
                    ),
                )
                .all()
            )
            previews = {message.session_id: message for message in rows}
        result = [(chat_session, previews.get(chat_session.id)) for chat_session in sessions]
    except SQLAlchemyError as e:
        logger.error(f"Failed to list sessions: {e}")
        raise PersistenceError("Failed to list chat sessions") from e

    logger.debug(f"Listed {len(result)} sessions")
    return result


# =============================================================================
# Message Repository Functions
# =============================================================================

def append_message(
    db: Session,
    session_id: str,
    sender: Sender,
    category: Category,
    content: str,
    commit: bool = True,
):
    """
    Append a message to a session.

    The timestamp is strictly later than every message already in the
    session, so messages keep a total order even on a coarse clock.

    Args:
        db: Database session
        session_id: Owning session
        sender: USER or BOT
        category: Message category
        content: Message text
        commit: Commit immediately; when False the row is only flushed and
            the caller owns the transaction

    Returns:
        Message object

    Raises:
        NotFoundError: if the session does not exist
        PersistenceError: if the insert fails
    """
    from gracechat.models import ChatSession, Message

    logger.info(f"Appending {Sender(sender).value} message to session {session_id}")
    try:
        chat_session = db.get(ChatSession, session_id)
        if chat_session is None:
            raise NotFoundError(f"Chat session {session_id} not found")

        latest = (
            db.query(func.max(Message.created_at))
            .filter(Message.session_id == session_id)
            .scalar()
        )
        created_at = next_timestamp(latest)
        logger.debug(f"Message timestamp: {created_at} (previous: {latest})")

        message = Message(
            session_id=session_id,
            content=content,
            sender=Sender(sender).value,
            category=Category(category).value,
            created_at=created_at,
        )
        db.add(message)
        chat_session.updated_at = created_at

        if commit:
            db.commit()
            db.refresh(message)
        else:
            db.flush()
        logger.info(f"Message stored: {message.id}")
        return message

    except SQLAlchemyError as e:
        if commit:
            db.rollback()
        logger.error(f"Failed to store message in session {session_id}: {e}")
        raise PersistenceError("Failed to store message") from e


def list_messages_ordered(db: Session, session_id: str) -> list:
    """
    Retrieve every message of a session, oldest first.

    Returns:
        List of Message objects (empty when the session has none)

    Raises:
        NotFoundError: if the session does not exist
    """
    from gracechat.models import Message

    get_session(db, session_id)
    try:
        messages = (
            db.query(Message)
            .filter(Message.session_id == session_id)
            .order_by(Message.created_at.asc(), Message.id.asc())
            .all()
        )
    except SQLAlchemyError as e:
        logger.error(f"Failed to list messages for session {session_id}: {e}")
        raise PersistenceError("Failed to load messages") from e

    logger.debug(f"Retrieved {len(messages)} messages for session {session_id}")
    return messages
