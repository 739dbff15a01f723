"""
Conversation exchange: store the user's message, classify it and store the reply.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from gracechat.classifier import ClassificationResult, classify
from gracechat.enums import Category, Sender
from gracechat.errors import ChatError, InvalidInputError, PartialExchangeError, PersistenceError
from gracechat.storage import append_message, resolve_session

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExchangeResult:
    """Outcome of one exchange. Never persisted as such."""
    session: object
    user_message: object
    bot_message: object
    classification: ClassificationResult

    @property
    def category(self) -> Category:
        return self.classification.category

    @property
    def content(self) -> str:
        return self.classification.content


def exchange(
    db: Session,
    content: str,
    session_id: Optional[str] = None,
    user_id: Optional[str] = None,
) -> ExchangeResult:
    """
    Run one user/bot exchange.

    The session is resolved (or created) first and committed on its own.
    Both messages are then written in a single transaction: if the bot
    reply cannot be stored, the user message is rolled back as well.

    Args:
        db: Database session for this request
        content: Raw user input
        session_id: Handle from a previous exchange; unknown or missing
            handles start a new session
        user_id: Optional owner for a newly created session

    Returns:
        ExchangeResult with the session and both stored messages

    Raises:
        InvalidInputError: content is blank (nothing is written)
        PartialExchangeError: the bot reply failed after the user message
        PersistenceError: any other store failure
    """
    if not isinstance(content, str) or not content.strip():
        logger.info("Rejected blank message content")
        raise InvalidInputError("Message content must not be empty")

    text = content.strip()
    chat_session = resolve_session(db, session_id=session_id, user_id=user_id)
    logger.info(f"Exchange started in session {chat_session.id}")

    try:
        user_message = append_message(
            db, chat_session.id, Sender.USER, Category.TEXT, text, commit=False
        )
    except ChatError:
        db.rollback()
        raise

    classification = classify(text)
    logger.debug(f"Classified input as {classification.category.value} (rule={classification.rule})")

    try:
        bot_message = append_message(
            db,
            chat_session.id,
            Sender.BOT,
            classification.category,
            classification.content,
            commit=False,
        )
    except Exception as e:
        db.rollback()
        logger.error(f"Bot reply failed in session {chat_session.id}, user message rolled back: {e}")
        raise PartialExchangeError("Failed to store bot reply; exchange was rolled back") from e

    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to commit exchange in session {chat_session.id}: {e}")
        raise PersistenceError("Failed to store exchange") from e

    try:
        db.refresh(chat_session)
        db.refresh(user_message)
        db.refresh(bot_message)
    except SQLAlchemyError as e:
        logger.error(f"Exchange committed in session {chat_session.id} but could not be reloaded: {e}")
        raise PersistenceError("Failed to load stored exchange") from e

    logger.info(
        f"Exchange stored: session={chat_session.id}, user={user_message.id}, "
        f"bot={bot_message.id}, category={classification.category.value}"
    )
    return ExchangeResult(
        session=chat_session,
        user_message=user_message,
        bot_message=bot_message,
        classification=classification,
    )
