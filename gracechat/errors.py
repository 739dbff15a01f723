"""Exception hierarchy for the chat service."""


class ChatError(Exception):
    """Base error type."""


class InvalidInputError(ChatError):
    """Raised when message content is empty or whitespace-only."""


class NotFoundError(ChatError):
    """Raised when a referenced session does not exist."""


class PersistenceError(ChatError):
    """Raised when a store operation fails."""


class PartialExchangeError(PersistenceError):
    """Raised when the bot reply could not be stored after the user message.

    The user message is rolled back before this is raised, so the exchange
    leaves no trace in storage.
    """
