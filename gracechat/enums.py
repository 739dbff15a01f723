from enum import Enum


class Sender(str, Enum):
    """Who authored a message."""
    USER = "USER"
    BOT = "BOT"


class Category(str, Enum):
    """Category of a message's content."""
    TEXT = "TEXT"
    VERSE = "VERSE"
    PRAYER = "PRAYER"
    DEVOTIONAL = "DEVOTIONAL"
    ADVICE = "ADVICE"
