"""Rule-based classification of user input into a bot reply."""

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from gracechat.enums import Category

logger = logging.getLogger(__name__)

Predicate = Callable[[str], bool]


@dataclass(frozen=True)
class ClassificationResult:
    category: Category
    content: str
    explanation: Optional[str] = None
    rule: str = "default"


@dataclass(frozen=True)
class Rule:
    """One row of the rule table: a predicate over normalized text and its reply."""

    name: str
    predicate: Predicate
    category: Category
    content: str
    explanation: Optional[str] = None

    def matches(self, normalized: str) -> bool:
        return self.predicate(normalized)


def contains_any(*tokens: str) -> Predicate:
    def predicate(text: str) -> bool:
        return any(token in text for token in tokens)

    return predicate


def contains_all(*tokens: str) -> Predicate:
    def predicate(text: str) -> bool:
        return all(token in text for token in tokens)

    return predicate


def always(_text: str) -> bool:
    return True


VERSE_CONTENT = (
    '"For God so loved the world that he gave his one and only Son, that whoever '
    'believes in him shall not perish but have eternal life." - John 3:16 (NIV)'
)
VERSE_EXPLANATION = (
    'This verse is often called the "Gospel in a nutshell" because it summarizes '
    "God's plan of salvation."
)
PRAYER_CONTENT = (
    "Heavenly Father, in the name of Jesus, I come to You feeling anxious and "
    "overwhelmed. Your Word says in Philippians 4:6-7 to not be anxious about "
    "anything, but in every situation, by prayer and petition, with thanksgiving, "
    "to present our requests to You. Fill me with Your peace that surpasses all "
    "understanding. In Jesus' name, Amen."
)
DEVOTIONAL_CONTENT = (
    "Trusting God's Timing\n\n"
    '"Wait for the Lord; be strong and take heart and wait for the Lord." - Psalm 27:14\n\n'
    "In our fast-paced world, waiting is difficult. We want instant answers, quick "
    "solutions, and immediate results."
)
ADVICE_CONTENT = (
    "Growing in faith is a lifelong journey. Here are some biblical ways to "
    "strengthen your faith:\n\n"
    "1. Regular Bible Study (Romans 10:17)\n"
    "2. Prayer (Mark 11:24)\n"
    "3. Fellowship (Hebrews 10:25)"
)
DEFAULT_CONTENT = (
    "Thank you for sharing. As you seek God's wisdom, remember Jeremiah 29:13 - "
    "'You will seek me and find me when you seek me with all your heart.'"
)

# Evaluated top to bottom; the first match wins. The last rule always matches.
RULES: tuple[Rule, ...] = (
    Rule(
        name="verse",
        predicate=contains_any("john 3:16", "meaning"),
        category=Category.VERSE,
        content=VERSE_CONTENT,
        explanation=VERSE_EXPLANATION,
    ),
    Rule(
        name="prayer",
        predicate=contains_all("prayer", "anxiety"),
        category=Category.PRAYER,
        content=PRAYER_CONTENT,
    ),
    Rule(
        name="devotional",
        predicate=contains_any("devotional", "daily"),
        category=Category.DEVOTIONAL,
        content=DEVOTIONAL_CONTENT,
    ),
    Rule(
        name="advice",
        predicate=contains_all("grow", "faith"),
        category=Category.ADVICE,
        content=ADVICE_CONTENT,
    ),
    Rule(
        name="default",
        predicate=always,
        category=Category.TEXT,
        content=DEFAULT_CONTENT,
    ),
)


def normalize(text: str) -> str:
    return text.strip().lower()


def classify(text: str, rules: tuple[Rule, ...] = RULES) -> ClassificationResult:
    """
    Map raw user input to a reply category and content.

    Deterministic and side-effect free. Blank input is not rejected here;
    callers are expected to validate it first.

    Args:
        text: Raw user input
        rules: Ordered rule table, the last entry must be a catch-all

    Returns:
        ClassificationResult of the first matching rule

    Raises:
        TypeError: if text is not a string
    """
    if not isinstance(text, str):
        raise TypeError(f"classify expects str, got {type(text).__name__}")

    normalized = normalize(text)
    for rule in rules:
        if rule.matches(normalized):
            logger.debug(f"Input matched rule {rule.name} -> {rule.category.value}")
            return ClassificationResult(
                category=rule.category,
                content=rule.content,
                explanation=rule.explanation,
                rule=rule.name,
            )

    # Only reachable with a custom table lacking a catch-all
    raise ValueError("rule table has no catch-all rule")
