"""Topic classification of free blocks."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Sequence
from datetime import tzinfo
from enum import Enum
from typing import Optional

from .exceptions import UnknownTopicError
from .models import Block

logger = logging.getLogger(__name__)

# (summary, local hour of the block start) -> match
TopicPredicate = Callable[[Optional[str], int], bool]


def _mentions(summary: Optional[str], word: str) -> bool:
    return summary is not None and word in summary


class Topic(str, Enum):
    """Closed set of topic buckets, each carrying its predicate."""

    predicate: TopicPredicate

    def __new__(cls, value: str, predicate: TopicPredicate) -> Topic:
        member = str.__new__(cls, value)
        member._value_ = value
        member.predicate = predicate
        return member

    LUNCH = ("lunch", lambda summary, hour: _mentions(summary, "Lunch"))
    DINNER = ("dinner", lambda summary, hour: _mentions(summary, "Dinner"))
    WORK = ("work", lambda summary, hour: _mentions(summary, "Work") and hour < 17)
    AFTERNOON = ("afternoon", lambda summary, hour: 12 <= hour < 18)
    EVENING = ("evening", lambda summary, hour: hour >= 18)

    def matches(self, block: Block, tz: tzinfo) -> bool:
        """Evaluate against the block's local wall-clock hour at its start."""
        return self.predicate(block.summary, block.date.astimezone(tz).hour)


def parse_topics(names: Iterable[str]) -> frozenset[Topic]:
    """Map topic names to Topic members.

    Raises:
        UnknownTopicError: For a name outside the topic table
    """
    topics = set()
    for name in names:
        key = name.strip().lower()
        if not key:
            continue
        try:
            topics.add(Topic(key))
        except ValueError:
            raise UnknownTopicError(
                f"Unknown topic {name!r}; expected one of {', '.join(t.value for t in Topic)}"
            ) from None
    return frozenset(topics)


def matching_topics(block: Block, tz: tzinfo) -> list[Topic]:
    return [topic for topic in Topic if topic.matches(block, tz)]


def filter_by_topics(blocks: Sequence[Block], topics: Iterable[Topic], tz: tzinfo) -> list[Block]:
    """Blocks matching at least one selected topic; all blocks when none is selected."""
    selected = frozenset(topics)
    if not selected:
        return list(blocks)
    return [b for b in blocks if any(topic.matches(b, tz) for topic in selected)]
