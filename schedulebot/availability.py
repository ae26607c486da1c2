"""Availability filtering: subtract plan blocks from primary blocks."""

from __future__ import annotations

import bisect
import logging
from collections.abc import Sequence
from datetime import datetime
from itertools import accumulate

from .models import Block

logger = logging.getLogger(__name__)


def intervals_overlap(
    a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime
) -> bool:
    """Whether two intervals share time. Touching endpoints do not overlap."""
    return a_start < b_end and b_start < a_end


def blocks_overlap(a: Block, b: Block) -> bool:
    return intervals_overlap(a.date, a.end_date, b.date, b.end_date)


class AvailabilityFilter:
    """Answers "does this block collide with any plan block" in O(log n).

    Plan blocks are sorted by start; a running maximum of their ends lets one
    bisect decide whether any plan block starting before the candidate's end
    also ends after the candidate's start.
    """

    def __init__(self, plan_blocks: Sequence[Block]):
        ordered = sorted(plan_blocks, key=lambda p: p.date)
        self._starts = [p.date for p in ordered]
        self._max_ends = list(accumulate((p.end_date for p in ordered), max))

    def is_free(self, block: Block) -> bool:
        idx = bisect.bisect_left(self._starts, block.end_date)
        if idx == 0:
            return True
        return not self._max_ends[idx - 1] > block.date

    def filter(self, primary_blocks: Sequence[Block]) -> list[Block]:
        free = [b for b in primary_blocks if self.is_free(b)]
        logger.debug(
            "Availability: %d of %d primary blocks free against %d plan blocks",
            len(free),
            len(primary_blocks),
            len(self._starts),
        )
        return free


def filter_available(primary_blocks: Sequence[Block], plan_blocks: Sequence[Block]) -> list[Block]:
    """Primary blocks (in input order) that overlap no plan block."""
    return AvailabilityFilter(plan_blocks).filter(primary_blocks)
