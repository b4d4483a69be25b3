"""Rampup plan ordering and bucket range arithmetic."""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from ..bucket import BUCKET_COUNT
from ..errors import InvalidRampupPlan
from ..models import RampupEntry, normalize_type, normalize_types

logger = logging.getLogger(__name__)


def is_ascending(plan: Sequence[RampupEntry]) -> bool:
    return all(a.percentage <= b.percentage for a, b in zip(plan, plan[1:]))


def order_plan(image_type: str, plan: Sequence[RampupEntry], policy: str) -> List[RampupEntry]:
    """Validate a plan and return it in the order it must be walked.

    Args:
        image_type: Image type the plan belongs to (for messages)
        plan: Entries as returned by the plan store
        policy: 'normalize' | 'reject' | 'preserve'

    Returns:
        Entries in walk order

    Raises:
        InvalidRampupPlan: Percentage outside 1-100, or an unsorted plan under 'reject'
    """
    for entry in plan:
        if not 1 <= entry.percentage <= BUCKET_COUNT:
            raise InvalidRampupPlan(
                image_type,
                f"version {entry.version} has percentage {entry.percentage}, expected 1-100",
            )

    total = sum(entry.percentage for entry in plan)
    if total > BUCKET_COUNT:
        logger.warning(
            "Rampup plan for %s allocates %d%%; entries past bucket 100 are unreachable",
            image_type,
            total,
        )

    if policy == "preserve" or is_ascending(plan):
        return list(plan)
    if policy == "reject":
        raise InvalidRampupPlan(image_type, "entries are not in ascending percentage order")

    logger.warning("Rampup plan for %s is not sorted by percentage, normalizing", image_type)
    return sorted(plan, key=lambda entry: entry.percentage)


def bucket_ranges(plan: Sequence[RampupEntry]) -> List[Tuple[int, int]]:
    """Inclusive (low, high) bucket range owned by each entry, in walk order.

    Ranges are clipped to the bucket space, so an entry entirely past bucket
    100 gets an empty range (low > high).
    """
    ranges = []
    floor = 0
    for entry in plan:
        ranges.append((floor + 1, min(floor + entry.percentage, BUCKET_COUNT)))
        floor += entry.percentage
    return ranges


def match_bucket(plan: Sequence[RampupEntry], bucket: int) -> Optional[RampupEntry]:
    """First entry whose half-open range (floor, floor + percentage] holds the bucket."""
    floor = 0
    for entry in plan:
        if floor < bucket <= floor + entry.percentage:
            return entry
        floor += entry.percentage
    return None


def plans_by_type(
    plans: Mapping[str, Sequence[RampupEntry]], image_types: Iterable[str]
) -> Dict[str, List[RampupEntry]]:
    """Index plans by normalized image type, keeping the first non-empty plan per type."""
    wanted = normalize_types(image_types)
    indexed: Dict[str, List[RampupEntry]] = {}
    for name, plan in plans.items():
        key = normalize_type(name)
        if key not in wanted:
            continue
        entries = list(plan or ())
        if indexed.get(key):
            if entries and entries != indexed[key]:
                logger.warning(
                    "Conflicting rampup plans for %s under key %r, keeping the first", key, name
                )
            continue
        indexed[key] = entries
    return indexed
