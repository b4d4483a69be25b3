"""Rampup-driven image version resolution.

This module provides VersionResolver, which decides the image version each
image type of a flow execution runs with.
"""

from .plan import bucket_ranges, match_bucket, order_plan, plans_by_type
from .resolver import NO_VERSION, VersionResolver

__all__ = [
    "NO_VERSION",
    "VersionResolver",
    "bucket_ranges",
    "match_bucket",
    "order_plan",
    "plans_by_type",
]
