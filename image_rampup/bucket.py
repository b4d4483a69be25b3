"""Deterministic mapping of a flow identity onto a rampup bucket."""

from __future__ import annotations

import hashlib

from .models import FlowContext

BUCKET_COUNT = 100


def flow_bucket(flow: FlowContext) -> int:
    """Map a flow to a bucket in [1, 100] from the MD5 of its identity."""
    digest = hashlib.md5(flow.identity.encode("utf-8")).digest()
    value = int.from_bytes(digest[:8], "big")
    return value % BUCKET_COUNT + 1
