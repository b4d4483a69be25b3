"""Ramp rule evaluation.

A ramp rule pins a flow (or a glob of flows) away from one specific version
of an image type while that version is being rolled out.
"""

from __future__ import annotations

import fnmatch
import logging
from typing import Protocol

from ..catalog.interface import RampRuleStore
from ..models import normalize_type

logger = logging.getLogger(__name__)


class RuleEvaluator(Protocol):
    """Decides whether a flow is excluded from receiving a version via rampup."""

    def is_excluded(self, flow_name: str, image_type: str, version: str) -> bool:  # pragma: no cover - protocol
        ...


class RampRuleEvaluator:
    """RuleEvaluator backed by a RampRuleStore.

    A rule applies when its image type and version equal the requested ones
    (case-insensitively) and its flow pattern matches the flow name.
    """

    def __init__(self, store: RampRuleStore) -> None:
        self.store = store

    def is_excluded(self, flow_name: str, image_type: str, version: str) -> bool:
        key = normalize_type(image_type)
        for rule in self.store.rules_for(image_type, version):
            if normalize_type(rule.image_type) != key:
                continue
            if rule.version.lower() != version.lower():
                continue
            if fnmatch.fnmatchcase(flow_name, rule.flow_pattern):
                logger.debug(
                    "Ramp rule %s excludes flow=%s from %s:%s",
                    rule.name,
                    flow_name,
                    key,
                    version,
                )
                return True
        return False


class NoRampRules:
    """RuleEvaluator that never excludes anything."""

    def is_excluded(self, flow_name: str, image_type: str, version: str) -> bool:
        return False
