"""Dict-backed catalog implementing every store protocol.

Useful for tests and for wiring the resolver before a real data-access
layer is available. Insertion order defines "latest": the version added last
for a type wins.
"""

from __future__ import annotations

import logging
import threading
from typing import AbstractSet, Any, Dict, Iterable, List, Optional

from ..models import (
    ImageType,
    ImageVersion,
    RampRule,
    RampupEntry,
    State,
    normalize_type,
    normalize_types,
)

logger = logging.getLogger(__name__)

INVALID_STATES = frozenset({State.UNSTABLE, State.DEPRECATED})


class InMemoryCatalog:
    """Implements ImageTypeCatalog, ImageVersionCatalog, RampupPlanStore and RampRuleStore."""

    def __init__(self) -> None:
        self._types: Dict[str, ImageType] = {}
        self._versions: Dict[str, List[ImageVersion]] = {}
        self._plans: Dict[str, List[RampupEntry]] = {}
        self._rules: List[RampRule] = []
        self._lock = threading.RLock()

    # --- population ---

    def add_image_type(self, name: str, description: Optional[str] = None) -> ImageType:
        image_type = ImageType(name=name, description=description)
        with self._lock:
            self._types[image_type.key] = image_type
            self._versions.setdefault(image_type.key, [])
        return image_type

    def add_version(
        self,
        image_type: str,
        version: str,
        path: Optional[str] = None,
        state: State | str = State.NEW,
        release_tag: Optional[str] = None,
    ) -> ImageVersion:
        key = normalize_type(image_type)
        image_version = ImageVersion(
            image_type=image_type,
            version=version,
            path=path or f"registry/{key}",
            state=State.parse(state),
            release_tag=release_tag,
        )
        with self._lock:
            if key not in self._types:
                self._types[key] = ImageType(name=image_type)
            versions = self._versions.setdefault(key, [])
            # Re-adding a version replaces it and makes it the latest
            versions[:] = [v for v in versions if not v.matches(image_type, version)]
            versions.append(image_version)
        logger.debug("Added image version %s:%s (%s)", key, version, image_version.state.value)
        return image_version

    def set_state(self, image_type: str, version: str, state: State | str) -> ImageVersion:
        key = normalize_type(image_type)
        with self._lock:
            versions = self._versions.get(key, [])
            for idx, existing in enumerate(versions):
                if existing.matches(image_type, version):
                    updated = ImageVersion(
                        image_type=existing.image_type,
                        version=existing.version,
                        path=existing.path,
                        state=State.parse(state),
                        release_tag=existing.release_tag,
                        created_at=existing.created_at,
                    )
                    versions[idx] = updated
                    return updated
        raise KeyError(f"{image_type}:{version}")

    def set_rampup(self, image_type: str, entries: Iterable[tuple[str, int]]) -> None:
        plan = [RampupEntry(version=v, percentage=int(p)) for v, p in entries]
        with self._lock:
            if plan:
                self._plans[normalize_type(image_type)] = plan
            else:
                self._plans.pop(normalize_type(image_type), None)

    def add_rule(self, name: str, flow_pattern: str, image_type: str, version: str) -> RampRule:
        rule = RampRule(name=name, flow_pattern=flow_pattern, image_type=image_type, version=version)
        with self._lock:
            self._rules.append(rule)
        return rule

    # --- ImageTypeCatalog ---

    def list_all_image_types(self) -> List[ImageType]:
        with self._lock:
            return list(self._types.values())

    # --- ImageVersionCatalog ---

    def find_versions(self, image_type: str, version: str) -> List[ImageVersion]:
        with self._lock:
            versions = self._versions.get(normalize_type(image_type), [])
            return [v for v in versions if v.version.lower() == version.lower()]

    def active_versions_for(self, image_types: AbstractSet[str]) -> List[ImageVersion]:
        return self._latest(image_types, lambda v: v.state is State.ACTIVE)

    def latest_non_active_versions_for(self, image_types: AbstractSet[str]) -> List[ImageVersion]:
        return self._latest(image_types, lambda v: True)

    def is_invalid_version(self, image_type: str, version: str) -> bool:
        found = self.find_versions(image_type, version)
        if not found:
            return True
        return found[-1].state in INVALID_STATES

    def _latest(self, image_types: AbstractSet[str], accept) -> List[ImageVersion]:
        result = []
        with self._lock:
            for key in sorted(normalize_types(image_types)):
                candidates = [v for v in self._versions.get(key, []) if accept(v)]
                if candidates:
                    result.append(candidates[-1])
        return result

    # --- RampupPlanStore ---

    def rampup_for_all_types(self) -> Dict[str, List[RampupEntry]]:
        with self._lock:
            return {key: list(plan) for key, plan in self._plans.items()}

    def rampup_for_types(self, image_types: AbstractSet[str]) -> Dict[str, List[RampupEntry]]:
        wanted = normalize_types(image_types)
        with self._lock:
            return {key: list(plan) for key, plan in self._plans.items() if key in wanted}

    # --- RampRuleStore ---

    def rules_for(self, image_type: str, version: str) -> List[RampRule]:
        key = normalize_type(image_type)
        with self._lock:
            return [
                rule
                for rule in self._rules
                if normalize_type(rule.image_type) == key
                and rule.version.lower() == version.lower()
            ]


def catalog_from_dict(data: Dict[str, Any]) -> InMemoryCatalog:
    """Build a catalog from a plain structure.

    Expected keys (all optional)::

        {
            "image_types": [{"name": ..., "description": ...}],
            "versions": [{"image_type": ..., "version": ..., "path": ..., "state": ...}],
            "rampups": {"spark": [["1.1.1", 10], ["1.1.2", 90]]},
            "rules": [{"name": ..., "flow_pattern": ..., "image_type": ..., "version": ...}],
        }
    """
    catalog = InMemoryCatalog()
    for item in data.get("image_types", ()):
        catalog.add_image_type(item["name"], item.get("description"))
    for item in data.get("versions", ()):
        catalog.add_version(
            item["image_type"],
            item["version"],
            path=item.get("path"),
            state=item.get("state", State.NEW),
            release_tag=item.get("release_tag"),
        )
    rampups = data.get("rampups", {})
    for image_type, entries in dict(rampups).items():
        catalog.set_rampup(image_type, [(v, p) for v, p in entries])
    for item in data.get("rules", ()):
        catalog.add_rule(item["name"], item["flow_pattern"], item["image_type"], item["version"])
    return catalog
