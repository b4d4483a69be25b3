"""Value types shared by the catalog, rule and resolver layers."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Iterable, Mapping, Optional, Set, Tuple


def normalize_type(name: str) -> str:
    """Canonical key for an image type name (case-insensitive identity)."""
    return name.strip().lower()


def normalize_types(names: Iterable[str]) -> Set[str]:
    return {normalize_type(name) for name in names}


class State(str, Enum):
    """Lifecycle state of an image version."""

    NEW = "NEW"
    ACTIVE = "ACTIVE"
    UNSTABLE = "UNSTABLE"
    DEPRECATED = "DEPRECATED"

    @classmethod
    def parse(cls, value: "State | str") -> "State":
        if isinstance(value, State):
            return value
        try:
            return cls(value.strip().upper())
        except ValueError:
            raise ValueError(f"Unknown image version state: {value!r}") from None


class Selection(str, Enum):
    """Which resolver tier produced a decision."""

    RAMPUP = "rampup"
    ACTIVE = "active-fallback"
    NON_ACTIVE = "non-active-fallback"
    NONE = "no-version"

    @property
    def message(self) -> str:
        return _SELECTION_MESSAGES[self]


_SELECTION_MESSAGES = {
    Selection.RAMPUP: "The version selection is based on deterministic rampup.",
    Selection.ACTIVE: "The version selection is based on latest available ACTIVE version.",
    Selection.NON_ACTIVE: (
        "Non ACTIVE (i.e. NEW/UNSTABLE/DEPRECATED) latest version is selected "
        "as there is no active rampup and ACTIVE version."
    ),
    Selection.NONE: "This image type does not have a version yet.",
}


@dataclass(frozen=True)
class ImageType:
    name: str
    description: Optional[str] = None

    @property
    def key(self) -> str:
        return normalize_type(self.name)


@dataclass(frozen=True)
class ImageVersion:
    """A concrete version of an image type.

    - image_type: owning image type name (any case)
    - version: version string, e.g. "1.1.2"
    - path: registry path the container runtime pulls from
    - state: lifecycle state
    """

    image_type: str
    version: str
    path: str
    state: State = State.NEW
    release_tag: Optional[str] = None
    created_at: Optional[datetime] = None

    @property
    def key(self) -> str:
        return normalize_type(self.image_type)

    def matches(self, image_type: str, version: str) -> bool:
        return (
            self.key == normalize_type(image_type)
            and self.version.lower() == version.lower()
        )

    def to_version_info(self) -> "VersionInfo":
        return VersionInfo(version=self.version, path=self.path, state=self.state)


@dataclass(frozen=True)
class RampupEntry:
    """One (version, percentage) step of an active rampup plan."""

    version: str
    percentage: int


@dataclass(frozen=True)
class RampRule:
    """Excludes flows matching `flow_pattern` from receiving a version via rampup."""

    name: str
    flow_pattern: str
    image_type: str
    version: str


@dataclass(frozen=True)
class VersionInfo:
    """Caller-facing version triple used to build the container spec."""

    version: str
    path: str
    state: State


@dataclass(frozen=True)
class VersionDecision:
    """Chosen version for one image type plus the reason it was chosen.

    `image_version` is None only for the Selection.NONE sentinel.
    """

    image_version: Optional[ImageVersion]
    selection: Selection
    rampup: Tuple[RampupEntry, ...] = ()

    @property
    def message(self) -> str:
        return self.selection.message

    def to_version_info(self) -> VersionInfo:
        if self.image_version is None:
            raise ValueError("Sentinel decision has no version info")
        return self.image_version.to_version_info()

    def to_dict(self) -> Dict[str, object]:
        iv = self.image_version
        return {
            "version": iv.version if iv else None,
            "path": iv.path if iv else None,
            "state": iv.state.value if iv else None,
            "release_tag": iv.release_tag if iv else None,
            "selection": self.selection.value,
            "message": self.message,
            "rampup": [
                {"version": entry.version, "percentage": entry.percentage}
                for entry in self.rampup
            ],
        }


@dataclass
class ResolutionResult:
    """Per-call outcome of the tier composition."""

    decisions: Dict[str, VersionDecision] = field(default_factory=dict)
    unresolved: Set[str] = field(default_factory=set)
    bucket: Optional[int] = None

    def decide(self, image_type: str, decision: VersionDecision) -> bool:
        """Record a decision unless one already exists; returns True if recorded."""
        key = normalize_type(image_type)
        if key in self.decisions:
            return False
        self.decisions[key] = decision
        self.unresolved.discard(key)
        return True

    def version_infos(self) -> Dict[str, VersionInfo]:
        return {
            key: decision.to_version_info()
            for key, decision in sorted(self.decisions.items())
            if decision.image_version is not None
        }


@dataclass(frozen=True)
class FlowContext:
    """Identity of the flow an execution belongs to."""

    flow_name: str
    project_name: Optional[str] = None
    execution_id: Optional[int] = None

    @property
    def identity(self) -> str:
        if self.project_name:
            return f"{self.project_name}.{self.flow_name}"
        return self.flow_name


@dataclass(frozen=True)
class VersionSet:
    """Image versions pinned for an execution, keyed by image type."""

    versions: Mapping[str, VersionInfo]
    version_set_id: Optional[int] = None

    def normalized(self) -> Dict[str, VersionInfo]:
        return {normalize_type(name): info for name, info in self.versions.items()}
