from __future__ import annotations

from typing import AbstractSet, Dict, List, Protocol

from ..models import ImageType, ImageVersion, RampRule, RampupEntry


class ImageTypeCatalog(Protocol):
    """Source of every registered image type."""

    def list_all_image_types(self) -> List[ImageType]:  # pragma: no cover - protocol
        ...


class ImageVersionCatalog(Protocol):
    """Read access to image versions and their lifecycle states.

    Image type arguments may arrive in any case; implementations must
    compare them case-insensitively.
    """

    def find_versions(self, image_type: str, version: str) -> List[ImageVersion]:  # pragma: no cover - protocol
        """Versions matching the (type, version) filter. May include near matches."""
        ...

    def active_versions_for(self, image_types: AbstractSet[str]) -> List[ImageVersion]:  # pragma: no cover - protocol
        """Latest ACTIVE version of each given type that has one."""
        ...

    def latest_non_active_versions_for(
        self, image_types: AbstractSet[str]
    ) -> List[ImageVersion]:  # pragma: no cover - protocol
        """Latest version of each given type regardless of state."""
        ...

    def is_invalid_version(self, image_type: str, version: str) -> bool:  # pragma: no cover - protocol
        """True when the pair is unknown or no longer fit for execution."""
        ...


class RampupPlanStore(Protocol):
    """Active rampup plans keyed by image type name."""

    def rampup_for_all_types(self) -> Dict[str, List[RampupEntry]]:  # pragma: no cover - protocol
        ...

    def rampup_for_types(
        self, image_types: AbstractSet[str]
    ) -> Dict[str, List[RampupEntry]]:  # pragma: no cover - protocol
        ...


class RampRuleStore(Protocol):
    """Ramp rules bound to a specific (image type, version)."""

    def rules_for(self, image_type: str, version: str) -> List[RampRule]:  # pragma: no cover - protocol
        ...
