"""Errors raised by version resolution."""

from __future__ import annotations

from typing import Iterable, Optional


class ImageMgmtError(RuntimeError):
    """Base class for resolution failures that should fail the caller."""

    def __init__(self, message: str, *, cause: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.__cause__ = cause


class VersionNotFound(ImageMgmtError):
    """The exact (image type, version) pair is absent or in a disallowed state."""

    def __init__(self, image_type: str, version: str, detail: str = "") -> None:
        message = f"Unable to get version {version} for image type {image_type}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.image_type = image_type
        self.version = version


class UnresolvedImageTypes(ImageMgmtError):
    """One or more image types have no version after every applicable tier."""

    def __init__(self, image_types: Iterable[str]) -> None:
        self.image_types = tuple(sorted(image_types))
        super().__init__(
            f"Could not fetch version for image types {', '.join(self.image_types)}. "
            "Either there is no active rampup plan for them or there is no ACTIVE "
            "version in the catalog."
        )


class RampRuleFallbackFailed(ImageMgmtError):
    """A ramp rule deselected the rampup version but no ACTIVE version exists."""

    def __init__(self, image_type: str, version: str) -> None:
        super().__init__(
            f"Version {version} of image type {image_type} is excluded by a ramp rule "
            "and there is no ACTIVE version to fall back to"
        )
        self.image_type = image_type
        self.version = version


class InvalidRampupPlan(ImageMgmtError):
    """A rampup plan cannot be walked under the configured ordering policy."""

    def __init__(self, image_type: str, reason: str) -> None:
        super().__init__(f"Invalid rampup plan for image type {image_type}: {reason}")
        self.image_type = image_type


class InvalidBucket(ImageMgmtError):
    """The injected bucket function returned a value outside [1, 100]."""

    def __init__(self, bucket: object) -> None:
        super().__init__(f"Flow bucket must be an integer in [1, 100], got {bucket!r}")
        self.bucket = bucket
