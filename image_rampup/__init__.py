"""Rampup-aware image version resolution for containerized flow executions."""

from .errors import (
    ImageMgmtError,
    InvalidBucket,
    InvalidRampupPlan,
    RampRuleFallbackFailed,
    UnresolvedImageTypes,
    VersionNotFound,
)
from .models import (
    FlowContext,
    ImageType,
    ImageVersion,
    RampRule,
    RampupEntry,
    ResolutionResult,
    Selection,
    State,
    VersionDecision,
    VersionInfo,
    VersionSet,
    normalize_type,
)
from .resolver import NO_VERSION, VersionResolver

__all__ = [
    "FlowContext",
    "ImageMgmtError",
    "ImageType",
    "ImageVersion",
    "InvalidBucket",
    "InvalidRampupPlan",
    "NO_VERSION",
    "RampRule",
    "RampRuleFallbackFailed",
    "RampupEntry",
    "ResolutionResult",
    "Selection",
    "State",
    "UnresolvedImageTypes",
    "VersionDecision",
    "VersionInfo",
    "VersionNotFound",
    "VersionResolver",
    "VersionSet",
    "normalize_type",
]
