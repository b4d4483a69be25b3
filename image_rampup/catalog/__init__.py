"""Image type and version catalogs the resolver reads from."""

from .interface import (
    ImageTypeCatalog,
    ImageVersionCatalog,
    RampRuleStore,
    RampupPlanStore,
)
from .memory import InMemoryCatalog, catalog_from_dict

__all__ = [
    "ImageTypeCatalog",
    "ImageVersionCatalog",
    "InMemoryCatalog",
    "RampRuleStore",
    "RampupPlanStore",
    "catalog_from_dict",
]
