from .component import Component
from .edgex_spec import EdgeXSpec
from .catalog import CatalogVersion, CatalogManifest
from .legacy import LegacyMetadata, LegacyTemplate

__all__ = [
    "Component",
    "EdgeXSpec",
    "CatalogVersion",
    "CatalogManifest",
    "LegacyMetadata",
    "LegacyTemplate",
]
