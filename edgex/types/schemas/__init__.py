from .component import ComponentSchema
from .edgex_spec import EdgeXSpecSchema
from .catalog import CatalogVersionSchema, CatalogManifestSchema
from .legacy import LegacyMetadataSchema, LegacyTemplateSchema

__all__ = [
    "ComponentSchema",
    "EdgeXSpecSchema",
    "CatalogVersionSchema",
    "CatalogManifestSchema",
    "LegacyMetadataSchema",
    "LegacyTemplateSchema",
]
