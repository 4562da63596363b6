from marshmallow import fields
from edgex.types.base import BaseSchema
from edgex.types.models.catalog import CatalogVersion, CatalogManifest
from edgex.types.schemas.component import ComponentSchema


class CatalogVersionSchema(BaseSchema):
    __model__ = CatalogVersion

    name = fields.Str(data_key="versionName", required=True)
    config_maps = fields.List(
        fields.Dict(), data_key="configMaps", load_default=list
    )
    components = fields.List(
        fields.Nested(ComponentSchema()), data_key="components", load_default=list
    )


class CatalogManifestSchema(BaseSchema):
    __model__ = CatalogManifest

    versions = fields.List(
        fields.Nested(CatalogVersionSchema()), data_key="versions", load_default=list
    )
