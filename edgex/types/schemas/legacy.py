from marshmallow import fields
from edgex.types.base import BaseSchema
from edgex.types.models.legacy import LegacyMetadata, LegacyTemplate


class LegacyMetadataSchema(BaseSchema):
    __model__ = LegacyMetadata

    name = fields.Str(data_key="name", required=True)


class LegacyTemplateSchema(BaseSchema):
    __model__ = LegacyTemplate

    metadata = fields.Nested(LegacyMetadataSchema(), data_key="metadata", required=True)
    spec = fields.Dict(data_key="spec", required=True)
