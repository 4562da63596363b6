from marshmallow import fields
from edgex.types.base import BaseSchema
from edgex.types.models.component import Component


class ComponentSchema(BaseSchema):
    __model__ = Component

    name = fields.Str(data_key="name", required=True)
    service = fields.Dict(data_key="service", allow_none=True, load_default=None)
    deployment = fields.Dict(
        data_key="deployment", allow_none=True, load_default=None
    )
    image = fields.Str(data_key="image", allow_none=True, load_default=None)
    ports = fields.List(
        fields.Dict(), data_key="ports", allow_none=True, load_default=None
    )
    env = fields.Dict(
        keys=fields.Str(),
        values=fields.Str(),
        data_key="env",
        allow_none=True,
        load_default=None,
    )
    volumes = fields.List(
        fields.Dict(), data_key="volumes", allow_none=True, load_default=None
    )
