import copy
from types import SimpleNamespace
from typing import Any, Dict, Optional
from marshmallow import INCLUDE, EXCLUDE, Schema, post_load

EXCLUDE = EXCLUDE
JSON = Dict[str, Any]
MAX_REPR_LEN = 60


class BaseModel(SimpleNamespace):
    """BaseModel that all models should inherit from.

    Args:
        **kwargs: All passed parameters as converted to instance attributes.
    """

    def __init__(self, **kwargs: Any) -> None:
        self.__dict__.update(kwargs)

    def __repr__(self) -> str:
        """Return a default repr of any Model, truncated to `MAX_REPR_LEN`."""
        repr_ = super().__repr__()
        if len(repr_) > MAX_REPR_LEN:
            return repr_[:MAX_REPR_LEN] + " ...)"
        return repr_

    def as_dict(self) -> Dict[str, Any]:
        result = {}
        for key, value in self.__dict__.items():
            if isinstance(value, BaseModel):
                result[key] = value.as_dict()
            elif isinstance(value, list):
                result[key] = [
                    item.as_dict() if isinstance(item, BaseModel) else item
                    for item in value
                ]
            else:
                result[key] = value
        return result

    def copy(self) -> "BaseModel":
        """Return a deep copy, nested specs included."""
        return copy.deepcopy(self)


class UnknownModel(BaseModel):
    """A convenience class that inherits from `BaseModel`."""

    def keys(self):
        return self.__dict__.keys()

    def values(self):
        return self.__dict__.values()

    def items(self):
        return self.__dict__.items()


class BaseSchema(Schema):
    """The default schema for all models."""

    __model__: Any = UnknownModel
    """Determine the object that is created when the load method is called."""

    class Meta:
        unknown = EXCLUDE
        ordered = True

    @post_load
    def make_object(self, data: JSON, **kwargs: Any) -> Optional["__model__"]:
        """Build model for the given `__model__` class attribute.
        Args:
            data: The JSON dictionary to use to build the model.
            **kwargs: Unused but required to match signature of `Schema.make_object`
        Returns:
            An instance of the `__model__` class.
        """
        return self.__model__(**data)


__all__ = ["BaseModel", "UnknownModel", "BaseSchema", "EXCLUDE", "INCLUDE", "JSON"]
