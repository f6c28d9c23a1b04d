"""
Shared schema base
"""
from pydantic import BaseModel
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Schema serialized with camelCase property names, accepting either casing on input."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True
