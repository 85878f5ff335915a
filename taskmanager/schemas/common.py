from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from typing import Optional


class CamelModel(BaseModel):
    """Base for response bodies, serialized with camelCase keys"""
    model_config = ConfigDict(from_attributes=True, alias_generator=to_camel, populate_by_name=True)


class MessageData(CamelModel):
    message: str


class MessageResponse(CamelModel):
    success: bool = True
    message: str
    data: Optional[MessageData] = None
