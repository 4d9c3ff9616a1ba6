"""Pydantic request/response models for API endpoints."""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ChatBody(_ApiModel):
    session_id: str | None = None
    message: str = ""


class ChatReply(_ApiModel):
    reply: str
    session_id: str


class Health(_ApiModel):
    ok: bool = True
    provider: str
    model: str
    shop: str
    orders_in_memory: int = Field(ge=0)
