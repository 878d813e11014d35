from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Wire models use camelCase keys; Python code keeps snake_case names."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class Envelope(CamelModel):
    success: bool = True


class MessageResponse(Envelope):
    message: str


class ErrorResponse(CamelModel):
    success: bool = False
    error: str
