from pydantic import BaseModel
from pydantic.alias_generators import to_camel
from typing import Any, Optional

class CamelModel(BaseModel):
    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True

class ErrorResponse(BaseModel):
    success: bool = False
    error: str
    message: str

class MessageResponse(BaseModel):
    success: bool = True
    message: str
    data: Optional[Any] = None
