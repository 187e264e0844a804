"""
Request/response bodies of the HTTP API.
"""
from typing import Any, Optional

from pydantic import BaseModel, Field

from webpilot.session import DEFAULT_SESSION_ID


class AskRequest(BaseModel):
    prompt: str = Field(min_length=1)
    session_id: str = DEFAULT_SESSION_ID


class AskResponse(BaseModel):
    message: str
    success: bool = True
    tool_calls: list[dict] = Field(default_factory=list)


class ErrorResponse(BaseModel):
    error: str
    success: bool = False


def error_body(message: str, data: Any = None) -> dict:
    body = ErrorResponse(error=message).model_dump()
    if data is not None:
        body["data"] = data
    return body


def success_body(message: str, tool_calls: Optional[list[dict]] = None) -> dict:
    return AskResponse(message=message, tool_calls=tool_calls or []).model_dump()
