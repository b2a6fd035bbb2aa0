from datetime import datetime, timezone
from typing import Generic, Optional, TypeVar
from uuid import uuid4

from pydantic import BaseModel, Field

T = TypeVar("T")


def response_meta() -> dict:
    return {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "request_id": str(uuid4()),
    }


class BaseResponse(BaseModel):
    success: bool = True
    meta: dict = Field(default_factory=dict)


class ErrorDetail(BaseModel):
    code: str
    message: str
    details: Optional[dict] = None


class ErrorResponse(BaseModel):
    success: bool = False
    error: ErrorDetail
    meta: dict = Field(default_factory=dict)


class Page(BaseModel, Generic[T]):
    """Zero-based page of results with totals for the whole filtered set."""

    content: list[T]
    page: int
    size: int
    total_elements: int
    total_pages: int
    meta: dict = Field(default_factory=response_meta)
