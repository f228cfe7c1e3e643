"""
Tourbook API: Response Envelope Schemas
=======================================

Every endpoint answers with the same envelope:

    {"status": "success", "results": 3, "data": {"data": [...]}}
    {"status": "success", "token": "...", "data": {"user": {...}}}
    {"status": "fail", "message": "This page does not exist"}

`fail` marks client errors (4xx), `error` server errors (5xx).
"""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


class Envelope(BaseModel):
    status: Literal["success", "fail", "error"] = "success"
    results: Optional[int] = None
    token: Optional[str] = None
    data: Optional[Dict[str, Any]] = None
    message: Optional[str] = None


class ErrorResponse(BaseModel):
    status: Literal["fail", "error"] = Field(description="fail for 4xx, error for 5xx")
    message: str = Field(description="Human-readable error description")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class HealthResponse(BaseModel):
    status: str = Field(description="healthy or unhealthy")
    version: str
    database: str = Field(description="connected or disconnected")
    uptime_seconds: float


def success(data: Optional[Dict[str, Any]] = None, **extra: Any) -> Dict[str, Any]:
    """Builds a success envelope, leaving out keys that are None."""
    body: Dict[str, Any] = {"status": "success"}
    body.update({k: v for k, v in extra.items() if v is not None})
    if data is not None:
        body["data"] = data
    return body


def listing(docs: List[Dict[str, Any]], count: int) -> Dict[str, Any]:
    return success({"data": docs}, results=count)
