"""Generic API response schemas"""

from pydantic import BaseModel
from typing import Any, Dict

from app.schemas.base import CamelModel


class MessageOnlyResponse(BaseModel):
    """Plain acknowledgement"""
    success: bool = True
    message: str


class HealthResponse(CamelModel):
    """Health check response"""
    status: str
    message: str
    version: str
    timestamp: str
    database: Dict[str, Any]
    realtime_connections: int
