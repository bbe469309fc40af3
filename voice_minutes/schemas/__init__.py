"""Pydantic schemas for the HTTP API."""
from .session import SessionResponse, StartRequest, StatusResponse

__all__ = ["SessionResponse", "StartRequest", "StatusResponse"]
