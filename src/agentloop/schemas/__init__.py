"""Pydantic schemas for API request/response models."""

from agentloop.schemas.jsonapi import JSONAPIListResponse, JSONAPIResource, JSONAPISingleResponse

__all__ = [
    "JSONAPIListResponse",
    "JSONAPIResource",
    "JSONAPISingleResponse",
]
