"""JSON:API response envelopes (Pydantic v2).

Every endpoint answers with ``{data: {type, id, attributes}}`` or a list of
such resources.

Reference: https://jsonapi.org/format/
"""

from typing import Any

from pydantic import BaseModel


class JSONAPIResource(BaseModel):
    type: str
    id: str
    attributes: dict[str, Any]


class JSONAPISingleResponse(BaseModel):
    data: JSONAPIResource


class JSONAPIListResponse(BaseModel):
    data: list[JSONAPIResource]
    meta: dict[str, Any] | None = None
