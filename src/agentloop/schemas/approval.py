"""Request body for resolving an approval."""

from typing import Literal

from pydantic import BaseModel


class ResolveApprovalRequest(BaseModel):
    status: Literal["approved", "rejected"]
