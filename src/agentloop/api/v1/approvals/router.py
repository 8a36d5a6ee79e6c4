"""Approval endpoints: list and count pending requests, resolve one.

Approvals are advisory. Resolving one records the human decision; the
agent picks it up on a later turn.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from agentloop.api.deps import get_db
from agentloop.errors import ApprovalAlreadyResolvedError, ApprovalNotFoundError
from agentloop.models.approval import Approval
from agentloop.schemas.approval import ResolveApprovalRequest
from agentloop.schemas.jsonapi import JSONAPIListResponse, JSONAPIResource, JSONAPISingleResponse
from agentloop.services.approval_gate import ApprovalGate, requires_approval

router = APIRouter()


def _approval_resource(approval: Approval) -> JSONAPIResource:
    return JSONAPIResource(
        type="approvals",
        id=approval.id,
        attributes={
            "team_id": approval.team_id,
            "agent_id": approval.agent_id,
            "action_type": approval.action_type,
            "action_detail": approval.action_detail,
            "risk_level": approval.risk_level,
            "requires_approval": requires_approval(approval.risk_level),
            "status": approval.status,
            "created_at": approval.created_at.isoformat() if approval.created_at else None,
            "resolved_at": approval.resolved_at.isoformat() if approval.resolved_at else None,
        },
    )


@router.get("")
async def list_pending_approvals(
    team_id: str | None = Query(default=None, alias="filter[team_id]"),
    agent_id: str | None = Query(default=None, alias="filter[agent_id]"),
    db: AsyncSession = Depends(get_db),
) -> JSONAPIListResponse:
    """Pending approvals, newest first."""
    approvals = await ApprovalGate(db).list_pending(team_id=team_id, agent_id=agent_id)
    return JSONAPIListResponse(data=[_approval_resource(a) for a in approvals], meta={"total": len(approvals)})


@router.get("/count")
async def count_pending_approvals(
    team_id: str | None = Query(default=None, alias="filter[team_id]"),
    db: AsyncSession = Depends(get_db),
) -> JSONAPISingleResponse:
    count = await ApprovalGate(db).count_pending(team_id=team_id)
    return JSONAPISingleResponse(
        data=JSONAPIResource(type="approval-counts", id=team_id or "all", attributes={"pending": count})
    )


@router.post("/{approval_id}/resolve")
async def resolve_approval(
    approval_id: str,
    body: ResolveApprovalRequest,
    db: AsyncSession = Depends(get_db),
) -> JSONAPISingleResponse:
    """Approve or reject a pending approval. 404 if unknown, 409 if already resolved."""
    try:
        approval = await ApprovalGate(db).resolve(approval_id, body.status)
    except ApprovalNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ApprovalAlreadyResolvedError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return JSONAPISingleResponse(data=_approval_resource(approval))
