from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from solarflow.api.deps import Principal, get_principal, get_tenant_session
from solarflow.api.errors import unwrap
from solarflow.database import TenantSession
from solarflow.schemas import CommissionHoldRead, HandoverCreate, HandoverRead
from solarflow.services import handover_service

router = APIRouter(tags=["handovers"])


@router.post("/contracts/{contract_id}/handovers", response_model=HandoverRead, status_code=201)
def create_installation_handover(
    contract_id: str,
    payload: HandoverCreate,
    principal: Principal = Depends(get_principal),  # noqa: B008
    ts: TenantSession = Depends(get_tenant_session),  # noqa: B008
):
    result = handover_service.create_installation_handover(
        ts,
        contract_id,
        handover_date=payload.handover_date,
        checklist=payload.checklist,
        photos=payload.photos,
        notes=payload.notes,
        performed_by=principal.actor,
        accepted_by=payload.accepted_by,
    )
    handover = unwrap(result)
    ts.commit()
    ts.db.refresh(handover)
    return handover


@router.post("/handovers/{handover_id}/cancel", response_model=HandoverRead)
def cancel_handover(
    handover_id: str,
    principal: Principal = Depends(get_principal),  # noqa: B008
    ts: TenantSession = Depends(get_tenant_session),  # noqa: B008
):
    handover = unwrap(handover_service.cancel_handover(ts, handover_id, actor=principal.actor))
    ts.commit()
    ts.db.refresh(handover)
    return handover


@router.get("/handovers/{handover_id}/commission-hold", response_model=CommissionHoldRead)
def commission_hold(
    handover_id: str,
    ts: TenantSession = Depends(get_tenant_session),  # noqa: B008
):
    handover = handover_service.get_handover(ts, handover_id)
    if handover is None:
        raise HTTPException(status_code=404, detail="Handover not found")
    hold = handover_service.hold_status_for(handover)
    return CommissionHoldRead(
        handover_id=handover.id,
        hold_ends_at=hold.hold_ends_at,
        blocked=hold.blocked,
        released=hold.released,
        state=hold.state,
    )
