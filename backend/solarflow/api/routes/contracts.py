from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from solarflow.api.deps import Principal, get_principal, get_tenant_session
from solarflow.api.errors import unwrap
from solarflow.database import TenantSession
from solarflow.schemas import (
    ContractCancel,
    ContractCreateFromQuote,
    ContractRead,
    ContractSign,
    ContractTimelineRead,
    ContractTransition,
    ContractUpdate,
    TimelineEventRead,
)
from solarflow.services import contract_lifecycle
from solarflow.services.contract_create import create_contract_from_quote

router = APIRouter(prefix="/contracts", tags=["contracts"])


@router.post("/from-quote/{quote_id}", response_model=ContractRead, status_code=201)
def create_from_quote(
    quote_id: str,
    payload: ContractCreateFromQuote,
    principal: Principal = Depends(get_principal),  # noqa: B008
    ts: TenantSession = Depends(get_tenant_session),  # noqa: B008
):
    result = create_contract_from_quote(
        ts,
        quote_id,
        deposit_percentage=payload.deposit_percentage,
        expected_start_date=payload.expected_start_date,
        expected_completion_date=payload.expected_completion_date,
        warranty_years=payload.warranty_years,
        notes=payload.notes,
        actor=principal.actor,
    )
    contract = unwrap(result)
    ts.commit()
    ts.db.refresh(contract)
    return contract


@router.get("/{contract_id}", response_model=ContractRead)
def get_contract(
    contract_id: str,
    ts: TenantSession = Depends(get_tenant_session),  # noqa: B008
):
    contract = contract_lifecycle.get_contract(ts, contract_id)
    if contract is None:
        raise HTTPException(status_code=404, detail="Contract not found")
    return contract


@router.patch("/{contract_id}", response_model=ContractRead)
def update_contract(
    contract_id: str,
    payload: ContractUpdate,
    ts: TenantSession = Depends(get_tenant_session),  # noqa: B008
):
    patch = payload.model_dump(exclude_unset=True)
    contract = unwrap(contract_lifecycle.update_contract(ts, contract_id, **patch))
    ts.commit()
    ts.db.refresh(contract)
    return contract


@router.post("/{contract_id}/sign", response_model=ContractRead)
def sign_contract(
    contract_id: str,
    payload: ContractSign,
    ts: TenantSession = Depends(get_tenant_session),  # noqa: B008
):
    result = contract_lifecycle.sign_contract(
        ts,
        contract_id,
        customer_signed=payload.customer_signed,
        company_signed_by=(payload.company_signed_by or "").strip() or None,
    )
    contract = unwrap(result)
    ts.commit()
    ts.db.refresh(contract)
    return contract


@router.post("/{contract_id}/transition", response_model=ContractRead)
def transition_contract(
    contract_id: str,
    payload: ContractTransition,
    ts: TenantSession = Depends(get_tenant_session),  # noqa: B008
):
    contract = unwrap(contract_lifecycle.transition_contract(ts, contract_id, payload.to_status))
    ts.commit()
    ts.db.refresh(contract)
    return contract


@router.post("/{contract_id}/cancel", response_model=ContractRead)
def cancel_contract(
    contract_id: str,
    payload: ContractCancel,
    principal: Principal = Depends(get_principal),  # noqa: B008
    ts: TenantSession = Depends(get_tenant_session),  # noqa: B008
):
    result = contract_lifecycle.cancel_contract(ts, contract_id, payload.reason, actor=principal.actor)
    contract = unwrap(result)
    ts.commit()
    ts.db.refresh(contract)
    return contract


@router.get("/{contract_id}/timeline", response_model=ContractTimelineRead)
def contract_timeline(
    contract_id: str,
    ts: TenantSession = Depends(get_tenant_session),  # noqa: B008
):
    events = unwrap(contract_lifecycle.get_contract_timeline(ts, contract_id))
    contract = contract_lifecycle.get_contract(ts, contract_id)
    return ContractTimelineRead(
        contract_id=contract.id,
        status=contract.status,
        events=[TimelineEventRead.model_validate(e) for e in events],
    )
