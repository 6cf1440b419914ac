from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterator, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from solarflow.core.security import decode_access_token
from solarflow.database import SessionFactory, SessionLocal, TenantSession, apply_tenant_context, get_db

bearer_optional = HTTPBearer(auto_error=False)

_DB_DEP = Depends(get_db)
_BEARER_DEP = Depends(bearer_optional)


@dataclass(frozen=True)
class Principal:
    tenant_id: str
    actor: str
    role: str


def get_session_factory() -> SessionFactory:
    """Session factory for work that manages its own transactions (job runs)."""
    return SessionLocal


def _extract_bearer_from_headers(request: Request) -> Optional[str]:
    raw = request.headers.get("authorization") or request.headers.get("x-authorization")
    if not raw:
        return None
    s = str(raw).strip()
    if s.lower().startswith("bearer "):
        return s.split(" ", 1)[1].strip()
    return s or None


def get_principal(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = _BEARER_DEP,
) -> Principal:
    token = credentials.credentials if credentials else _extract_bearer_from_headers(request)
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")

    claims = decode_access_token(token)
    if not claims:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")

    tenant_id = str(claims.get("tenant_id") or "").strip()
    actor = str(claims.get("sub") or "").strip()
    if not tenant_id or not actor:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")

    return Principal(tenant_id=tenant_id, actor=actor, role=str(claims.get("role") or "").strip().lower())


_PRINCIPAL_DEP = Depends(get_principal)


def get_tenant_session(
    principal: Principal = _PRINCIPAL_DEP,
    db: Session = _DB_DEP,
) -> Iterator[TenantSession]:
    """Tenant-bound session for the request; routes commit their own writes."""

    apply_tenant_context(db, principal.tenant_id)
    yield TenantSession(db=db, tenant_id=principal.tenant_id)


def require_roles(*roles: str) -> Callable[..., Principal]:
    allowed = {str(r).strip().lower() for r in roles}

    def _checker(principal: Principal = _PRINCIPAL_DEP) -> Principal:
        if principal.role not in allowed:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient role")
        return principal

    return _checker
