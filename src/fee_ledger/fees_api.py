"""Read-only fee account endpoints."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from .auth import ROLE_ADMIN, ROLE_STUDENT, Principal, require_roles
from .database import get_db
from .exceptions import FeeAccountNotFoundError
from .services import FeeAccountService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/fees", tags=["fees"])


@router.get("/pending/all")
async def list_pending_fees(
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_roles(ROLE_ADMIN)),
):
    """Active fee accounts that still have a balance, earliest due date first."""
    accounts = await FeeAccountService(db).list_pending(limit=limit, offset=offset)
    return {"count": len(accounts), "fees": [a.to_dict(include_entries=False) for a in accounts]}


@router.get("/report/generate")
async def collection_report(
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_roles(ROLE_ADMIN)),
):
    """Collected and outstanding totals, overall and per status."""
    return await FeeAccountService(db).collection_report()


@router.get("/student/{student_id}")
async def list_student_fees(
    student_id: str,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_roles(ROLE_STUDENT, ROLE_ADMIN)),
):
    accounts = await FeeAccountService(db).list_for_student(student_id)
    return {"count": len(accounts), "fees": [a.to_dict() for a in accounts]}


@router.get("/{fee_id}")
async def get_fee(
    fee_id: str,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_roles(ROLE_STUDENT, ROLE_ADMIN)),
):
    """A fee account with its full payment ledger."""
    try:
        account = await FeeAccountService(db).get_account(fee_id)
    except FeeAccountNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    return account.to_dict()
