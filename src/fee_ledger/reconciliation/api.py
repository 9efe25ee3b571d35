"""API endpoints for ledger audits."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import PlainTextResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..auth import ROLE_ADMIN, Principal, require_roles
from ..database import get_db
from .service import ReconciliationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/fees/audit", tags=["audit"])


@router.get("/run")
async def run_ledger_audit(
    format: str = Query(default="json", description="Output format: json, csv, text, detailed_text"),
    include_details: bool = Query(default=True, description="Include discrepancy records"),
    active_only: bool = Query(default=False, description="Skip deactivated accounts"),
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_roles(ROLE_ADMIN)),
):
    """
    Check every fee account against its own payment ledger.

    Reports accounts whose paid total, pending balance or status disagree
    with their completed entries, and gateway payments recorded twice.
    """
    if format not in ("json", "csv", "text", "detailed_text"):
        raise HTTPException(
            status_code=400,
            detail="format must be one of: json, csv, text, detailed_text"
        )

    service = ReconciliationService(db)
    logger.info(f"Ledger audit requested by {principal.subject}")
    report = await service.run_audit(active_only=active_only)

    if format == "json":
        return report.to_full_dict() if include_details else report.to_summary_dict()

    output = service.generate_report(
        report=report,
        format=format,
        include_details=include_details,
    )
    content_type = "text/csv" if format == "csv" else "text/plain"
    return PlainTextResponse(content=output, media_type=content_type)
