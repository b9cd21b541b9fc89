"""
Contract scan endpoints
Called daily by a scheduled task; each one runs a single pass and reports counts
"""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from ..auth import verify_cron_request
from ..database import get_db
from ..services.contract_scanner import (
    check_contract_statuses,
    run_contract_notifications_scan,
    run_contract_status_scan,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Contracts"], dependencies=[Depends(verify_cron_request)])


@router.api_route("/contract-notifications", methods=["GET", "POST"])
async def contract_notifications(db: Session = Depends(get_db)):
    """Renewal and twice-yearly service reminders (no status changes)"""
    results = run_contract_notifications_scan(db)
    return {"success": True, "results": results.to_response()}


@router.get("/contracts/scan")
async def scan_contracts(db: Session = Depends(get_db)):
    """Move contracts into renewal_needed / job_creation_needed"""
    try:
        results = run_contract_status_scan(db)
    except Exception as e:
        logger.error(f"❌ Contract scan failed: {e}")
        db.rollback()
        return JSONResponse(status_code=500, content={"success": False, "error": str(e)})

    return {"success": True, **results.to_response()}


@router.get("/contracts/check-status")
async def check_status(db: Session = Depends(get_db)):
    """Overdue / renewal / next-service status check"""
    try:
        results = check_contract_statuses(db)
    except Exception as e:
        logger.error(f"❌ Error checking contract statuses: {e}")
        db.rollback()
        return JSONResponse(status_code=500, content={"error": "Failed to check contract statuses"})

    return {
        "success": True,
        "overdueContracts": results.overdue_contracts,
        "expiringContracts": results.expiring_contracts,
        "activeContracts": results.active_contracts,
        "outcomes": results.to_response()["outcomes"],
    }
