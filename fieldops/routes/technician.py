"""Technician responses to job assignments"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth import CurrentUser, get_current_user
from ..database import get_db
from ..schemas import AcceptJobRequest, DeclineJobRequest, SuccessResponse
from ..services.technician_service import TechnicianService

router = APIRouter(prefix="/technician", tags=["Technician"])


def get_technician_service(db: Session = Depends(get_db)) -> TechnicianService:
    return TechnicianService(db)


@router.post("/accept-job", response_model=SuccessResponse)
async def accept_job(
    data: AcceptJobRequest,
    current_user: CurrentUser = Depends(get_current_user),
    service: TechnicianService = Depends(get_technician_service),
):
    """Accept an assignment; the job itself moves to accepted"""
    return service.accept_job(data.jobTechnicianId, data.jobId, current_user)


@router.post("/decline-job", response_model=SuccessResponse)
async def decline_job(
    data: DeclineJobRequest,
    current_user: CurrentUser = Depends(get_current_user),
    service: TechnicianService = Depends(get_technician_service),
):
    return service.decline_job(data.jobTechnicianId, current_user)
