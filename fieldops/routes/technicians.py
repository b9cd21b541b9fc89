"""Technician account management (owner, admin and manager only)"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth import CurrentUser, require_technician_admin
from ..database import get_db
from ..schemas import TechnicianPayload, TechnicianResponse
from ..services.technician_service import TechnicianService

router = APIRouter(prefix="/technicians", tags=["Technicians"])


def get_technician_service(db: Session = Depends(get_db)) -> TechnicianService:
    return TechnicianService(db)


@router.post("/create", response_model=TechnicianResponse)
async def create_technician(
    data: TechnicianPayload,
    current_user: CurrentUser = Depends(require_technician_admin),
    service: TechnicianService = Depends(get_technician_service),
):
    return service.create_technician(
        full_name=data.full_name,
        email=data.email,
        organization_id=current_user.organization_id,
        phone=data.phone,
        specialty=data.specialty,
        is_active=data.is_active,
    )


@router.put("/{technician_id}", response_model=TechnicianResponse)
async def update_technician(
    technician_id: str,
    data: TechnicianPayload,
    current_user: CurrentUser = Depends(require_technician_admin),
    service: TechnicianService = Depends(get_technician_service),
):
    return service.update_technician(
        technician_id,
        current_user,
        full_name=data.full_name,
        email=data.email,
        phone=data.phone,
        specialty=data.specialty,
        is_active=data.is_active,
    )
