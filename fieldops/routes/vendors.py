import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..auth import CurrentUser, get_current_user
from ..database import get_db
from ..models import Vendor
from ..schemas import VendorCreate, VendorResponse
from ..utils.sanitization import sanitize_string

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/vendors", tags=["Vendors"])


@router.post("", response_model=VendorResponse)
async def create_vendor(
    data: VendorCreate,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    vendor = Vendor(
        organization_id=current_user.organization_id,
        name=sanitize_string(data.name),
        is_active=True,
    )
    try:
        db.add(vendor)
        db.commit()
        db.refresh(vendor)
    except Exception as e:
        db.rollback()
        logger.error(f"❌ Error creating vendor: {e}")
        raise HTTPException(status_code=500, detail="Failed to create vendor") from e

    return vendor
