import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..auth import CurrentUser, get_current_user
from ..database import get_db
from ..models import Customer
from ..schemas import CustomerCreate, CustomerResponse, CustomerSummary
from ..utils.sanitization import sanitize_string

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/customers", tags=["Customers"])


def _resolve_organization(requested: Optional[str], current_user: CurrentUser) -> str:
    """Callers may only address their own organization"""
    if requested and requested != current_user.organization_id:
        logger.warning(
            f"🚫 User {current_user.id} requested customers of organization {requested}"
        )
        raise HTTPException(status_code=403, detail="Forbidden")
    return current_user.organization_id


@router.get("", response_model=list[CustomerSummary])
async def list_customers(
    organizationId: Optional[str] = Query(None),
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Active customers of the organization ordered by company name"""
    organization_id = _resolve_organization(organizationId, current_user)
    return (
        db.query(Customer)
        .filter(Customer.organization_id == organization_id, Customer.is_active.is_(True))
        .order_by(Customer.company_name)
        .all()
    )


@router.post("/create", response_model=CustomerResponse)
async def create_customer(
    data: CustomerCreate,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    organization_id = _resolve_organization(data.organization_id, current_user)

    customer = Customer(
        organization_id=organization_id,
        type=data.type or "commercial",
        first_name=sanitize_string(data.first_name),
        last_name=sanitize_string(data.last_name),
        company_name=sanitize_string(data.company_name),
        email=data.email or None,
        phone=data.phone or None,
        customer_type=data.customer_type,
        is_active=True,
    )
    try:
        db.add(customer)
        db.commit()
        db.refresh(customer)
    except Exception as e:
        db.rollback()
        logger.error(f"❌ Error creating customer: {e}")
        raise HTTPException(status_code=500, detail="Failed to create customer") from e

    logger.info(f"🆕 Customer created: {customer.id}")
    return customer
