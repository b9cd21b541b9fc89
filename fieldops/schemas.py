from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class CurrentUserResponse(BaseModel):
    id: str
    email: str
    full_name: Optional[str]
    role: str


class SuccessResponse(BaseModel):
    success: bool = True


# Technician job responses
class AcceptJobRequest(BaseModel):
    jobTechnicianId: str = Field(min_length=1)
    jobId: str = Field(min_length=1)


class DeclineJobRequest(BaseModel):
    jobTechnicianId: str = Field(min_length=1)


# Technician accounts
class TechnicianPayload(BaseModel):
    full_name: str = Field(min_length=1)
    email: str = Field(min_length=3)
    phone: Optional[str] = None
    specialty: Optional[str] = None
    is_active: Optional[bool] = None
    organization_id: Optional[str] = None


class TechnicianResponse(BaseModel):
    id: str
    organization_id: str
    full_name: Optional[str]
    email: str
    phone: Optional[str]
    role: str
    is_active: bool
    preferences: Optional[dict] = None

    class Config:
        from_attributes = True


# Customers
class CustomerCreate(BaseModel):
    organization_id: Optional[str] = None
    type: Optional[str] = "commercial"
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    company_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    customer_type: Optional[str] = None


class CustomerSummary(BaseModel):
    id: str
    first_name: Optional[str]
    last_name: Optional[str]
    company_name: Optional[str]

    class Config:
        from_attributes = True


class CustomerResponse(CustomerSummary):
    organization_id: str
    type: Optional[str]
    email: Optional[str]
    phone: Optional[str]
    customer_type: Optional[str]
    is_active: bool


# Vendors
class VendorCreate(BaseModel):
    name: str = Field(min_length=1)


class VendorResponse(BaseModel):
    id: str
    name: str

    class Config:
        from_attributes = True


# Notifications
class NotificationResponse(BaseModel):
    id: str
    type: str
    message: str
    related_entity_type: Optional[str]
    related_entity_id: Optional[str]
    is_read: bool
    read_at: Optional[datetime]
    created_at: Optional[datetime]

    class Config:
        from_attributes = True


class UnreadCountResponse(BaseModel):
    count: int


# Calendar
class CalendarUpdateRequest(BaseModel):
    jobId: str = Field(min_length=1)
    technicianIds: list[str]
