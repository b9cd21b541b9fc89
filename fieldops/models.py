import uuid

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base

# Roles allowed to manage jobs, contracts and receive operational notifications
MANAGER_ROLES = ("owner", "admin", "manager", "dispatcher")
# Roles allowed to create or edit technician accounts
TECHNICIAN_ADMIN_ROLES = ("owner", "admin", "manager")

JOB_STATUSES = ("pending", "confirmed", "accepted", "completed", "cancelled", "on_hold", "overdue")
JOB_TECHNICIAN_STATUSES = ("pending", "accepted", "declined", "cancelled")


def generate_id():
    """Generate a string UUID primary key"""
    return str(uuid.uuid4())


class Organization(Base):
    __tablename__ = "organizations"

    id = Column(String(36), primary_key=True, default=generate_id)
    name = Column(String(255), nullable=False)
    slug = Column(String(255), unique=True, nullable=True)
    timezone = Column(String(64), default="America/New_York")
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    users = relationship("User", back_populates="organization")


class User(Base):
    __tablename__ = "users"

    # Matches the Supabase auth user id (token "sub" claim)
    id = Column(String(36), primary_key=True, default=generate_id)
    organization_id = Column(String(36), ForeignKey("organizations.id"), nullable=False, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    full_name = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    role = Column(String(20), nullable=False, default="technician")  # owner, admin, manager, dispatcher, technician, viewer
    is_active = Column(Boolean, default=True, nullable=False)
    preferences = Column(JSON, default=dict)  # e.g. {"specialty": "..."}
    created_at = Column(DateTime, server_default=func.now())

    organization = relationship("Organization", back_populates="users")

    @property
    def is_manager(self) -> bool:
        return self.role in MANAGER_ROLES


class Customer(Base):
    __tablename__ = "customers"

    id = Column(String(36), primary_key=True, default=generate_id)
    organization_id = Column(String(36), ForeignKey("organizations.id"), nullable=False, index=True)
    type = Column(String(20), default="commercial")  # residential, commercial
    first_name = Column(String(255), nullable=True)
    last_name = Column(String(255), nullable=True)
    company_name = Column(String(255), nullable=True)
    email = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    customer_type = Column(String(20), nullable=True)  # direct, subcontract
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    @property
    def display_name(self) -> str:
        full = f"{self.first_name or ''} {self.last_name or ''}".strip()
        return self.company_name or full or "Unknown"


class Vendor(Base):
    __tablename__ = "vendors"

    id = Column(String(36), primary_key=True, default=generate_id)
    organization_id = Column(String(36), ForeignKey("organizations.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())


class ServiceAgreement(Base):
    """Customer service contract"""

    __tablename__ = "service_agreements"

    id = Column(String(36), primary_key=True, default=generate_id)
    organization_id = Column(String(36), ForeignKey("organizations.id"), nullable=False, index=True)
    customer_id = Column(String(36), ForeignKey("customers.id"), nullable=True)
    vendor_id = Column(String(36), ForeignKey("vendors.id"), nullable=True)
    name = Column(String(255), nullable=True)
    agreement_number = Column(String(64), nullable=True)
    type = Column(String(50), nullable=True)  # coverage plan: maintenance, warranty, service_plan
    # active, in_progress, renewal_needed, job_creation_needed, overdue, ended, cancelled
    status = Column(String(30), default="active", nullable=False, index=True)
    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)
    service_frequency = Column(String(50), nullable=True)  # e.g. twice_yearly
    billing_frequency = Column(String(50), nullable=True)
    billing_type = Column(String(50), default="due_on_receipt")
    agreement_length_years = Column(Integer, default=1)
    service_count = Column(Integer, default=0)
    last_notified_at = Column(DateTime, nullable=True)  # Throttles repeated scan notifications
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    services = relationship("ContractService", back_populates="contract", cascade="all, delete-orphan")

    @property
    def label(self) -> str:
        return self.name or self.agreement_number or self.id


class ContractService(Base):
    __tablename__ = "contract_services"

    id = Column(String(36), primary_key=True, default=generate_id)
    organization_id = Column(String(36), ForeignKey("organizations.id"), nullable=False)
    contract_id = Column(String(36), ForeignKey("service_agreements.id"), nullable=False, index=True)
    service_type = Column(String(10), nullable=False)  # MJPM, MNPM
    frequency_months = Column(Integer, nullable=False, default=1)  # services per year

    contract = relationship("ServiceAgreement", back_populates="services")


class Job(Base):
    __tablename__ = "jobs"

    id = Column(String(36), primary_key=True, default=generate_id)
    organization_id = Column(String(36), ForeignKey("organizations.id"), nullable=False, index=True)
    customer_id = Column(String(36), ForeignKey("customers.id"), nullable=True)
    service_agreement_id = Column(String(36), ForeignKey("service_agreements.id"), nullable=True, index=True)
    job_number = Column(String(64), nullable=False)
    title = Column(String(255), nullable=True)
    service_type = Column(String(10), nullable=True)  # MJPM, MNPM
    status = Column(String(20), default="pending", nullable=False, index=True)
    scheduled_start = Column(DateTime, nullable=True, index=True)
    scheduled_end = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    internal_notes = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    customer = relationship("Customer")
    technicians = relationship("JobTechnician", back_populates="job")

    @property
    def label(self) -> str:
        return self.title or self.job_number or self.id


class JobTechnician(Base):
    __tablename__ = "job_technicians"

    id = Column(String(36), primary_key=True, default=generate_id)
    job_id = Column(String(36), ForeignKey("jobs.id"), nullable=False, index=True)
    technician_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    status = Column(String(20), default="pending", nullable=False)
    is_lead = Column(Boolean, default=False, nullable=False)
    google_event_id = Column(String(255), nullable=True)
    google_calendar_id = Column(String(255), nullable=True)
    assigned_at = Column(DateTime, server_default=func.now())
    responded_at = Column(DateTime, nullable=True)
    notes = Column(Text, nullable=True)

    job = relationship("Job", back_populates="technicians")
    technician = relationship("User")


class JobEquipment(Base):
    __tablename__ = "job_equipment"

    id = Column(String(36), primary_key=True, default=generate_id)
    job_id = Column(String(36), ForeignKey("jobs.id"), nullable=False, index=True)
    equipment_id = Column(String(36), nullable=False)
    expected_reports = Column(Integer, default=1)
    notes = Column(Text, nullable=True)


class JobContact(Base):
    __tablename__ = "job_contacts"

    id = Column(String(36), primary_key=True, default=generate_id)
    job_id = Column(String(36), ForeignKey("jobs.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    phone = Column(String(50), nullable=False)
    email = Column(String(255), nullable=True)


class JobAttachment(Base):
    """Technician report upload stored in the reports bucket"""

    __tablename__ = "job_attachments"

    id = Column(String(36), primary_key=True, default=generate_id)
    job_id = Column(String(36), ForeignKey("jobs.id"), nullable=False, index=True)
    type = Column(String(20), default="document")  # photo, document, video, other
    file_url = Column(String(1000), nullable=False)
    file_name = Column(String(255), nullable=True)
    mime_type = Column(String(100), nullable=True)
    uploaded_by = Column(String(36), ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    job = relationship("Job")


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True, default=generate_id)
    organization_id = Column(String(36), ForeignKey("organizations.id"), nullable=False, index=True)
    recipient_user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    type = Column(String(50), nullable=False)
    message = Column(Text, nullable=False)
    related_entity_type = Column(String(30), nullable=True)
    related_entity_id = Column(String(36), nullable=True)
    is_read = Column(Boolean, default=False, nullable=False)
    read_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
