"""
Contract scans
Periodic passes over service agreements that move them into renewal / job-creation /
overdue states and tell the organization's managers about it.
Each scan is meant to be triggered by a daily cron ping.
"""

import logging
from datetime import date, datetime, time, timedelta
from typing import Optional

from dateutil.relativedelta import relativedelta
from sqlalchemy.orm import Session

from ..models import ContractService, Job, ServiceAgreement
from .notification_service import create_notifications, get_manager_user_ids
from .scan_result import FAILED, UPDATED, ScanResult

logger = logging.getLogger(__name__)

RENEWAL_LEAD = relativedelta(months=3)
RENEWAL_WINDOW = timedelta(days=5)
NOTIFY_THROTTLE = timedelta(days=7)
JOB_CREATION_AFTER = relativedelta(months=5)

CLOSED_CONTRACT_STATUSES = ("ended", "cancelled")


class ContractNotificationsResult(ScanResult):
    renewal_notifications: int = 0
    job_needed_notifications: int = 0


class ContractStatusScanResult(ScanResult):
    renewal_needed_count: int = 0
    job_creation_needed_count: int = 0


class ContractStatusCheckResult(ScanResult):
    overdue_contracts: int = 0
    expiring_contracts: int = 0
    active_contracts: int = 0


def _notify_managers(
    db: Session, contract: ServiceAgreement, notification_type: str, message: str
) -> None:
    create_notifications(
        db,
        organization_id=contract.organization_id,
        recipient_user_ids=get_manager_user_ids(db, contract.organization_id),
        notification_type=notification_type,
        message=message,
        related_entity_type="contract",
        related_entity_id=contract.id,
    )


def _transition(
    db: Session, contract: ServiceAgreement, status: str, stamp: Optional[datetime] = None
) -> None:
    """Set a contract's status (and optionally its last-notified stamp) and commit"""
    previous = contract.status
    contract.status = status
    if stamp is not None:
        contract.last_notified_at = stamp
    db.commit()
    logger.info(f"✅ Contract {contract.id} transitioned: {previous} → {status}")


def _recently_notified(contract: ServiceAgreement, now: datetime) -> bool:
    return contract.last_notified_at is not None and contract.last_notified_at >= now - NOTIFY_THROTTLE


def _as_datetime(value) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.combine(value, time.min)


def run_contract_notifications_scan(
    db: Session, now: Optional[datetime] = None
) -> ContractNotificationsResult:
    """
    Notify managers about contracts nearing renewal and twice-yearly contracts
    due for their next visit. Does not change contract statuses.

    1. Renewal: active contracts ending 3 months (+5 days) from now
    2. Job needed: twice-yearly contracts whose last completed job was 5-6 months ago
    """
    now = now or datetime.utcnow()
    result = ContractNotificationsResult()

    window_start: date = (now + RENEWAL_LEAD).date()
    window_end: date = window_start + RENEWAL_WINDOW

    try:
        renewal_contracts = (
            db.query(ServiceAgreement)
            .filter(
                ServiceAgreement.status == "active",
                ServiceAgreement.end_date >= window_start,
                ServiceAgreement.end_date <= window_end,
            )
            .all()
        )
    except Exception as e:
        logger.error(f"❌ Renewal scan query failed: {e}")
        result.errors.append(f"Renewal scan error: {e}")
        renewal_contracts = []

    for contract in renewal_contracts:
        result.checked += 1
        _notify_managers(
            db,
            contract,
            "contract_renewal_needed",
            f"Contract {contract.agreement_number or contract.id} renewal needed",
        )
        result.renewal_notifications += 1
        result.record(contract.id, UPDATED)

    five_months_ago = now - relativedelta(months=5)
    six_months_ago = now - relativedelta(months=6)

    try:
        twice_yearly = (
            db.query(ServiceAgreement)
            .filter(
                ServiceAgreement.status == "active",
                ServiceAgreement.service_frequency == "twice_yearly",
            )
            .all()
        )
    except Exception as e:
        logger.error(f"❌ Twice-yearly scan query failed: {e}")
        result.errors.append(f"Twice-yearly scan error: {e}")
        twice_yearly = []

    for contract in twice_yearly:
        result.checked += 1
        recent_job = (
            db.query(Job)
            .filter(
                Job.service_agreement_id == contract.id,
                Job.status == "completed",
                Job.completed_at.isnot(None),
            )
            .order_by(Job.completed_at.desc())
            .first()
        )
        if not recent_job or not (six_months_ago <= recent_job.completed_at <= five_months_ago):
            continue

        _notify_managers(
            db,
            contract,
            "contract_job_needed",
            f"Job creation for contract {contract.agreement_number or contract.id} needed",
        )
        result.job_needed_notifications += 1
        result.record(contract.id, UPDATED)

    logger.info(
        f"📊 Contract notification scan: renewals={result.renewal_notifications} "
        f"job_needed={result.job_needed_notifications}"
    )
    return result


def run_contract_status_scan(db: Session, now: Optional[datetime] = None) -> ContractStatusScanResult:
    """
    Move contracts into renewal_needed / job_creation_needed and notify managers.
    A contract notified within the last 7 days is left alone.
    """
    now = now or datetime.utcnow()
    result = ContractStatusScanResult()

    # 1. End date approaching (3 months)
    expiring = (
        db.query(ServiceAgreement)
        .filter(
            ServiceAgreement.end_date.isnot(None),
            ServiceAgreement.end_date <= (now + RENEWAL_LEAD).date(),
            ServiceAgreement.status.notin_(CLOSED_CONTRACT_STATUSES + ("renewal_needed",)),
        )
        .all()
    )

    for contract in expiring:
        result.checked += 1
        if _recently_notified(contract, now):
            continue
        contract_id = contract.id
        try:
            _transition(db, contract, "renewal_needed", stamp=now)
        except Exception as e:
            db.rollback()
            logger.error(f"❌ Failed to flag contract {contract_id} for renewal: {e}")
            result.record(contract_id, FAILED, str(e))
            continue

        label = contract.agreement_number or contract.name or contract.id
        _notify_managers(db, contract, "contract_renewal_needed", f"Contract {label} end date approaching")
        result.renewal_needed_count += 1
        result.record(contract.id, UPDATED)

    # 2. Contracted services used up - next job needs creating 5 months after the first visit
    services = db.query(ContractService).all()

    for contract_service in services:
        contract = contract_service.contract
        if not contract or contract.status in CLOSED_CONTRACT_STATUSES:
            continue
        result.checked += 1

        jobs = (
            db.query(Job.scheduled_start)
            .filter(
                Job.service_agreement_id == contract.id,
                Job.service_type == contract_service.service_type,
                Job.scheduled_start.isnot(None),
            )
            .order_by(Job.scheduled_start.asc())
            .all()
        )
        if not jobs:
            continue

        total_quantity = contract_service.frequency_months
        completed_jobs = len(jobs)
        if completed_jobs < total_quantity:
            continue
        if now < jobs[0].scheduled_start + JOB_CREATION_AFTER:
            continue
        if _recently_notified(contract, now):
            continue

        contract_id = contract.id
        try:
            _transition(db, contract, "job_creation_needed", stamp=now)
        except Exception as e:
            db.rollback()
            logger.error(f"❌ Failed to flag contract {contract_id} for job creation: {e}")
            result.record(contract_id, FAILED, str(e))
            continue

        label = contract.agreement_number or contract.name or contract.id
        _notify_managers(
            db,
            contract,
            "contract_job_creation_needed",
            f"Job creation needed for contract {label} ({completed_jobs}/{total_quantity} services completed)",
        )
        result.job_creation_needed_count += 1
        result.record(contract.id, UPDATED)

    logger.info(
        f"📊 Contract status scan: renewal_needed={result.renewal_needed_count} "
        f"job_creation_needed={result.job_creation_needed_count}"
    )
    return result


def check_contract_statuses(db: Session, now: Optional[datetime] = None) -> ContractStatusCheckResult:
    """
    Daily contract status check

    1. Past end date → overdue
    2. Ending within 3 months → renewal_needed
    3. Active contracts within a month of their next service → job_creation_needed
    """
    now = now or datetime.utcnow()
    today = now.date()
    result = ContractStatusCheckResult()

    overdue = (
        db.query(ServiceAgreement)
        .filter(
            ServiceAgreement.end_date.isnot(None),
            ServiceAgreement.end_date < today,
            ServiceAgreement.status.notin_(CLOSED_CONTRACT_STATUSES + ("overdue",)),
        )
        .all()
    )
    result.overdue_contracts = len(overdue)

    for contract in overdue:
        contract_id = contract.id
        try:
            _transition(db, contract, "overdue")
        except Exception as e:
            db.rollback()
            logger.error(f"❌ Failed to mark contract {contract_id} overdue: {e}")
            result.record(contract_id, FAILED, str(e))
            continue
        _notify_managers(
            db, contract, "contract_overdue", f'Contract "{contract.label}" has passed its end date'
        )
        result.record(contract.id, UPDATED)

    expiring = (
        db.query(ServiceAgreement)
        .filter(
            ServiceAgreement.end_date.isnot(None),
            ServiceAgreement.end_date >= today,
            ServiceAgreement.end_date <= (now + RENEWAL_LEAD).date(),
            ServiceAgreement.status.notin_(
                CLOSED_CONTRACT_STATUSES + ("renewal_needed", "overdue")
            ),
        )
        .all()
    )
    result.expiring_contracts = len(expiring)

    for contract in expiring:
        contract_id = contract.id
        try:
            _transition(db, contract, "renewal_needed")
        except Exception as e:
            db.rollback()
            logger.error(f"❌ Failed to flag contract {contract_id} for renewal: {e}")
            result.record(contract_id, FAILED, str(e))
            continue
        _notify_managers(
            db,
            contract,
            "contract_renewal_needed",
            f'Contract "{contract.label}" expires on {contract.end_date:%m/%d/%Y} - renewal needed',
        )
        result.record(contract.id, UPDATED)

    active = (
        db.query(ServiceAgreement)
        .filter(ServiceAgreement.status.in_(("active", "in_progress")))
        .all()
    )
    result.active_contracts = len(active)

    for contract in active:
        services_per_year = sum(s.frequency_months or 0 for s in contract.services)
        if services_per_year <= 0:
            continue

        last_job = (
            db.query(Job.scheduled_start)
            .filter(Job.service_agreement_id == contract.id, Job.scheduled_start.isnot(None))
            .order_by(Job.scheduled_start.desc())
            .first()
        )
        last_service = last_job.scheduled_start if last_job else _as_datetime(contract.start_date)
        if last_service is None:
            continue

        # Whole months between visits, at least one
        months_between = max(1, 12 // services_per_year)
        next_job_due = last_service + relativedelta(months=months_between)
        reminder_from = next_job_due - relativedelta(months=1)

        if not (reminder_from <= now < next_job_due):
            continue

        contract_id = contract.id
        try:
            _transition(db, contract, "job_creation_needed")
        except Exception as e:
            db.rollback()
            logger.error(f"❌ Failed to flag contract {contract_id} for job creation: {e}")
            result.record(contract_id, FAILED, str(e))
            continue
        _notify_managers(
            db,
            contract,
            "contract_job_needed",
            f'Contract "{contract.label}" - schedule next service by {next_job_due:%m/%d/%Y}',
        )
        result.record(contract.id, UPDATED)

    result.checked = result.overdue_contracts + result.expiring_contracts + result.active_contracts
    logger.info(
        f"📊 Contract status check: overdue={result.overdue_contracts} "
        f"expiring={result.expiring_contracts} active={result.active_contracts}"
    )
    return result
