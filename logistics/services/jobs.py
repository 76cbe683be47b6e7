"""
LOGISTICS App - Job State Machine for FLEET-DISPATCH

OFFERED → ACCEPTED → DELIVERED. Every transition is a conditional
update on the current status, so two couriers racing for the same job
produce exactly one winner.
"""

import logging
from decimal import Decimal, InvalidOperation

from django.db import transaction

from core.exceptions import (
    JobNotAccepted, JobNotAvailable, NotAssigned, NotificationNotFound, ValidationError,
)
from core.ledger import LedgerStore, transient_retry
from logistics.events import broadcast_job_status
from logistics.models import Job, JobStatus

logger = logging.getLogger(__name__)


def _on_job_created(job_id: int):
    from logistics.services.dispatch import dispatch_job

    try:
        result = dispatch_job(job_id)
    except Exception as e:
        # Job stays committed and OFFERED
        logger.error(f"[JOB] Dispatch of job {job_id} failed: {e}")
        return

    if result.error:
        logger.warning(f"[JOB] {result.error}")


@transient_retry
@transaction.atomic
def create_job(ride_price, ledger=LedgerStore) -> Job:
    """
    Create a job in OFFERED and dispatch it once the row is committed.

    Raises:
        ValidationError: ride price missing, malformed or not positive
    """
    try:
        ride_price = Decimal(str(ride_price))
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError(f"Invalid ride price: {ride_price!r}")
    if not ride_price.is_finite() or ride_price <= 0:
        raise ValidationError("Ride price must be greater than zero")

    job = ledger.insert_job(ride_price)
    logger.info(f"[JOB] Job {job.pk} created (ride price {ride_price})")

    transaction.on_commit(lambda: _on_job_created(job.pk))
    return job


@transient_retry
@transaction.atomic
def take_job(job_id: int, courier_id, ledger=LedgerStore) -> Job:
    """
    Accept an offered job as a courier (race condition safe).

    Raises:
        NotificationNotFound: courier was never offered the job
        NotFoundError: job does not exist
        JobNotAvailable: job already left OFFERED
    """
    if not ledger.notification_exists(job_id, courier_id):
        logger.warning(f"[JOB] Courier {courier_id} has no offer for job {job_id}")
        raise NotificationNotFound()

    ledger.get_job(job_id)

    accepted = ledger.update_job_status(
        job_id,
        JobStatus.OFFERED,
        JobStatus.ACCEPTED,
        courier_id=courier_id,
        accepted_at=ledger.now(),
    )
    if not accepted:
        logger.info(f"[JOB] Job {job_id} no longer available for courier {courier_id}")
        raise JobNotAvailable()

    job = ledger.get_job(job_id)
    logger.info(f"[JOB] Job {job_id} accepted by courier {courier_id}")

    offered_to = [n.courier_id for n in ledger.list_notifications(job_ids=[job_id])]
    transaction.on_commit(lambda: broadcast_job_status(job_id, job.status, offered_to))
    return job


@transient_retry
@transaction.atomic
def deliver_job(job_id: int, courier_id, ledger=LedgerStore) -> Job:
    """
    Mark an accepted job as delivered by its assigned courier.

    Raises:
        NotFoundError: job does not exist
        JobNotAccepted: job is not ACCEPTED
        NotAssigned: job is assigned to another courier
    """
    delivered = ledger.update_job_status(
        job_id,
        JobStatus.ACCEPTED,
        JobStatus.DELIVERED,
        where={'courier_id': courier_id},
        delivered_at=ledger.now(),
    )

    job = ledger.get_job(job_id)
    if not delivered:
        if job.status != JobStatus.ACCEPTED:
            raise JobNotAccepted(f"Job {job_id} is {job.status}, not ACCEPTED")
        logger.warning(f"[JOB] Courier {courier_id} tried to deliver job {job_id} assigned to {job.courier_id}")
        raise NotAssigned()

    logger.info(f"[JOB] Job {job_id} delivered by courier {courier_id}")

    transaction.on_commit(lambda: broadcast_job_status(job_id, job.status, [courier_id]))
    return job
