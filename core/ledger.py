"""
CORE App - Ledger Store for FLEET-DISPATCH

The narrow repository contract the engine reads and writes through.
Every method re-reads current state; nothing is cached across requests.
Mutating methods expect to run inside the caller's transaction.atomic
block; transient_retry wraps that outermost block.
"""

import functools
import logging
import time
from typing import Iterable, List, Optional, Tuple

from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import IntegrityError, OperationalError, transaction
from django.db.models import Q
from django.utils import timezone

from core.exceptions import NotFoundError, ValidationError
from core.models import User, UserRole
from fleet.models import Rental, Vehicle
from logistics.models import Job, JobStatus, Notification

logger = logging.getLogger(__name__)


def transient_retry(func=None, *, attempts: int = None, base_delay: float = None):
    """
    Retry a whole core operation on transient database failures.

    Applied outside transaction.atomic so every attempt runs in a fresh
    transaction. Delay doubles after each failed attempt.
    """
    def decorator(fn):
        @functools.wraps(fn)
        def wrapper(*args, **kwargs):
            max_attempts = attempts or settings.LEDGER_RETRY_ATTEMPTS
            delay = settings.LEDGER_RETRY_BASE_DELAY if base_delay is None else base_delay
            for attempt in range(1, max_attempts + 1):
                try:
                    return fn(*args, **kwargs)
                except OperationalError as e:
                    if attempt >= max_attempts or transaction.get_connection().in_atomic_block:
                        raise
                    logger.warning(
                        f"[LEDGER] {fn.__name__} transient failure "
                        f"(attempt {attempt}/{max_attempts}): {e}"
                    )
                    time.sleep(delay)
                    delay *= 2
        return wrapper

    if func is not None:
        return decorator(func)
    return decorator


class LedgerStore:
    """
    Repository over the Django ORM for vehicles, couriers, rentals,
    jobs and notifications.
    """

    # ============================================
    # VEHICLES & RENTALS
    # ============================================

    @staticmethod
    def list_vehicle_ids() -> List[int]:
        return list(Vehicle.objects.order_by('id').values_list('id', flat=True))

    @staticmethod
    def get_occupancies(window_start, window_end, vehicle_id: int = None) -> List[Tuple[int, object, object]]:
        """
        (vehicle_id, start, end) of every rental overlapping the window.

        Overlap: rental.start < window_end AND (rental.end IS NULL OR rental.end > window_start)
        """
        rentals = Rental.objects.filter(
            Q(end_date__isnull=True) | Q(end_date__gt=window_start),
            start_date__lt=window_end,
        )
        if vehicle_id is not None:
            rentals = rentals.filter(vehicle_id=vehicle_id)
        return list(rentals.values_list('vehicle_id', 'start_date', 'end_date'))

    @staticmethod
    def get_open_rentals_by_vehicle(vehicle_id: int) -> List[Rental]:
        return list(Rental.objects.filter(vehicle_id=vehicle_id, end_date__isnull=True))

    @staticmethod
    def lock_vehicle(vehicle_id: int) -> Optional[Vehicle]:
        """Row-lock a vehicle for the rest of the current transaction."""
        return Vehicle.objects.select_for_update().filter(pk=vehicle_id).first()

    @staticmethod
    def insert_rental(vehicle_id: int, courier_id, plan: int, start_date, predicted_end_date) -> Rental:
        return Rental.objects.create(
            vehicle_id=vehicle_id,
            courier_id=courier_id,
            plan=plan,
            start_date=start_date,
            predicted_end_date=predicted_end_date,
        )

    @staticmethod
    def get_rental_for_update(rental_id: int, courier_id) -> Rental:
        try:
            return Rental.objects.select_for_update().get(pk=rental_id, courier_id=courier_id)
        except Rental.DoesNotExist:
            raise NotFoundError(f"Rental {rental_id} not found")

    @staticmethod
    def update_rental_on_return(rental: Rental, end_date, total_cost) -> Rental:
        rental.end_date = end_date
        rental.total_cost = total_cost
        rental.save(update_fields=['end_date', 'total_cost'])
        return rental

    @staticmethod
    def get_active_rentals_by_courier(courier_id) -> List[Rental]:
        return list(Rental.objects.filter(courier_id=courier_id, end_date__isnull=True))

    # ============================================
    # COURIERS
    # ============================================

    @staticmethod
    def get_courier(courier_id) -> User:
        try:
            return User.objects.get(pk=courier_id, role=UserRole.COURIER)
        except (User.DoesNotExist, ValueError, TypeError, DjangoValidationError):
            # Malformed UUIDs surface as django's ValidationError
            raise NotFoundError(f"Courier {courier_id} not found")

    @staticmethod
    def get_outstanding_jobs_by_courier(courier_id) -> List[Job]:
        return list(
            Job.objects.filter(courier_id=courier_id).exclude(status=JobStatus.DELIVERED)
        )

    @staticmethod
    def get_renting_courier_ids() -> List[str]:
        """Couriers holding at least one open rental, in ascending id order."""
        return sorted({
            str(courier_id)
            for courier_id in Rental.objects.filter(end_date__isnull=True)
            .values_list('courier_id', flat=True)
        })

    @staticmethod
    def get_eligible_courier_ids() -> List[str]:
        """
        Couriers holding an open rental and no assigned, undelivered job,
        in ascending id order.
        """
        renting = set(LedgerStore.get_renting_courier_ids())
        busy = set(
            Job.objects.filter(courier__isnull=False)
            .exclude(status=JobStatus.DELIVERED)
            .values_list('courier_id', flat=True)
        )
        return sorted(renting - {str(courier_id) for courier_id in busy})

    # ============================================
    # JOBS
    # ============================================

    @staticmethod
    def insert_job(ride_price) -> Job:
        return Job.objects.create(ride_price=ride_price, status=JobStatus.OFFERED)

    @staticmethod
    def get_job(job_id: int) -> Job:
        try:
            return Job.objects.get(pk=job_id)
        except (Job.DoesNotExist, ValueError, TypeError):
            raise NotFoundError(f"Job {job_id} not found")

    @staticmethod
    def update_job_status(job_id: int, expected: str, new: str, **fields) -> bool:
        """
        Compare-and-swap the job status.

        Returns False when the row is no longer in `expected` (or does not
        match the extra filter in `where`), True when it was updated.
        """
        if not Job.can_transition(expected, new):
            raise ValidationError(f"Illegal job transition {expected} → {new}")

        where = fields.pop('where', {})
        updated = Job.objects.filter(pk=job_id, status=expected, **where).update(
            status=new, **fields
        )
        return updated == 1

    # ============================================
    # NOTIFICATIONS
    # ============================================

    @staticmethod
    def notification_exists(job_id: int, courier_id) -> bool:
        return Notification.objects.filter(job_id=job_id, courier_id=courier_id).exists()

    @staticmethod
    def insert_notification_if_absent(job_id: int, courier_id) -> Tuple[Notification, bool]:
        """
        Record the offer receipt once per (job, courier).

        Returns (notification, created). A concurrent duplicate insert that
        hits the unique constraint is treated as already present.
        """
        try:
            with transaction.atomic():
                return Notification.objects.get_or_create(job_id=job_id, courier_id=courier_id)
        except IntegrityError:
            existing = Notification.objects.filter(job_id=job_id, courier_id=courier_id).first()
            if existing is None:
                raise
            return existing, False

    @staticmethod
    def list_notifications(job_ids: Iterable[int] = None):
        notifications = Notification.objects.select_related('job', 'courier').order_by('id')
        if job_ids is not None:
            notifications = notifications.filter(job_id__in=list(job_ids))
        return notifications

    @staticmethod
    def now():
        return timezone.now()
