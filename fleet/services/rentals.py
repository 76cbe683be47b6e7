"""
FLEET App - Rental Service for FLEET-DISPATCH

Handles vehicle reservation and settlement on return.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone as dt_timezone
from decimal import Decimal

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from core.exceptions import ConflictError, NoVehicleAvailable, ValidationError
from core.ledger import LedgerStore, transient_retry
from fleet.models import Rental
from fleet.services.availability import overlaps, pick_free_vehicle, to_utc
from fleet.services.billing import BillingEngine

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Reservation:
    rental_id: int
    vehicle_id: int
    start_date: datetime
    predicted_end_date: datetime


@dataclass(frozen=True)
class Settlement:
    rental_id: int
    total_cost: Decimal


def reservation_start(now: datetime = None) -> datetime:
    """UTC midnight of the day the rental begins."""
    today = to_utc(now or timezone.now()).date()
    start_day = today + timedelta(days=settings.RENTAL_START_OFFSET_DAYS)
    return datetime.combine(start_day, time.min, tzinfo=dt_timezone.utc)


@transient_retry
@transaction.atomic
def reserve_vehicle(courier_id, plan, now: datetime = None, ledger=LedgerStore,
                    billing: BillingEngine = None) -> Reservation:
    """
    Reserve the first free vehicle for a courier (double-booking safe).

    Each candidate vehicle row is locked with SELECT FOR UPDATE and its
    occupancy re-read under the lock before the rental is written, so a
    competing reservation for the same vehicle waits for this transaction
    and then sees the new rental.

    Raises:
        InvalidPlan: plan is not 7, 15 or 30
        NotFoundError: courier does not exist
        ValidationError: courier's license category cannot rent
        NoVehicleAvailable: every vehicle is occupied for the window
    """
    billing = billing or BillingEngine()
    plan = billing.validate_plan(plan)

    courier = ledger.get_courier(courier_id)
    if not courier.can_rent:
        logger.warning(
            f"[RENTAL] Courier {courier.pk} refused: license category {courier.license_category}"
        )
        raise ValidationError(
            "Only couriers with driver license category A or AB may rent a vehicle"
        )

    start_date = reservation_start(now)
    predicted_end_date = Rental.predicted_end_for(start_date, plan)

    vehicle_ids = ledger.list_vehicle_ids()
    occupancies = ledger.get_occupancies(start_date, predicted_end_date)

    while True:
        vehicle_id = pick_free_vehicle(vehicle_ids, occupancies, start_date, predicted_end_date)
        if vehicle_id is None:
            logger.info(f"[RENTAL] No vehicle available for courier {courier.pk} (plan {plan})")
            raise NoVehicleAvailable()

        # Lock the vehicle row, then re-read its occupancy
        vehicle = ledger.lock_vehicle(vehicle_id)
        current = ledger.get_occupancies(start_date, predicted_end_date, vehicle_id=vehicle_id)
        if vehicle is not None and not any(
            overlaps(start, end, start_date, predicted_end_date) for _, start, end in current
        ):
            break

        logger.info(f"[RENTAL] Vehicle {vehicle_id} taken concurrently, trying next")
        vehicle_ids = [v for v in vehicle_ids if v != vehicle_id]

    rental = ledger.insert_rental(
        vehicle_id=vehicle.pk,
        courier_id=courier.pk,
        plan=plan,
        start_date=start_date,
        predicted_end_date=predicted_end_date,
    )

    logger.info(
        f"[RENTAL] Rental {rental.pk}: vehicle {vehicle.plate} → courier {courier.pk} "
        f"({plan} days from {start_date.date()})"
    )

    return Reservation(
        rental_id=rental.pk,
        vehicle_id=vehicle.pk,
        start_date=start_date,
        predicted_end_date=predicted_end_date,
    )


@transient_retry
@transaction.atomic
def settle_return(rental_id, courier_id, return_date: datetime = None, ledger=LedgerStore,
                  billing: BillingEngine = None) -> Settlement:
    """
    Close a rental and record its total cost.

    Raises:
        NotFoundError: no such rental for this courier
        ConflictError: rental already settled
        ValidationError: return dated before the rental start
    """
    billing = billing or BillingEngine()
    return_date = to_utc(return_date or timezone.now())

    rental = ledger.get_rental_for_update(rental_id, courier_id)
    if not rental.is_open or rental.is_settled:
        raise ConflictError(f"Rental {rental_id} is already settled")

    total_cost = billing.compute_cost(
        rental.plan, rental.start_date, rental.predicted_end_date, return_date
    )
    ledger.update_rental_on_return(rental, return_date, total_cost)

    logger.info(
        f"[RENTAL] Rental {rental.pk} returned on {return_date.date()} | Total: {total_cost}"
    )

    return Settlement(rental_id=rental.pk, total_cost=total_cost)
