"""
FLEET App - Availability Resolver

Finds a free vehicle for a time window. All comparisons happen in UTC.
"""

import logging
from datetime import datetime, timezone as dt_timezone
from typing import Iterable, Optional, Sequence, Tuple

from django.utils import timezone

from core.exceptions import ValidationError
from core.ledger import LedgerStore
from fleet.models import Vehicle

logger = logging.getLogger(__name__)


def to_utc(value: datetime) -> datetime:
    """Naive datetimes are taken as UTC; aware ones are converted."""
    if timezone.is_naive(value):
        return value.replace(tzinfo=dt_timezone.utc)
    return value.astimezone(dt_timezone.utc)


def overlaps(rental_start, rental_end, window_start, window_end) -> bool:
    """
    Occupancy test for the half-open window [window_start, window_end).

    An open rental (rental_end is None) occupies its vehicle forever.
    """
    return rental_start < window_end and (rental_end is None or rental_end > window_start)


def pick_free_vehicle(
    vehicle_ids: Sequence[int],
    occupancies: Iterable[Tuple[int, datetime, Optional[datetime]]],
    window_start: datetime,
    window_end: datetime,
) -> Optional[int]:
    """
    Lowest vehicle id with no occupancy overlapping the window.

    Args:
        vehicle_ids: The whole fleet
        occupancies: (vehicle_id, start, end) tuples; end None means open

    Returns:
        A vehicle id, or None when the fleet is fully occupied
    """
    occupied = {
        vehicle_id
        for vehicle_id, start, end in occupancies
        if overlaps(start, end, window_start, window_end)
    }
    for vehicle_id in sorted(vehicle_ids):
        if vehicle_id not in occupied:
            return vehicle_id
    return None


def check_window(window_start, window_end) -> Tuple[datetime, datetime]:
    if window_start is None or window_end is None:
        raise ValidationError("Both window bounds are required")
    window_start, window_end = to_utc(window_start), to_utc(window_end)
    if window_start >= window_end:
        raise ValidationError("Window start must be before window end")
    return window_start, window_end


def find_available_vehicle(window_start, window_end, ledger=LedgerStore) -> Optional[Vehicle]:
    """
    Return one free vehicle for [window_start, window_end), or None.

    Read-only: callers that go on to reserve must re-check under a row
    lock (see fleet.services.rentals.reserve_vehicle).
    """
    window_start, window_end = check_window(window_start, window_end)

    vehicle_id = pick_free_vehicle(
        ledger.list_vehicle_ids(),
        ledger.get_occupancies(window_start, window_end),
        window_start,
        window_end,
    )
    if vehicle_id is None:
        logger.info(f"[RENTAL] No vehicle free for {window_start.isoformat()} → {window_end.isoformat()}")
        return None

    return Vehicle.objects.get(pk=vehicle_id)
