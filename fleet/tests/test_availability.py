"""
Availability Resolver Tests
============================

Tests for:
1. Overlap rule on half-open windows
2. Pure vehicle picking (deterministic order, randomized no-double-booking)
3. DB-backed lookup (UTC handling, invalid windows)
"""

import random
from datetime import datetime, timedelta, timezone as dt_timezone

from django.test import SimpleTestCase, TestCase

from core.exceptions import ValidationError
from core.models import User
from fleet.models import Rental, Vehicle
from fleet.services.availability import (
    find_available_vehicle, overlaps, pick_free_vehicle, to_utc,
)


DAY0 = datetime(2024, 3, 1, tzinfo=dt_timezone.utc)


def day(n):
    return DAY0 + timedelta(days=n)


class TestOverlap(SimpleTestCase):
    """Tests for the occupancy overlap rule."""

    def test_touching_windows_do_not_overlap(self):
        self.assertFalse(overlaps(day(0), day(5), day(5), day(10)))
        self.assertFalse(overlaps(day(10), None, day(5), day(10)))

    def test_contained_window_overlaps(self):
        self.assertTrue(overlaps(day(0), day(10), day(2), day(3)))

    def test_open_rental_overlaps_everything_after_start(self):
        self.assertTrue(overlaps(day(0), None, day(400), day(401)))
        self.assertFalse(overlaps(day(5), None, day(0), day(5)))

    def test_partial_overlap(self):
        self.assertTrue(overlaps(day(0), day(6), day(5), day(10)))
        self.assertTrue(overlaps(day(8), day(12), day(5), day(10)))


class TestPickFreeVehicle(SimpleTestCase):
    """Tests for the pure picking algorithm."""

    def test_lowest_free_id_wins(self):
        occupancies = [(1, day(0), None)]
        self.assertEqual(pick_free_vehicle([3, 1, 2], occupancies, day(1), day(8)), 2)

    def test_none_when_fleet_fully_occupied(self):
        occupancies = [(1, day(0), None), (2, day(0), day(30))]
        self.assertIsNone(pick_free_vehicle([1, 2], occupancies, day(1), day(8)))

    def test_none_for_empty_fleet(self):
        self.assertIsNone(pick_free_vehicle([], [], day(1), day(8)))

    def test_returned_vehicle_is_free_again(self):
        occupancies = [(1, day(0), day(1))]
        self.assertEqual(pick_free_vehicle([1, 2], occupancies, day(1), day(8)), 1)

    def test_random_reservations_never_double_book(self):
        """Reserve random windows one by one; no vehicle ever holds overlapping windows."""
        rng = random.Random(20240301)

        for _ in range(50):
            fleet = list(range(1, rng.randint(1, 6) + 1))
            booked = []
            today = 0

            # Reservations are always requested for a start on or after the last one
            for _ in range(40):
                today += rng.randint(0, 3)
                start = day(today)
                end = start + timedelta(days=rng.choice([7, 15, 30]))
                vehicle_id = pick_free_vehicle(fleet, booked, start, end)
                if vehicle_id is None:
                    continue
                # Some reservations stay open, others are returned by their predicted end
                closed_end = rng.choice([None, end, start + timedelta(days=rng.randint(1, 40))])
                booked.append((vehicle_id, start, closed_end if closed_end is None else min(closed_end, end)))

            for i, (vehicle_a, start_a, end_a) in enumerate(booked):
                for vehicle_b, start_b, end_b in booked[i + 1:]:
                    if vehicle_a != vehicle_b:
                        continue
                    far = end_b or day(10_000)
                    self.assertFalse(
                        overlaps(start_a, end_a, start_b, far),
                        f"vehicle {vehicle_a} double-booked"
                    )


class TestFindAvailableVehicle(TestCase):
    """Tests for the DB-backed resolver."""

    def setUp(self):
        self.courier = User.objects.create_courier(email='c1@fleet.test', license_category='A')
        self.v1 = Vehicle.objects.create(plate='ABC1D23', model='Mottu Sport', year=2023)
        self.v2 = Vehicle.objects.create(plate='XYZ9876', model='Mottu Sport', year=2024)

    def _rent(self, vehicle, start, end=None):
        Rental.objects.create(
            vehicle=vehicle, courier=self.courier, plan=7,
            start_date=start, predicted_end_date=start + timedelta(days=7), end_date=end,
        )

    def test_returns_first_vehicle_when_fleet_is_free(self):
        self.assertEqual(find_available_vehicle(day(1), day(8)), self.v1)

    def test_skips_occupied_vehicle(self):
        self._rent(self.v1, day(0))
        self.assertEqual(find_available_vehicle(day(1), day(8)), self.v2)

    def test_none_when_all_occupied(self):
        self._rent(self.v1, day(0))
        self._rent(self.v2, day(0), end=day(9))
        self.assertIsNone(find_available_vehicle(day(1), day(8)))

    def test_invalid_window(self):
        with self.assertRaises(ValidationError):
            find_available_vehicle(day(8), day(1))
        with self.assertRaises(ValidationError):
            find_available_vehicle(day(1), day(1))

    def test_naive_datetimes_are_utc(self):
        self._rent(self.v1, day(0), end=day(3))
        naive_start = datetime(2024, 3, 3, 0, 0)
        self.assertEqual(find_available_vehicle(naive_start, naive_start + timedelta(days=7)), self.v1)

    def test_aware_datetimes_are_converted_to_utc(self):
        """03:00 in UTC+3 is midnight UTC, exactly when vehicle 1 is returned."""
        self._rent(self.v1, day(0), end=day(3))
        plus3 = dt_timezone(timedelta(hours=3))
        start = datetime(2024, 3, 4, 3, 0, tzinfo=plus3)
        self.assertEqual(to_utc(start), day(3))
        self.assertEqual(find_available_vehicle(start, start + timedelta(days=7)), self.v1)
