"""
FLEET-DISPATCH Core Tests
==========================

Tests for:
1. Custom User Model (creation, roles, rental eligibility)
2. Ledger Store (occupancy, eligibility, conditional job updates, receipts)
3. Transient retry
4. HTTP error mapping
"""

import uuid
from datetime import datetime, timedelta, timezone as dt_timezone
from decimal import Decimal
from unittest.mock import MagicMock, patch

from django.db import OperationalError
from django.test import SimpleTestCase, TestCase, override_settings

from core.api import error_response, status_for
from core.exceptions import (
    ConflictError, DispatchPartialFailure, FleetError, InvalidPlan, JobNotAvailable,
    NoVehicleAvailable, NotAssigned, NotFoundError, NotificationNotFound, ValidationError,
)
from core.ledger import LedgerStore, transient_retry
from core.models import LicenseCategory, User, UserRole
from fleet.models import Rental, Vehicle
from logistics.models import Job, JobStatus, Notification


DAY0 = datetime(2024, 3, 1, tzinfo=dt_timezone.utc)


def make_courier(n, category=LicenseCategory.A):
    return User.objects.create_courier(
        email=f'courier{n}@fleet.test',
        full_name=f'Courier {n}',
        tax_id=f'TAX{n:05d}',
        license_number=f'LIC{n:05d}',
        license_category=category,
    )


class TestUserModel(TestCase):
    """Tests for the custom User model."""

    def setUp(self):
        """Create one user per role and license category."""
        self.admin = User.objects.create_superuser(email='admin@fleet.test', password='adminpass123')
        self.courier_a = make_courier(1, LicenseCategory.A)
        self.courier_b = make_courier(2, LicenseCategory.B)
        self.courier_ab = make_courier(3, LicenseCategory.AB)

    def test_user_uuid_primary_key(self):
        """User should have UUID as primary key."""
        self.assertIsInstance(self.courier_a.id, uuid.UUID)

    def test_create_courier_sets_role(self):
        self.assertEqual(self.courier_a.role, UserRole.COURIER)
        self.assertTrue(self.courier_a.is_courier)
        self.assertFalse(self.courier_a.has_usable_password())

    def test_superuser_is_fleet_admin(self):
        """Superuser should have is_staff, is_superuser and the admin role."""
        self.assertTrue(self.admin.is_staff)
        self.assertTrue(self.admin.is_superuser)
        self.assertEqual(self.admin.role, UserRole.ADMIN)
        self.assertTrue(self.admin.is_fleet_admin)
        self.assertFalse(self.courier_a.is_fleet_admin)

    def test_email_required(self):
        with self.assertRaises(ValueError):
            User.objects.create_user(email='')

    def test_can_rent_by_license_category(self):
        """Only categories A and AB may rent."""
        self.assertTrue(self.courier_a.can_rent)
        self.assertTrue(self.courier_ab.can_rent)
        self.assertFalse(self.courier_b.can_rent)
        self.assertFalse(self.admin.can_rent)

    def test_license_number_unique(self):
        from django.db import IntegrityError
        with self.assertRaises(IntegrityError):
            User.objects.create_courier(
                email='dup@fleet.test', license_number='LIC00001', license_category='A'
            )


class TestLedgerStore(TestCase):
    """Tests for the Ledger Store repository."""

    def setUp(self):
        self.v1 = Vehicle.objects.create(plate='ABC1D23', model='Mottu Sport', year=2023)
        self.v2 = Vehicle.objects.create(plate='XYZ9876', model='Mottu Sport', year=2024)
        self.c1 = make_courier(1)
        self.c2 = make_courier(2)
        self.c3 = make_courier(3)

    def _rent(self, vehicle, courier, start=DAY0, end=None):
        return Rental.objects.create(
            vehicle=vehicle, courier=courier, plan=7,
            start_date=start, predicted_end_date=start + timedelta(days=7), end_date=end,
        )

    # ==========================================
    # Occupancy
    # ==========================================

    def test_list_vehicle_ids_ascending(self):
        self.assertEqual(LedgerStore.list_vehicle_ids(), [self.v1.pk, self.v2.pk])

    def test_open_rental_occupies_any_later_window(self):
        self._rent(self.v1, self.c1)
        occupied = LedgerStore.get_occupancies(DAY0 + timedelta(days=100), DAY0 + timedelta(days=107))
        self.assertEqual([o[0] for o in occupied], [self.v1.pk])

    def test_closed_rental_frees_window_after_end(self):
        self._rent(self.v1, self.c1, end=DAY0 + timedelta(days=3))
        self.assertEqual(
            LedgerStore.get_occupancies(DAY0 + timedelta(days=3), DAY0 + timedelta(days=10)), []
        )
        self.assertEqual(
            len(LedgerStore.get_occupancies(DAY0 + timedelta(days=2), DAY0 + timedelta(days=10))), 1
        )

    def test_rental_starting_at_window_end_does_not_overlap(self):
        self._rent(self.v1, self.c1, start=DAY0 + timedelta(days=7))
        self.assertEqual(LedgerStore.get_occupancies(DAY0, DAY0 + timedelta(days=7)), [])

    def test_occupancies_filtered_by_vehicle(self):
        self._rent(self.v1, self.c1)
        self._rent(self.v2, self.c2)
        occupied = LedgerStore.get_occupancies(DAY0, DAY0 + timedelta(days=1), vehicle_id=self.v2.pk)
        self.assertEqual([o[0] for o in occupied], [self.v2.pk])

    def test_get_rental_for_update_checks_courier(self):
        rental = self._rent(self.v1, self.c1)
        self.assertEqual(LedgerStore.get_rental_for_update(rental.pk, self.c1.pk), rental)
        with self.assertRaises(NotFoundError):
            LedgerStore.get_rental_for_update(rental.pk, self.c2.pk)

    # ==========================================
    # Couriers
    # ==========================================

    def test_get_courier_not_found(self):
        with self.assertRaises(NotFoundError):
            LedgerStore.get_courier(uuid.uuid4())
        with self.assertRaises(NotFoundError):
            LedgerStore.get_courier('not-a-uuid')

    def test_eligible_couriers(self):
        """Open rental and no undelivered assigned job."""
        self._rent(self.v1, self.c1)
        self._rent(self.v2, self.c2)
        Vehicle.objects.create(plate='QWE1234', model='Mottu Sport', year=2024)
        Job.objects.create(ride_price=Decimal('10.00'), status=JobStatus.ACCEPTED, courier=self.c2)

        self.assertEqual(LedgerStore.get_eligible_courier_ids(), [str(self.c1.pk)])

    def test_delivered_job_does_not_block_eligibility(self):
        self._rent(self.v1, self.c1)
        Job.objects.create(ride_price=Decimal('10.00'), status=JobStatus.DELIVERED, courier=self.c1)
        self.assertEqual(LedgerStore.get_eligible_courier_ids(), [str(self.c1.pk)])

    def test_returned_rental_is_not_eligible(self):
        self._rent(self.v1, self.c1, end=DAY0 + timedelta(days=2))
        self.assertEqual(LedgerStore.get_eligible_courier_ids(), [])

    def test_eligible_couriers_sorted(self):
        self._rent(self.v1, self.c1)
        self._rent(self.v2, self.c2, start=DAY0 + timedelta(days=1))
        ids = LedgerStore.get_eligible_courier_ids()
        self.assertEqual(ids, sorted([str(self.c1.pk), str(self.c2.pk)]))

    # ==========================================
    # Jobs
    # ==========================================

    def test_update_job_status_compare_and_swap(self):
        job = LedgerStore.insert_job(Decimal('12.50'))
        self.assertTrue(
            LedgerStore.update_job_status(job.pk, JobStatus.OFFERED, JobStatus.ACCEPTED, courier_id=self.c1.pk)
        )
        # Second swap from the same expected state loses
        self.assertFalse(
            LedgerStore.update_job_status(job.pk, JobStatus.OFFERED, JobStatus.ACCEPTED, courier_id=self.c2.pk)
        )
        job.refresh_from_db()
        self.assertEqual(job.courier, self.c1)

    def test_update_job_status_rejects_backward_and_skipping(self):
        job = LedgerStore.insert_job(Decimal('12.50'))
        with self.assertRaises(ValidationError):
            LedgerStore.update_job_status(job.pk, JobStatus.ACCEPTED, JobStatus.OFFERED)
        with self.assertRaises(ValidationError):
            LedgerStore.update_job_status(job.pk, JobStatus.OFFERED, JobStatus.DELIVERED)
        with self.assertRaises(ValidationError):
            LedgerStore.update_job_status(job.pk, JobStatus.DELIVERED, JobStatus.ACCEPTED)

    def test_update_job_status_extra_filter(self):
        job = Job.objects.create(ride_price=Decimal('5.00'), status=JobStatus.ACCEPTED, courier=self.c1)
        self.assertFalse(LedgerStore.update_job_status(
            job.pk, JobStatus.ACCEPTED, JobStatus.DELIVERED, where={'courier_id': self.c2.pk}
        ))
        self.assertTrue(LedgerStore.update_job_status(
            job.pk, JobStatus.ACCEPTED, JobStatus.DELIVERED, where={'courier_id': self.c1.pk}
        ))

    def test_get_job_not_found(self):
        with self.assertRaises(NotFoundError):
            LedgerStore.get_job(999999)

    def test_outstanding_jobs_by_courier(self):
        Job.objects.create(ride_price=Decimal('5.00'), status=JobStatus.ACCEPTED, courier=self.c1)
        Job.objects.create(ride_price=Decimal('5.00'), status=JobStatus.DELIVERED, courier=self.c1)
        self.assertEqual(len(LedgerStore.get_outstanding_jobs_by_courier(self.c1.pk)), 1)

    # ==========================================
    # Notifications
    # ==========================================

    def test_insert_notification_if_absent_is_idempotent(self):
        job = LedgerStore.insert_job(Decimal('8.00'))
        first, created = LedgerStore.insert_notification_if_absent(job.pk, self.c1.pk)
        again, created_again = LedgerStore.insert_notification_if_absent(job.pk, self.c1.pk)

        self.assertTrue(created)
        self.assertFalse(created_again)
        self.assertEqual(first.pk, again.pk)
        self.assertEqual(Notification.objects.count(), 1)
        self.assertTrue(LedgerStore.notification_exists(job.pk, self.c1.pk))
        self.assertFalse(LedgerStore.notification_exists(job.pk, self.c2.pk))


class TestTransientRetry(TestCase):
    """Tests for the transient failure retry decorator."""

    def _fn(self, failures):
        calls = MagicMock()

        def operation():
            calls()
            if calls.call_count <= failures:
                raise OperationalError('could not serialize access')
            return 'ok'
        return operation, calls

    def test_retries_outside_transaction(self):
        operation, calls = self._fn(failures=2)
        with patch('core.ledger.transaction.get_connection') as get_connection:
            get_connection.return_value.in_atomic_block = False
            result = transient_retry(attempts=3, base_delay=0)(operation)()
        self.assertEqual(result, 'ok')
        self.assertEqual(calls.call_count, 3)

    def test_gives_up_after_max_attempts(self):
        operation, calls = self._fn(failures=5)
        with patch('core.ledger.transaction.get_connection') as get_connection:
            get_connection.return_value.in_atomic_block = False
            with self.assertRaises(OperationalError):
                transient_retry(attempts=3, base_delay=0)(operation)()
        self.assertEqual(calls.call_count, 3)

    def test_never_retries_inside_outer_transaction(self):
        """An outer atomic block is already broken; retrying would reuse it."""
        operation, calls = self._fn(failures=1)
        with self.assertRaises(OperationalError):
            transient_retry(attempts=3, base_delay=0)(operation)()
        self.assertEqual(calls.call_count, 1)

    @override_settings(LEDGER_RETRY_ATTEMPTS=2, LEDGER_RETRY_BASE_DELAY=0)
    def test_reads_defaults_from_settings(self):
        operation, calls = self._fn(failures=5)
        with patch('core.ledger.transaction.get_connection') as get_connection:
            get_connection.return_value.in_atomic_block = False
            with self.assertRaises(OperationalError):
                transient_retry(operation)()
        self.assertEqual(calls.call_count, 2)


class TestErrorMapping(SimpleTestCase):
    """Tests for engine error → HTTP status mapping."""

    def test_status_codes(self):
        self.assertEqual(status_for(ValidationError()), 400)
        self.assertEqual(status_for(InvalidPlan(8)), 400)
        self.assertEqual(status_for(NotFoundError()), 404)
        self.assertEqual(status_for(NotificationNotFound()), 404)
        self.assertEqual(status_for(ConflictError()), 409)
        self.assertEqual(status_for(NoVehicleAvailable()), 409)
        self.assertEqual(status_for(JobNotAvailable()), 409)
        self.assertEqual(status_for(NotAssigned()), 403)
        self.assertEqual(status_for(FleetError()), 500)

    def test_error_response_body(self):
        response = error_response(NoVehicleAvailable())
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.data['code'], 'no_vehicle_available')
        self.assertEqual(response.data['error'], 'No vehicle available for the requested window.')

    def test_default_message_is_class_docstring(self):
        self.assertEqual(JobNotAvailable().message, 'Job is no longer available.')

    def test_dispatch_partial_failure_keeps_failed_couriers(self):
        error = DispatchPartialFailure(7, {'abc': 'connection refused'})
        self.assertEqual(error.job_id, 7)
        self.assertEqual(error.failed, {'abc': 'connection refused'})
        self.assertIn('1 courier notification', error.message)
