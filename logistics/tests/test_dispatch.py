"""
Job Dispatcher Tests
=====================

Tests for:
1. Eligible courier selection
2. Per-courier publishing on the in-memory broker
3. Per-recipient failure isolation
4. Dispatch on job creation (after commit)
"""

import json
from datetime import datetime, timedelta, timezone as dt_timezone
from decimal import Decimal
from unittest.mock import patch

from django.db import OperationalError
from django.test import TestCase
from kombu import Connection

from core.exceptions import DispatchPartialFailure, ValidationError
from core.models import LicenseCategory, User
from fleet.models import Rental, Vehicle
from logistics.messaging import (
    courier_channel_name, courier_queue, decode_payload, encode_payload, InvalidPayload,
)
from logistics.models import Job, JobStatus
from logistics.services.dispatch import dispatch_job, find_eligible_couriers
from logistics.services.jobs import create_job


START = datetime(2024, 3, 2, tzinfo=dt_timezone.utc)


def make_courier(n, category=LicenseCategory.A):
    return User.objects.create_courier(
        email=f'courier{n}@fleet.test',
        full_name=f'Courier {n}',
        license_number=f'LIC{n:05d}',
        license_category=category,
    )


def rent(courier, plate, end=None):
    vehicle = Vehicle.objects.create(plate=plate, model='Mottu Sport', year=2024)
    return Rental.objects.create(
        vehicle=vehicle, courier=courier, plan=7,
        start_date=START, predicted_end_date=START + timedelta(days=7), end_date=end,
    )


class TestChannelNaming(TestCase):

    def test_courier_channel_name(self):
        self.assertEqual(courier_channel_name('42ab'), 'notification_queue_42ab')

    def test_queue_is_durable_and_dead_lettered(self):
        queue = courier_queue('42ab')
        self.assertEqual(queue.name, 'notification_queue_42ab')
        self.assertEqual(queue.routing_key, 'notification_queue_42ab')
        self.assertTrue(queue.durable)
        self.assertEqual(queue.exchange.name, 'courier.notifications')
        self.assertEqual(
            queue.queue_arguments['x-dead-letter-exchange'], 'courier.notifications.dlx'
        )

    def test_payload_schema(self):
        body = encode_payload(12, 'abc')
        self.assertEqual(json.loads(body), {'v': 1, 'jobId': 12, 'courierId': 'abc'})
        self.assertEqual(decode_payload(body), {'job_id': 12, 'courier_id': 'abc'})

    def test_malformed_payloads(self):
        for body in (
            b'not json',
            b'\xff\xfe',
            b'[]',
            b'{"v": 2, "jobId": 1, "courierId": "a"}',
            b'{"v": 1, "courierId": "a"}',
            b'{"v": 1, "jobId": "one", "courierId": "a"}',
            b'{"v": 1, "jobId": 0, "courierId": "a"}',
        ):
            with self.assertRaises(InvalidPayload, msg=body):
                decode_payload(body)


class TestEligibility(TestCase):

    def setUp(self):
        self.renting = make_courier(1)
        self.busy = make_courier(2)
        self.returned = make_courier(3)
        self.idle = make_courier(4)
        rent(self.renting, 'AAA1A11')
        rent(self.busy, 'BBB2B22')
        rent(self.returned, 'CCC3C33', end=START + timedelta(days=2))
        Job.objects.create(ride_price=Decimal('9.00'), status=JobStatus.ACCEPTED, courier=self.busy)

    def test_only_renting_couriers_without_open_jobs(self):
        self.assertEqual(find_eligible_couriers(), [str(self.renting.pk)])

    def test_busy_courier_eligible_again_after_delivery(self):
        Job.objects.filter(courier=self.busy).update(status=JobStatus.DELIVERED)
        self.assertEqual(
            find_eligible_couriers(), sorted([str(self.renting.pk), str(self.busy.pk)])
        )


class TestDispatchJob(TestCase):

    def setUp(self):
        self.couriers = [make_courier(n) for n in range(1, 4)]
        for n, courier in enumerate(self.couriers):
            rent(courier, f'ABC{n}D2{n}')
        self.job = Job.objects.create(ride_price=Decimal('15.00'))
        self.courier_ids = sorted(str(c.pk) for c in self.couriers)

    def test_publishes_one_message_per_eligible_courier(self):
        with Connection('memory://') as conn:
            result = dispatch_job(self.job.pk, connection=conn)

            self.assertEqual(result.notified, self.courier_ids)
            self.assertEqual(result.failed, {})
            self.assertIsNone(result.error)

            for courier_id in self.courier_ids:
                queue = conn.SimpleQueue(courier_queue(courier_id))
                message = queue.get(timeout=1)
                self.assertEqual(message.content_type, 'application/json')
                self.assertEqual(
                    json.loads(message.body),
                    {'v': 1, 'jobId': self.job.pk, 'courierId': courier_id},
                )
                message.ack()
                queue.close()

    def test_failed_publish_does_not_stop_others(self):
        with patch(
            'logistics.services.dispatch.publish_notification',
            side_effect=[None, ConnectionError('broker down'), None],
        ) as publish:
            result = dispatch_job(self.job.pk)

        self.assertEqual(publish.call_count, 3)
        self.assertEqual(result.notified, [self.courier_ids[0], self.courier_ids[2]])
        self.assertEqual(result.failed, {self.courier_ids[1]: 'broker down'})
        self.assertIsInstance(result.error, DispatchPartialFailure)
        self.assertEqual(result.error.failed, result.failed)

    def test_job_no_longer_offered_is_skipped(self):
        Job.objects.filter(pk=self.job.pk).update(status=JobStatus.ACCEPTED, courier=self.couriers[0])
        with patch('logistics.services.dispatch.publish_notification') as publish:
            result = dispatch_job(self.job.pk)
        publish.assert_not_called()
        self.assertEqual(result.notified, [])

    def test_no_eligible_couriers(self):
        Rental.objects.update(end_date=START + timedelta(days=1))
        with patch('logistics.services.dispatch.publish_notification') as publish:
            result = dispatch_job(self.job.pk)
        publish.assert_not_called()
        self.assertIsNone(result.error)


class TestCreateJob(TestCase):

    def test_dispatches_after_commit(self):
        with patch('logistics.services.dispatch.dispatch_job') as dispatch:
            with self.captureOnCommitCallbacks(execute=True):
                job = create_job('18.50')
                dispatch.assert_not_called()
        dispatch.assert_called_once_with(job.pk)
        self.assertEqual(job.status, JobStatus.OFFERED)
        self.assertEqual(job.ride_price, Decimal('18.50'))

    def test_partial_failure_is_logged_not_raised(self):
        failed = DispatchPartialFailure(1, {'abc': 'down'})
        with patch('logistics.services.dispatch.dispatch_job') as dispatch:
            dispatch.return_value.error = failed
            with self.assertLogs('logistics.services.jobs', level='WARNING') as logs:
                with self.captureOnCommitCallbacks(execute=True):
                    create_job(Decimal('5.00'))
        self.assertIn('failed to publish', logs.output[0])

    def test_dispatch_crash_does_not_fail_creation(self):
        with patch('logistics.services.dispatch.dispatch_job', side_effect=OperationalError('server closed the connection')):
            with self.assertLogs('logistics.services.jobs', level='ERROR') as logs:
                with self.captureOnCommitCallbacks(execute=True):
                    job = create_job('9.00')

        self.assertIn(f'Dispatch of job {job.pk} failed', logs.output[0])
        self.assertEqual(Job.objects.get(pk=job.pk).status, JobStatus.OFFERED)

    def test_invalid_price(self):
        for price in ('0', '-1', 'abc', None, 'NaN'):
            with self.assertRaises(ValidationError, msg=price):
                create_job(price)
        self.assertFalse(Job.objects.exists())
