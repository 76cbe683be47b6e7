"""
Notification Listener Tests
============================

Tests for:
1. Recording offer receipts (ack after insert, idempotent redelivery)
2. Dead-lettering malformed or dangling payloads
3. Requeue on database failure
4. Draining real messages from the in-memory broker
"""

import uuid
from io import StringIO
from datetime import datetime, timedelta, timezone as dt_timezone
from decimal import Decimal
from unittest.mock import MagicMock, patch

from django.core.management import call_command
from django.db import OperationalError
from django.test import TestCase, override_settings
from kombu import Connection

from core.ledger import LedgerStore
from core.models import User
from fleet.models import Rental, Vehicle
from logistics.messaging import encode_payload, publish_notification
from logistics.models import Job, JobStatus, Notification
from logistics.notifications import MessageOutcome, NotificationListener
from logistics.services.dispatch import dispatch_job
from logistics.services.jobs import take_job


def fake_message(body):
    message = MagicMock()
    message.body = body
    return message


class BrokenLedger(LedgerStore):
    """Ledger whose receipt insert always hits a database failure."""

    @staticmethod
    def insert_notification_if_absent(job_id, courier_id):
        raise OperationalError('database is locked')


class TestHandleMessage(TestCase):
    """Tests for NotificationListener.handle_message."""

    def setUp(self):
        self.courier = User.objects.create_courier(email='c1@fleet.test', license_category='A')
        self.job = Job.objects.create(ride_price=Decimal('12.00'))
        self.listener = NotificationListener(MagicMock(), [self.courier.pk])

        patcher = patch('logistics.notifications.broadcast_job_offered')
        self.broadcast = patcher.start()
        self.addCleanup(patcher.stop)

    def test_records_receipt_then_acks(self):
        message = fake_message(encode_payload(self.job.pk, self.courier.pk))

        outcome = self.listener.handle_message(message)

        self.assertEqual(outcome, MessageOutcome.ACKED)
        message.ack.assert_called_once()
        message.reject.assert_not_called()
        self.assertTrue(
            Notification.objects.filter(job=self.job, courier=self.courier).exists()
        )
        self.broadcast.assert_called_once_with(str(self.courier.pk), self.job.pk, Decimal('12.00'))

    def test_duplicate_delivery_is_a_no_op(self):
        body = encode_payload(self.job.pk, self.courier.pk)
        first, second = fake_message(body), fake_message(body)

        self.listener.handle_message(first)
        outcome = self.listener.handle_message(second)

        self.assertEqual(outcome, MessageOutcome.ACKED)
        second.ack.assert_called_once()
        self.assertEqual(Notification.objects.count(), 1)
        self.assertEqual(self.broadcast.call_count, 1)

    def test_malformed_payload_is_dead_lettered(self):
        for body in (b'garbage', b'{"v": 9, "jobId": 1, "courierId": "x"}', b'{}'):
            message = fake_message(body)
            self.assertEqual(self.listener.handle_message(message), MessageOutcome.REJECTED)
            message.reject.assert_called_once()
            message.ack.assert_not_called()
        self.assertFalse(Notification.objects.exists())

    def test_unknown_job_is_dead_lettered(self):
        message = fake_message(encode_payload(999999, self.courier.pk))
        self.assertEqual(self.listener.handle_message(message), MessageOutcome.REJECTED)
        message.reject.assert_called_once()

    def test_unknown_courier_is_dead_lettered(self):
        for courier_id in (uuid.uuid4(), 'not-a-uuid'):
            message = fake_message(encode_payload(self.job.pk, courier_id))
            self.assertEqual(self.listener.handle_message(message), MessageOutcome.REJECTED)
            message.reject.assert_called_once()
        self.assertFalse(Notification.objects.exists())

    def test_database_failure_requeues(self):
        listener = NotificationListener(MagicMock(), [self.courier.pk], ledger=BrokenLedger)
        message = fake_message(encode_payload(self.job.pk, self.courier.pk))

        outcome = listener.handle_message(message)

        self.assertEqual(outcome, MessageOutcome.REQUEUED)
        message.requeue.assert_called_once()
        message.ack.assert_not_called()
        message.reject.assert_not_called()
        self.broadcast.assert_not_called()

    @override_settings(NOTIFICATION_REQUEUE_MAX_DELAY=4)
    def test_requeue_pause_grows_until_success(self):
        broken = NotificationListener(MagicMock(), [self.courier.pk], ledger=BrokenLedger, requeue_delay=1)
        body = encode_payload(self.job.pk, self.courier.pk)

        with patch('logistics.notifications.time.sleep') as sleep:
            for _ in range(4):
                broken.handle_message(fake_message(body))
        self.assertEqual([c.args[0] for c in sleep.call_args_list], [1, 2, 4, 4])

        broken.ledger = LedgerStore
        self.assertEqual(broken.handle_message(fake_message(body)), MessageOutcome.ACKED)
        self.assertEqual(broken._requeue_pause(), 1)

    def test_decode_error_rejects(self):
        message = MagicMock()
        self.listener.on_decode_error(message, ValueError('bad'))
        message.reject.assert_called_once()

    def test_listens_on_one_queue_per_courier(self):
        other = User.objects.create_courier(email='c2@fleet.test', license_category='AB')
        listener = NotificationListener(MagicMock(), [self.courier.pk, other.pk], prefetch_count=3)

        self.assertEqual(
            [q.name for q in listener.queues],
            [f'notification_queue_{self.courier.pk}', f'notification_queue_{other.pk}'],
        )
        Consumer = MagicMock()
        listener.get_consumers(Consumer, MagicMock())
        kwargs = Consumer.call_args.kwargs
        self.assertEqual(kwargs['on_message'], listener.handle_message)
        self.assertEqual(kwargs['prefetch_count'], 3)

    def test_stopped_listener_exits_immediately(self):
        self.listener.should_stop = True
        self.listener.run()


class TestListenerOnBroker(TestCase):
    """Publish and drain through the in-memory broker."""

    def setUp(self):
        self.courier = User.objects.create_courier(email='c1@fleet.test', license_category='A')
        vehicle = Vehicle.objects.create(plate='ABC1D23', model='Mottu Sport', year=2024)
        start = datetime(2024, 3, 2, tzinfo=dt_timezone.utc)
        Rental.objects.create(
            vehicle=vehicle, courier=self.courier, plan=7,
            start_date=start, predicted_end_date=start + timedelta(days=7),
        )
        self.job = Job.objects.create(ride_price=Decimal('20.00'))

    @patch('logistics.notifications.broadcast_job_offered')
    def test_redelivered_message_yields_one_receipt(self, broadcast):
        with Connection('memory://') as conn:
            publish_notification(self.job.pk, self.courier.pk, connection=conn)
            publish_notification(self.job.pk, self.courier.pk, connection=conn)

            listener = NotificationListener(conn, [self.courier.pk])
            with conn.Consumer(listener.queues, on_message=listener.handle_message):
                conn.drain_events(timeout=1)
                conn.drain_events(timeout=1)

        self.assertEqual(Notification.objects.filter(job=self.job, courier=self.courier).count(), 1)
        broadcast.assert_called_once()



class TestFollowingRentals(TestCase):
    """The default listener picks up couriers who start renting while it runs."""

    def setUp(self):
        self.start = datetime(2024, 3, 2, tzinfo=dt_timezone.utc)
        self.early = User.objects.create_courier(email='c1@fleet.test', license_category='A')
        self.late = User.objects.create_courier(email='c2@fleet.test', license_category='AB')
        self.rent(self.early, 'ABC1D23')
        self.job = Job.objects.create(ride_price=Decimal('15.00'))

    def rent(self, courier, plate):
        vehicle = Vehicle.objects.create(plate=plate, model='Mottu Sport', year=2024)
        return Rental.objects.create(
            vehicle=vehicle, courier=courier, plan=7,
            start_date=self.start, predicted_end_date=self.start + timedelta(days=7),
        )

    def test_starts_from_renting_couriers(self):
        listener = NotificationListener(MagicMock())
        self.assertTrue(listener.follow_rentals)
        self.assertEqual(listener.courier_ids, [str(self.early.pk)])

    def test_starts_on_an_empty_fleet(self):
        Rental.objects.all().delete()
        listener = NotificationListener(MagicMock())
        self.assertEqual(listener.queues, [])

    def test_refresh_adds_new_renters_once(self):
        listener = NotificationListener(MagicMock())
        consumer = MagicMock()
        listener.on_consume_ready(MagicMock(), MagicMock(), [consumer])

        self.rent(self.late, 'XYZ9K87')
        self.assertEqual(listener.refresh_queues(), [str(self.late.pk)])
        self.assertEqual(listener.refresh_queues(), [])

        self.assertEqual(consumer.add_queue.call_count, 1)
        self.assertEqual(consumer.add_queue.call_args.args[0].name, f'notification_queue_{self.late.pk}')
        consumer.consume.assert_called_once()
        self.assertEqual(len(listener.queues), 2)

    def test_iteration_refreshes_only_when_due(self):
        listener = NotificationListener(MagicMock(), refresh_interval=3600)
        self.rent(self.late, 'XYZ9K87')
        listener.on_iteration()
        self.assertEqual(len(listener.queues), 1)

        listener.refresh_interval = 0
        listener._next_refresh = 0
        listener.on_iteration()
        self.assertEqual(len(listener.queues), 2)

    def test_explicit_courier_list_is_fixed(self):
        listener = NotificationListener(MagicMock(), [self.early.pk], refresh_interval=0)
        self.rent(self.late, 'XYZ9K87')
        listener.on_iteration()
        self.assertFalse(listener.follow_rentals)
        self.assertEqual(listener.courier_ids, [str(self.early.pk)])

    @patch('logistics.notifications.broadcast_job_offered')
    def test_courier_renting_after_start_can_take_the_job(self, broadcast):
        with Connection('memory://') as conn:
            listener = NotificationListener(conn, refresh_interval=0)
            with conn.Consumer(listener.queues, on_message=listener.handle_message) as consumer:
                listener.on_consume_ready(conn, conn.default_channel, [consumer])

                self.rent(self.late, 'XYZ9K87')
                result = dispatch_job(self.job.pk, connection=conn)
                self.assertEqual(sorted(result.notified), sorted([str(self.early.pk), str(self.late.pk)]))

                listener.on_iteration()
                conn.drain_events(timeout=1)
                conn.drain_events(timeout=1)

        self.assertEqual(
            set(Notification.objects.filter(job=self.job).values_list('courier_id', flat=True)),
            {self.early.pk, self.late.pk},
        )
        with patch('logistics.services.jobs.broadcast_job_status'):
            job = take_job(self.job.pk, self.late.pk)
        self.assertEqual(job.status, JobStatus.ACCEPTED)

@patch('logistics.management.commands.consume_notifications.signal')
@patch('logistics.management.commands.consume_notifications.get_connection')
@patch('logistics.management.commands.consume_notifications.NotificationListener')
class TestConsumeNotificationsCommand(TestCase):
    """Tests for the consume_notifications management command."""

    def test_follows_rentals_by_default(self, Listener, get_connection, signal):
        call_command('consume_notifications', stdout=StringIO())

        connection = get_connection.return_value.__enter__.return_value
        Listener.assert_called_once_with(connection, None, ledger=LedgerStore)
        Listener.return_value.run.assert_called_once()
        self.assertEqual(signal.signal.call_count, 2)

    def test_explicit_couriers(self, Listener, get_connection, signal):
        call_command('consume_notifications', '--courier', 'a', '--courier', 'b', stdout=StringIO())
        self.assertEqual(Listener.call_args.args[1], ['a', 'b'])

    def test_starts_with_no_rentals(self, Listener, get_connection, signal):
        out = StringIO()
        call_command('consume_notifications', stdout=out)
        Listener.return_value.run.assert_called_once()
        self.assertIn('Listener stopped', out.getvalue())
