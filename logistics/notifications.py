"""
LOGISTICS App - Notification Listener

Drains courier notification queues and records each offer receipt
exactly once before acknowledging the message.

Message outcomes:
- recorded (new or already present) → ack
- malformed payload, unknown job or courier → reject (dead-lettered)
- database failure → requeue for redelivery, after a growing pause

Without an explicit courier list the listener follows the ledger: the
queue of every courier who starts renting is picked up while it runs.
"""

import logging
import time
from typing import Iterable, List, Optional

from django.conf import settings
from django.db import DatabaseError, transaction
from kombu import Connection
from kombu.mixins import ConsumerMixin

from core.exceptions import NotFoundError
from core.ledger import LedgerStore, transient_retry
from logistics.events import broadcast_job_offered
from logistics.messaging import InvalidPayload, courier_queue, decode_payload

logger = logging.getLogger(__name__)


class MessageOutcome:
    ACKED = 'acked'
    REJECTED = 'rejected'
    REQUEUED = 'requeued'


class NotificationListener(ConsumerMixin):
    """
    One shared listener for a set of courier queues.

    The broker connection and the ledger are injected at construction;
    handling a message never opens new infrastructure. Setting
    should_stop lets the in-flight message finish before drain stops.
    """

    def __init__(self, connection: Connection, courier_ids: Optional[Iterable] = None,
                 ledger=LedgerStore, prefetch_count: int = None,
                 refresh_interval: float = None, requeue_delay: float = None):
        self.connection = connection
        self.ledger = ledger
        self.follow_rentals = courier_ids is None
        if self.follow_rentals:
            courier_ids = ledger.get_renting_courier_ids()

        self.courier_ids: List[str] = [str(c) for c in courier_ids]
        self.queues = [courier_queue(courier_id) for courier_id in self.courier_ids]
        self.prefetch_count = prefetch_count or settings.NOTIFICATION_PREFETCH

        if refresh_interval is None:
            refresh_interval = settings.NOTIFICATION_REFRESH_INTERVAL
        self.refresh_interval = refresh_interval
        self._next_refresh = time.monotonic() + refresh_interval

        if requeue_delay is None:
            requeue_delay = settings.NOTIFICATION_REQUEUE_DELAY
        self.requeue_delay = requeue_delay
        self._consecutive_failures = 0
        self._consumers = []

    def get_consumers(self, Consumer, channel):
        return [
            Consumer(
                queues=self.queues,
                on_message=self.handle_message,
                prefetch_count=self.prefetch_count,
                accept=['application/json'],
            )
        ]

    def on_consume_ready(self, connection, channel, consumers, **kwargs):
        self._consumers = list(consumers)
        logger.info(f"[NOTIFY] Listening on {len(self.queues)} courier queues")

    def on_iteration(self):
        if not self.follow_rentals or time.monotonic() < self._next_refresh:
            return
        self._next_refresh = time.monotonic() + self.refresh_interval
        self.refresh_queues()

    def on_decode_error(self, message, exc):
        logger.error(f"[NOTIFY] Undecodable message rejected: {exc}")
        message.reject()

    # ============================================
    # COURIER QUEUES
    # ============================================

    def refresh_queues(self) -> List[str]:
        """
        Start consuming the queues of couriers who began renting since the
        last look. Queues already consumed are kept, so offers still
        waiting for a courier who returned the vehicle get recorded.

        Returns:
            Courier ids whose queues were added
        """
        try:
            renting = self.ledger.get_renting_courier_ids()
        except DatabaseError as e:
            logger.error(f"[NOTIFY] Could not read renting couriers: {e}")
            return []

        known = set(self.courier_ids)
        added = [courier_id for courier_id in renting if courier_id not in known]

        for courier_id in added:
            queue = courier_queue(courier_id)
            self.courier_ids.append(courier_id)
            self.queues.append(queue)
            for consumer in self._consumers:
                consumer.add_queue(queue)
                consumer.consume()

        if added:
            logger.info(f"[NOTIFY] Now listening for {len(added)} more couriers")
        return added

    # ============================================
    # MESSAGE HANDLING
    # ============================================

    @transient_retry
    def _record_receipt(self, job_id: int, courier_id):
        with transaction.atomic():
            job = self.ledger.get_job(job_id)
            self.ledger.get_courier(courier_id)
            _, created = self.ledger.insert_notification_if_absent(job_id, courier_id)
        return job, created

    def _requeue_pause(self) -> float:
        return min(
            self.requeue_delay * (2 ** self._consecutive_failures),
            settings.NOTIFICATION_REQUEUE_MAX_DELAY,
        )

    def handle_message(self, message) -> str:
        try:
            payload = decode_payload(message.body)
        except InvalidPayload as e:
            logger.error(f"[NOTIFY] Dead-lettering message: {e}")
            message.reject()
            return MessageOutcome.REJECTED

        job_id, courier_id = payload['job_id'], payload['courier_id']

        try:
            job, created = self._record_receipt(job_id, courier_id)
        except NotFoundError as e:
            logger.error(f"[NOTIFY] Dead-lettering job {job_id} / courier {courier_id}: {e}")
            message.reject()
            return MessageOutcome.REJECTED
        except DatabaseError as e:
            pause = self._requeue_pause()
            self._consecutive_failures += 1
            logger.error(
                f"[NOTIFY] Recording job {job_id} / courier {courier_id} failed, "
                f"requeueing in {pause}s: {e}"
            )
            # Pause doubles per consecutive failure, capped
            time.sleep(pause)
            message.requeue()
            return MessageOutcome.REQUEUED

        self._consecutive_failures = 0
        message.ack()

        if created:
            logger.info(f"[NOTIFY] Job {job_id} offer recorded for courier {courier_id}")
            broadcast_job_offered(courier_id, job_id, job.ride_price)
        else:
            logger.debug(f"[NOTIFY] Duplicate offer job {job_id} / courier {courier_id} ignored")

        return MessageOutcome.ACKED
