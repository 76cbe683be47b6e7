"""
LOGISTICS App - Courier notification channels

One durable queue per courier, bound to a direct exchange by the queue
name. Messages are versioned UTF-8 JSON payloads {v, jobId, courierId}.
Rejected messages are dead-lettered.
"""

import json
import logging
from typing import Optional

from django.conf import settings
from kombu import Connection, Exchange, Producer, Queue

logger = logging.getLogger(__name__)

PAYLOAD_VERSION = 1
CONTENT_TYPE = 'application/json'
CONTENT_ENCODING = 'utf-8'


class InvalidPayload(ValueError):
    """Notification payload does not match the versioned schema."""


def courier_channel_name(courier_id) -> str:
    """Queue name for a courier's private notification channel."""
    return f"notification_queue_{courier_id}"


# ============================================
# TOPOLOGY
# ============================================

def notification_exchange() -> Exchange:
    return Exchange(settings.NOTIFICATION_EXCHANGE, type='direct', durable=True)


def dead_letter_exchange() -> Exchange:
    return Exchange(settings.NOTIFICATION_DEAD_LETTER_EXCHANGE, type='fanout', durable=True)


def dead_letter_queue() -> Queue:
    return Queue(
        settings.NOTIFICATION_DEAD_LETTER_QUEUE,
        exchange=dead_letter_exchange(),
        routing_key=settings.NOTIFICATION_DEAD_LETTER_QUEUE,
        durable=True,
    )


def courier_queue(courier_id) -> Queue:
    name = courier_channel_name(courier_id)
    return Queue(
        name,
        exchange=notification_exchange(),
        routing_key=name,
        durable=True,
        queue_arguments={'x-dead-letter-exchange': settings.NOTIFICATION_DEAD_LETTER_EXCHANGE},
    )


# ============================================
# PAYLOAD
# ============================================

def encode_payload(job_id: int, courier_id) -> bytes:
    return json.dumps(
        {'v': PAYLOAD_VERSION, 'jobId': int(job_id), 'courierId': str(courier_id)},
        separators=(',', ':'),
    ).encode(CONTENT_ENCODING)


def decode_payload(body) -> dict:
    """
    Parse and validate a raw payload.

    Returns:
        {'job_id': int, 'courier_id': str}

    Raises:
        InvalidPayload: body is not valid JSON or fails the schema
    """
    from logistics.serializers import NotificationPayloadSerializer

    try:
        if isinstance(body, (bytes, bytearray)):
            body = bytes(body).decode(CONTENT_ENCODING)
        data = json.loads(body) if isinstance(body, str) else body
    except (UnicodeDecodeError, ValueError) as e:
        raise InvalidPayload(f"Undecodable payload: {e}")

    serializer = NotificationPayloadSerializer(data=data)
    if not serializer.is_valid():
        raise InvalidPayload(f"Malformed payload: {serializer.errors}")

    return {
        'job_id': serializer.validated_data['jobId'],
        'courier_id': serializer.validated_data['courierId'],
    }


# ============================================
# PUBLISHING
# ============================================

def get_connection() -> Connection:
    """A broker connection from the Celery app's configuration."""
    from fleet_core.celery import app as celery_app
    return celery_app.connection_for_write()


def retry_policy() -> dict:
    return {
        'max_retries': settings.NOTIFICATION_PUBLISH_MAX_RETRIES,
        'interval_start': 0,
        'interval_step': 0.5,
        'interval_max': 2,
    }


def publish_notification(job_id: int, courier_id, connection: Optional[Connection] = None) -> None:
    """
    Publish one job offer onto a courier's queue.

    Declares the queue (and the dead-letter queue) on the way. Does not
    wait for the consumer; broker errors propagate after the retry
    policy is exhausted.
    """
    queue = courier_queue(courier_id)
    body = encode_payload(job_id, courier_id)

    if connection is None:
        from fleet_core.celery import app as celery_app
        with celery_app.producer_or_acquire() as producer:
            _publish(producer, queue, body)
    else:
        _publish(Producer(connection), queue, body)

    logger.debug(f"[DISPATCH] Job {job_id} published to {queue.name}")


def _publish(producer: Producer, queue: Queue, body: bytes) -> None:
    producer.publish(
        body,
        exchange=queue.exchange,
        routing_key=queue.routing_key,
        declare=[dead_letter_queue(), queue],
        content_type=CONTENT_TYPE,
        content_encoding=CONTENT_ENCODING,
        delivery_mode=2,
        retry=True,
        retry_policy=retry_policy(),
    )
