"""
LOGISTICS App - Real-time Event Broadcasting

Utility functions to push job events to connected couriers via Django
Channels. Broadcasting is best-effort: a failed push is logged and never
fails the operation that triggered it.
"""

import logging
from typing import Iterable

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.utils import timezone

logger = logging.getLogger(__name__)


def courier_group_name(courier_id) -> str:
    return f'courier_{courier_id}'


def _send_group_event(group_name: str, event: dict) -> bool:
    """Send event to a channel group."""
    channel_layer = get_channel_layer()
    if channel_layer is None:
        return False

    try:
        async_to_sync(channel_layer.group_send)(group_name, event)
        return True
    except Exception as e:
        logger.error(f"[EVENTS] Failed to send to group {group_name}: {e}")
        return False


# ============================================
# COURIER EVENTS
# ============================================

def broadcast_job_offered(courier_id, job_id: int, ride_price) -> bool:
    """
    Tell a courier a job offer was recorded for them.

    Sent only after the Notification receipt exists, so the courier can
    take the job as soon as this arrives.
    """
    sent = _send_group_event(
        courier_group_name(courier_id),
        {
            'type': 'job_offered',
            'job_id': job_id,
            'ride_price': str(ride_price),
            'timestamp': timezone.now().isoformat(),
        }
    )
    if sent:
        logger.debug(f"[EVENTS] Job {job_id} offered to courier {courier_id}")
    return sent


def broadcast_job_status(job_id: int, new_status: str, courier_ids: Iterable) -> int:
    """
    Broadcast a job status change to the given couriers.

    Returns:
        Number of groups the event reached
    """
    timestamp = timezone.now().isoformat()
    sent = 0
    for courier_id in courier_ids:
        if _send_group_event(
            courier_group_name(courier_id),
            {
                'type': 'job_status',
                'job_id': job_id,
                'status': new_status,
                'timestamp': timestamp,
            }
        ):
            sent += 1

    logger.debug(f"[EVENTS] Broadcasted job {job_id} → {new_status} to {sent} couriers")
    return sent
