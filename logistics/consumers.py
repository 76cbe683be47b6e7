"""
LOGISTICS App - WebSocket Consumer for couriers

Pushes job offers and job status changes to a connected courier.
"""

import logging
from typing import Dict, Any
from channels.generic.websocket import AsyncJsonWebsocketConsumer
from channels.db import database_sync_to_async

from logistics.events import courier_group_name

logger = logging.getLogger(__name__)


class CourierConsumer(AsyncJsonWebsocketConsumer):
    """
    WebSocket consumer for the courier app.

    Clients connect to: ws://host/ws/courier/ (authenticated couriers only)

    Events sent by courier:
    - take_job: Accept an offered job
    - ping

    Events received by courier:
    - job_offered: A job offer was recorded for them
    - job_status: A job they were offered changed status
    """

    courier_id = None

    async def connect(self):
        user = self.scope.get('user')

        if not user or user.is_anonymous or not user.is_courier:
            logger.warning("[WS] Rejected unauthenticated courier connection")
            await self.close(code=4001)
            return

        self.courier_id = str(user.pk)
        await self.channel_layer.group_add(
            courier_group_name(self.courier_id),
            self.channel_name
        )

        await self.accept()
        await self.send_json({
            'type': 'connection_established',
            'courier_id': self.courier_id,
        })

        logger.info(f"[WS] Courier {self.courier_id} connected")

    async def disconnect(self, close_code):
        if self.courier_id:
            await self.channel_layer.group_discard(
                courier_group_name(self.courier_id),
                self.channel_name
            )
            logger.info(f"[WS] Courier {self.courier_id} disconnected")

    async def receive_json(self, content):
        """Handle incoming messages from courier app."""
        message_type = content.get('type')

        if message_type == 'take_job':
            job_id = content.get('job_id')
            result = await self.take_job(job_id)

            await self.send_json({
                'type': 'take_job_result',
                'job_id': job_id,
                **result,
            })

        elif message_type == 'ping':
            await self.send_json({'type': 'pong'})

    # ============================================
    # Event Handlers (received from channel_layer)
    # ============================================

    async def job_offered(self, event):
        """Notify courier of a job offer."""
        await self.send_json({
            'type': 'job_offered',
            'job_id': event['job_id'],
            'ride_price': event['ride_price'],
            'timestamp': event['timestamp'],
        })

    async def job_status(self, event):
        """Notify courier of a job status change."""
        await self.send_json({
            'type': 'job_status',
            'job_id': event['job_id'],
            'status': event['status'],
            'timestamp': event['timestamp'],
        })

    # ============================================
    # Database helpers
    # ============================================

    @database_sync_to_async
    def take_job(self, job_id) -> Dict[str, Any]:
        from core.exceptions import FleetError
        from logistics.services.jobs import take_job

        try:
            job_id = int(job_id)
        except (TypeError, ValueError):
            return {'success': False, 'error': 'validation_error', 'message': 'Invalid job id'}

        try:
            job = take_job(job_id, self.courier_id)
        except FleetError as e:
            return {'success': False, 'error': e.code, 'message': e.message}

        return {'success': True, 'status': job.status}
