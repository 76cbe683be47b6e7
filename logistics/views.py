"""
Logistics App Views - Jobs & Notifications API
"""

import logging

from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import generics, status
from rest_framework.response import Response
from rest_framework.views import APIView

from core.api import IsCourier, IsFleetAdmin, error_response
from core.exceptions import FleetError
from core.ledger import LedgerStore
from .serializers import (
    JobCreateSerializer, JobSerializer, JobTransitionSerializer, NotificationSerializer,
)
from .services.jobs import create_job, deliver_job, take_job

logger = logging.getLogger(__name__)


class JobCreateView(APIView):
    """
    API endpoint for a fleet admin to create a job.

    POST /api/jobs/
    Body: {"ride_price": "25.00"}

    The job is offered to eligible couriers once it is committed.
    """

    permission_classes = [IsFleetAdmin]

    def post(self, request):
        serializer = JobCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            job = create_job(serializer.validated_data['ride_price'])
        except FleetError as e:
            return error_response(e)

        return Response(
            {'job_id': job.pk, **JobSerializer(job).data},
            status=status.HTTP_201_CREATED
        )


class JobTakeView(APIView):
    """
    API endpoint for a courier to take an offered job.

    POST /api/jobs/{job_id}/take/

    Race-condition safe: exactly one courier wins; the others get 409.
    """

    permission_classes = [IsCourier]

    def post(self, request, job_id):
        try:
            job = take_job(job_id, request.user.pk)
        except FleetError as e:
            return error_response(e)

        return Response(JobTransitionSerializer(job).data)


class JobDeliverView(APIView):
    """
    API endpoint for the assigned courier to deliver a job.

    POST /api/jobs/{job_id}/deliver/
    """

    permission_classes = [IsCourier]

    def post(self, request, job_id):
        try:
            job = deliver_job(job_id, request.user.pk)
        except FleetError as e:
            return error_response(e)

        return Response(JobTransitionSerializer(job).data)


class NotificationListView(generics.ListAPIView):
    """
    Audit list of offer receipts (fleet admins).

    GET /api/notifications/?job=<id>&courier=<uuid>
    """

    serializer_class = NotificationSerializer
    permission_classes = [IsFleetAdmin]
    filter_backends = [DjangoFilterBackend]
    filterset_fields = ['job', 'courier']

    def get_queryset(self):
        return LedgerStore.list_notifications()
