"""
Fleet App Views - Vehicles & Rentals API
"""

import logging

from django.db import transaction
from django.db.models import ProtectedError
from rest_framework import mixins, permissions, status, viewsets
from rest_framework.decorators import action
from rest_framework.generics import get_object_or_404
from rest_framework.response import Response
from rest_framework.views import APIView

from core.api import IsCourier, IsFleetAdmin, error_response
from core.exceptions import ConflictError, FleetError
from core.ledger import LedgerStore
from .models import Rental, Vehicle, normalize_plate
from .serializers import (
    RentalSerializer, ReservationSerializer, ReturnSerializer,
    SettlementSerializer, VehiclePlateSerializer, VehicleSerializer,
)
from .services.rentals import reserve_vehicle, settle_return

logger = logging.getLogger(__name__)


class VehicleViewSet(mixins.ListModelMixin,
                     mixins.RetrieveModelMixin,
                     mixins.CreateModelMixin,
                     mixins.DestroyModelMixin,
                     viewsets.GenericViewSet):
    """
    Fleet admin vehicle registry.

    GET    /api/vehicles/?plate=...
    GET    /api/vehicles/<id or plate>/
    POST   /api/vehicles/
    PUT    /api/vehicles/<id>/plate/
    DELETE /api/vehicles/<id>/   (refused while any rental references it)
    """

    queryset = Vehicle.objects.all()
    serializer_class = VehicleSerializer
    permission_classes = [IsFleetAdmin]
    lookup_value_regex = '[^/]+'

    def get_queryset(self):
        queryset = super().get_queryset()
        plate = self.request.query_params.get('plate')
        if plate:
            queryset = queryset.filter(plate=normalize_plate(plate))
        return queryset

    def get_object(self):
        lookup = self.kwargs[self.lookup_field]
        if lookup.isdigit():
            filters = {'pk': int(lookup)}
        else:
            filters = {'plate': normalize_plate(lookup)}
        vehicle = get_object_or_404(self.get_queryset(), **filters)
        self.check_object_permissions(self.request, vehicle)
        return vehicle

    def perform_create(self, serializer):
        vehicle = serializer.save()
        logger.info(f"[FLEET] Vehicle {vehicle.plate} registered")

    @action(detail=True, methods=['put'])
    def plate(self, request, pk=None):
        """Change a vehicle's plate (refused while a rental is open)."""
        vehicle = self.get_object()
        body = VehiclePlateSerializer(data=request.data)
        body.is_valid(raise_exception=True)

        with transaction.atomic():
            # Same row lock as reservations, so no rental can open mid-change
            LedgerStore.lock_vehicle(vehicle.pk)
            if LedgerStore.get_open_rentals_by_vehicle(vehicle.pk):
                logger.warning(f"[FLEET] Plate change refused, vehicle {vehicle.pk} is rented")
                return error_response(ConflictError('Vehicle is rented and cannot be changed.'))

            serializer = VehicleSerializer(vehicle, data={'plate': body.validated_data['plate']}, partial=True)
            serializer.is_valid(raise_exception=True)
            serializer.save()

        logger.info(f"[FLEET] Vehicle {vehicle.pk} plate changed to {vehicle.plate}")
        return Response(serializer.data)

    def destroy(self, request, *args, **kwargs):
        vehicle = self.get_object()
        try:
            vehicle.delete()
        except ProtectedError:
            return Response(
                {'error': 'Vehicle has rentals and cannot be deleted.', 'code': 'conflict'},
                status=status.HTTP_409_CONFLICT
            )

        logger.info(f"[FLEET] Vehicle {kwargs.get('pk')} deleted")
        return Response(status=status.HTTP_204_NO_CONTENT)


class RentalListView(APIView):
    """
    API endpoint listing the calling courier's rentals.

    GET /api/rentals/
    """

    permission_classes = [IsCourier]

    def get(self, request):
        rentals = Rental.objects.filter(courier=request.user).select_related('vehicle')
        return Response(RentalSerializer(rentals, many=True).data)


class RentVehicleView(APIView):
    """
    API endpoint for a courier to rent a vehicle.

    POST /api/rentals/rent/{plan}/

    Double-booking safe: the chosen vehicle row is locked while the
    rental is written.
    """

    permission_classes = [IsCourier]

    def post(self, request, plan):
        try:
            reservation = reserve_vehicle(request.user.pk, plan)
        except FleetError as e:
            return error_response(e)

        return Response(
            ReservationSerializer(reservation).data,
            status=status.HTTP_201_CREATED
        )


class ReturnRentalView(APIView):
    """
    API endpoint for a courier to return a rented vehicle.

    POST /api/rentals/{rental_id}/return/
    Body: {"return_date": "<ISO 8601>"} (optional, defaults to now)
    """

    permission_classes = [IsCourier]

    def post(self, request, rental_id):
        serializer = ReturnSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            settlement = settle_return(
                rental_id,
                request.user.pk,
                serializer.validated_data.get('return_date'),
            )
        except FleetError as e:
            return error_response(e)

        return Response(SettlementSerializer(settlement).data)
