"""
Fleet App Serializers - Vehicles & Rentals
"""

from rest_framework import serializers

from .models import Vehicle, Rental, normalize_plate, is_plate_valid


class VehicleSerializer(serializers.ModelSerializer):
    """Serializer for Vehicle model (plate normalized and validated)."""

    class Meta:
        model = Vehicle
        fields = ['id', 'plate', 'model', 'year', 'created_at']
        read_only_fields = ['id', 'created_at']
        extra_kwargs = {
            'plate': {'validators': [], 'max_length': 20},
        }

    def validate_plate(self, value):
        plate = normalize_plate(value)
        if not is_plate_valid(plate):
            raise serializers.ValidationError('Invalid plate.')

        duplicates = Vehicle.objects.filter(plate=plate)
        if self.instance is not None:
            duplicates = duplicates.exclude(pk=self.instance.pk)
        if duplicates.exists():
            raise serializers.ValidationError('A vehicle with this plate already exists.')
        return plate

    def validate_year(self, value):
        if value < 1900 or value > 2100:
            raise serializers.ValidationError('Invalid year.')
        return value


class VehiclePlateSerializer(serializers.Serializer):
    """Body of a plate change."""

    plate = serializers.CharField(max_length=20)


class RentalSerializer(serializers.ModelSerializer):
    """Serializer for Rental model."""

    vehicle_plate = serializers.CharField(source='vehicle.plate', read_only=True)

    class Meta:
        model = Rental
        fields = [
            'id', 'vehicle', 'vehicle_plate', 'courier', 'plan',
            'start_date', 'predicted_end_date', 'end_date', 'total_cost',
        ]
        read_only_fields = fields


class ReservationSerializer(serializers.Serializer):
    rental_id = serializers.IntegerField()
    vehicle_id = serializers.IntegerField()
    start_date = serializers.DateTimeField()
    predicted_end_date = serializers.DateTimeField()


class ReturnSerializer(serializers.Serializer):
    """Body of a return; the date defaults to now."""

    return_date = serializers.DateTimeField(required=False)


class SettlementSerializer(serializers.Serializer):
    rental_id = serializers.IntegerField()
    total_cost = serializers.DecimalField(max_digits=10, decimal_places=2)
