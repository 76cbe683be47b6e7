"""
Logistics App Serializers - Jobs, Notifications & channel payloads
"""

from decimal import Decimal
from rest_framework import serializers

from .models import Job, Notification


class NotificationPayloadSerializer(serializers.Serializer):
    """Versioned schema of a courier channel message."""

    v = serializers.ChoiceField(choices=[1])
    jobId = serializers.IntegerField(min_value=1)
    courierId = serializers.CharField(max_length=64)


class JobSerializer(serializers.ModelSerializer):
    """Full serializer for Job model."""

    courier_id = serializers.UUIDField(read_only=True)

    class Meta:
        model = Job
        fields = [
            'id', 'ride_price', 'status', 'courier_id',
            'created_at', 'accepted_at', 'delivered_at',
        ]
        read_only_fields = fields


class JobCreateSerializer(serializers.Serializer):
    """Serializer for creating a job (admin)."""

    ride_price = serializers.DecimalField(
        max_digits=10,
        decimal_places=2,
        min_value=Decimal('0.01')
    )


class JobTransitionSerializer(serializers.Serializer):
    """Response body of take / deliver."""

    job_id = serializers.IntegerField(source='id')
    status = serializers.CharField()


class NotificationSerializer(serializers.ModelSerializer):
    """Audit view of an offer receipt."""

    courier_id = serializers.UUIDField(read_only=True)
    courier_name = serializers.CharField(source='courier.full_name', read_only=True)
    job_status = serializers.CharField(source='job.status', read_only=True)

    class Meta:
        model = Notification
        fields = ['id', 'job', 'job_status', 'courier_id', 'courier_name', 'notified_at']
        read_only_fields = fields
