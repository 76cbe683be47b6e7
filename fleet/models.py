"""
FLEET App - Vehicles & Rentals for FLEET-DISPATCH

Handles: Vehicles, Rental plans, Rentals (occupancy + settlement)
"""

import re
from datetime import timedelta
from django.conf import settings
from django.db import models


PLATE_PATTERN = re.compile(r'^[A-Z]{3}\d[A-Z0-9]\d{2}$')


def normalize_plate(plate: str) -> str:
    """Uppercase and strip everything that is not a letter or digit."""
    return re.sub(r'[^A-Z0-9]', '', (plate or '').upper())


def is_plate_valid(plate: str) -> bool:
    return bool(plate) and PLATE_PATTERN.match(plate) is not None


class RentalPlan(models.IntegerChoices):
    """Rental plans, valued in days."""
    SEVEN_DAYS = 7, '7 days'
    FIFTEEN_DAYS = 15, '15 days'
    THIRTY_DAYS = 30, '30 days'


class Vehicle(models.Model):
    """
    A rentable motorcycle.

    Immutable once referenced: rentals point at it with PROTECT, so the
    row cannot be deleted while any rental (open or settled) exists.
    """

    plate = models.CharField(max_length=10, unique=True, verbose_name="Plate")
    model = models.CharField(max_length=100, verbose_name="Model")
    year = models.PositiveSmallIntegerField(verbose_name="Year")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = "Vehicle"
        verbose_name_plural = "Vehicles"
        ordering = ['id']

    def __str__(self):
        return f"{self.plate} ({self.model} {self.year})"

    def save(self, *args, **kwargs):
        self.plate = normalize_plate(self.plate)
        super().save(*args, **kwargs)


class Rental(models.Model):
    """
    A courier's reservation of a vehicle.

    Occupancy window is [start_date, end_date), open-ended while end_date
    is null. end_date and total_cost are written once, at return.
    """

    vehicle = models.ForeignKey(
        Vehicle,
        on_delete=models.PROTECT,
        related_name='rentals',
        verbose_name="Vehicle"
    )
    courier = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='rentals',
        verbose_name="Courier"
    )
    plan = models.PositiveSmallIntegerField(
        choices=RentalPlan.choices,
        verbose_name="Plan (days)"
    )

    start_date = models.DateTimeField(verbose_name="Start (UTC)")
    predicted_end_date = models.DateTimeField(verbose_name="Predicted end (UTC)")
    end_date = models.DateTimeField(
        null=True,
        blank=True,
        verbose_name="Actual return (UTC)"
    )
    total_cost = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        null=True,
        blank=True,
        verbose_name="Total cost"
    )

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = "Rental"
        verbose_name_plural = "Rentals"
        ordering = ['-start_date']
        indexes = [
            models.Index(fields=['vehicle', 'start_date'], name='fleet_renta_vehicle_0a1c4e_idx'),
            models.Index(fields=['courier', 'end_date'], name='fleet_renta_courier_5b7d2f_idx'),
        ]

    def __str__(self):
        return f"Rental {self.pk} - {self.vehicle_id} / {self.courier_id}"

    @property
    def is_open(self) -> bool:
        return self.end_date is None

    @property
    def is_settled(self) -> bool:
        return self.total_cost is not None

    @staticmethod
    def predicted_end_for(start_date, plan: int):
        return start_date + timedelta(days=int(plan))
