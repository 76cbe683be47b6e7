"""
LOGISTICS App - Delivery jobs & offer receipts for FLEET-DISPATCH

Handles: Jobs (offered → accepted → delivered), Notifications
"""

from decimal import Decimal
from django.conf import settings
from django.db import models


class JobStatus(models.TextChoices):
    """Job status enumeration (strictly forward-moving)."""
    OFFERED = 'OFFERED', 'Offered'
    ACCEPTED = 'ACCEPTED', 'Accepted'
    DELIVERED = 'DELIVERED', 'Delivered'


class Job(models.Model):
    """
    Delivery job offered to eligible couriers.

    Status changes go through LedgerStore.update_job_status, which only
    applies the transitions listed in TRANSITIONS and only when the row
    is still in the expected state.
    """

    TRANSITIONS = {
        JobStatus.OFFERED: (JobStatus.ACCEPTED,),
        JobStatus.ACCEPTED: (JobStatus.DELIVERED,),
        JobStatus.DELIVERED: (),
    }

    ride_price = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        default=Decimal('0.00'),
        verbose_name="Ride price"
    )
    status = models.CharField(
        max_length=20,
        choices=JobStatus.choices,
        default=JobStatus.OFFERED,
        verbose_name="Status"
    )
    courier = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='jobs',
        verbose_name="Courier"
    )

    # Timestamps
    created_at = models.DateTimeField(auto_now_add=True)
    accepted_at = models.DateTimeField(null=True, blank=True)
    delivered_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        verbose_name = "Job"
        verbose_name_plural = "Jobs"
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['status', 'created_at'], name='logistics_j_status_3e8f1a_idx'),
            models.Index(fields=['courier', 'status'], name='logistics_j_courier_9c2b6d_idx'),
        ]

    def __str__(self):
        return f"Job {self.pk} - {self.status}"

    @classmethod
    def can_transition(cls, current: str, new: str) -> bool:
        return new in cls.TRANSITIONS.get(current, ())

    @property
    def is_offered(self) -> bool:
        return self.status == JobStatus.OFFERED

    @property
    def is_delivered(self) -> bool:
        return self.status == JobStatus.DELIVERED


class Notification(models.Model):
    """
    Durable receipt proving a courier was offered a job.

    Written once by the notification listener, never updated, kept for
    audit after another courier takes the job.
    """

    job = models.ForeignKey(
        Job,
        on_delete=models.PROTECT,
        related_name='notifications',
        verbose_name="Job"
    )
    courier = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='job_notifications',
        verbose_name="Courier"
    )
    notified_at = models.DateTimeField(auto_now_add=True, verbose_name="Delivered at")

    class Meta:
        verbose_name = "Notification"
        verbose_name_plural = "Notifications"
        ordering = ['id']
        constraints = [
            models.UniqueConstraint(fields=['job', 'courier'], name='unique_job_courier_notification'),
        ]

    def __str__(self):
        return f"Job {self.job_id} → {self.courier_id}"
