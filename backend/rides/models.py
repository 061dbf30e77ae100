from datetime import timedelta

from django.db import models
from django.conf import settings
from django.utils import timezone


class Ride(models.Model):
    """A passenger's transportation request, tracked through its dispatch lifecycle"""

    REQUESTED = 'requested'
    ACCEPTED = 'accepted'
    IN_PROGRESS = 'in_progress'
    COMPLETED = 'completed'
    CANCELLED = 'cancelled'
    EXPIRED = 'expired'

    STATUS_CHOICES = [
        (REQUESTED, 'Requested'),
        (ACCEPTED, 'Accepted'),
        (IN_PROGRESS, 'In Progress'),
        (COMPLETED, 'Completed'),
        (CANCELLED, 'Cancelled'),
        (EXPIRED, 'Expired'),
    ]

    ACTIVE_STATUSES = [REQUESTED, ACCEPTED, IN_PROGRESS]

    # Foreign keys
    passenger = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='rides'
    )

    driver = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='assigned_rides'
    )

    # Pickup location
    pickup_latitude = models.DecimalField(max_digits=9, decimal_places=6)
    pickup_longitude = models.DecimalField(max_digits=9, decimal_places=6)
    pickup_address = models.TextField(blank=True, default='')

    # Dropoff location
    dropoff_latitude = models.DecimalField(max_digits=9, decimal_places=6, null=True, blank=True)
    dropoff_longitude = models.DecimalField(max_digits=9, decimal_places=6, null=True, blank=True)
    dropoff_address = models.TextField(blank=True, default='')

    # Quoted by the mapping/pricing collaborators, stored as given
    estimated_price = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    distance_km = models.DecimalField(max_digits=8, decimal_places=2, null=True, blank=True)
    estimated_duration_minutes = models.PositiveIntegerField(null=True, blank=True)

    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=REQUESTED, db_index=True)

    # Timestamps
    requested_at = models.DateTimeField(default=timezone.now)
    broadcast_deadline = models.DateTimeField()
    broadcast_at = models.DateTimeField(null=True, blank=True)
    accepted_at = models.DateTimeField(null=True, blank=True)
    started_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    expired_at = models.DateTimeField(null=True, blank=True)

    cancellation_reason = models.TextField(null=True, blank=True)

    class Meta:
        db_table = 'rides'
        ordering = ['-requested_at']
        indexes = [
            models.Index(fields=['status', 'broadcast_deadline'], name='ride_status_deadline_idx'),
        ]

    def save(self, *args, **kwargs):
        if self.broadcast_deadline is None:
            from services.matching.policy import get_dispatch_policy
            window = get_dispatch_policy().dispatch_window_seconds
            self.broadcast_deadline = self.requested_at + timedelta(seconds=window)
        super().save(*args, **kwargs)

    def __str__(self):
        return f"Ride #{self.id} - {self.passenger} - {self.status}"


class RideNotification(models.Model):
    """A per-driver offer for one ride. All offers of a ride share the ride's deadline."""

    PENDING = 'pending'
    ACCEPTED = 'accepted'
    EXPIRED = 'expired'
    CANCELLED = 'cancelled'

    STATUS_CHOICES = [
        (PENDING, 'Pending'),
        (ACCEPTED, 'Accepted'),
        (EXPIRED, 'Expired'),
        (CANCELLED, 'Declined'),
    ]

    ride = models.ForeignKey(
        Ride,
        on_delete=models.CASCADE,
        related_name='notifications'
    )

    driver = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='ride_notifications',
    )

    distance_km = models.FloatField()

    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=PENDING, db_index=True)

    created_at = models.DateTimeField(default=timezone.now)
    expires_at = models.DateTimeField(db_index=True)
    responded_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = 'ride_notifications'
        ordering = ['distance_km', 'id']
        constraints = [
            models.UniqueConstraint(
                fields=['ride', 'driver'],
                name='unique_ride_notification_driver'
            ),
            models.UniqueConstraint(
                fields=['ride'],
                condition=models.Q(status='accepted'),
                name='one_accepted_notification_per_ride'
            ),
        ]

    def __str__(self):
        return f"Notification #{self.id} - Ride {self.ride_id} -> Driver {self.driver_id} ({self.status})"
