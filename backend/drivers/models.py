from django.db import models
from django.utils import timezone
from django.conf import settings

User = settings.AUTH_USER_MODEL


class DriverLocationQuerySet(models.QuerySet):

    def fresh_online(self, since):
        """Drivers flagged online whose last ping is not older than ``since``."""
        return self.filter(
            is_online=True,
            last_update__gte=since,
            latitude__isnull=False,
            longitude__isnull=False,
        )


class DriverLocation(models.Model):
    """Live position of a driver, upserted by the driver app's periodic pings"""
    
    driver = models.OneToOneField(User, on_delete=models.CASCADE, related_name='driver_location')
    
    latitude = models.DecimalField(max_digits=9, decimal_places=6)
    longitude = models.DecimalField(max_digits=9, decimal_places=6)
    heading = models.FloatField(null=True, blank=True)
    speed = models.FloatField(null=True, blank=True)
    accuracy = models.FloatField(null=True, blank=True)

    is_online = models.BooleanField(default=False, db_index=True)
    last_update = models.DateTimeField(default=timezone.now, db_index=True)

    objects = DriverLocationQuerySet.as_manager()
    
    class Meta:
        db_table = 'driver_locations'
        
    def __str__(self):
        state = "online" if self.is_online else "offline"
        return f"Driver {self.driver_id} @ ({self.latitude}, {self.longitude}) {state}"
