from django.db import models
from django.contrib.auth.models import AbstractUser


class User(AbstractUser):
    """Extended user model with role selection"""
    PASSENGER = 'passenger'
    DRIVER = 'driver'

    ROLE_CHOICES = [
        (PASSENGER, 'Passenger'),
        (DRIVER, 'Driver'),
    ]
    
    # Role & basic info
    role = models.CharField(max_length=10, choices=ROLE_CHOICES, default=PASSENGER)
    phone_number = models.CharField(max_length=20, blank=True)
    
    class Meta:
        db_table = 'users'

    @property
    def is_driver(self) -> bool:
        return self.role == self.DRIVER

    @property
    def is_passenger(self) -> bool:
        return self.role == self.PASSENGER
        
    def __str__(self):
        return f"{self.username} ({self.get_role_display()})"
