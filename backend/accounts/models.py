from django.db import models
from django.contrib.auth.models import AbstractUser


class User(AbstractUser):
    """Extended user model with marketplace role selection"""
    ROLE_BUSINESS = 'business'
    ROLE_RIDER = 'rider'
    ROLE_CHOICES = [
        (ROLE_BUSINESS, 'Business'),
        (ROLE_RIDER, 'Rider'),
    ]

    VEHICLE_CHOICES = [
        ('bike', 'Bike'),
        ('scooter', 'Scooter'),
        ('car', 'Car'),
        ('van', 'Van'),
    ]

    # Role & basic info
    role = models.CharField(max_length=10, choices=ROLE_CHOICES)
    email = models.EmailField(unique=True)
    phone_number = models.CharField(max_length=20, blank=True)
    is_verified = models.BooleanField(default=False)

    # Business-only
    business_name = models.CharField(max_length=200, blank=True)

    # Rider-only
    vehicle_type = models.CharField(max_length=10, choices=VEHICLE_CHOICES, blank=True)

    class Meta:
        db_table = 'users'

    def __str__(self):
        return f"{self.username} ({self.get_role_display()})"

    @property
    def is_business(self):
        return self.role == self.ROLE_BUSINESS

    @property
    def is_rider(self):
        return self.role == self.ROLE_RIDER
