"""
CORE App - Custom User Model for FLEET-DISPATCH

Handles: Users (Fleet admins, Couriers)
"""

import uuid
from django.contrib.auth.models import AbstractBaseUser, BaseUserManager, PermissionsMixin
from django.db import models


class UserRole(models.TextChoices):
    """User role enumeration."""
    ADMIN = 'ADMIN', 'Fleet admin'
    COURIER = 'COURIER', 'Courier'


class LicenseCategory(models.TextChoices):
    """Driver license categories held by couriers."""
    A = 'A', 'A (motorcycle)'
    B = 'B', 'B (car)'
    AB = 'AB', 'A+B'


# Categories allowed to hold a vehicle rental
RENTAL_LICENSE_CATEGORIES = (LicenseCategory.A, LicenseCategory.AB)


class UserManager(BaseUserManager):
    """Custom user manager for email-based authentication."""

    def create_user(self, email, password=None, **extra_fields):
        if not email:
            raise ValueError('An email address is required')

        user = self.model(email=self.normalize_email(email), **extra_fields)
        if password:
            user.set_password(password)
        else:
            user.set_unusable_password()
        user.save(using=self._db)
        return user

    def create_courier(self, email, password=None, **extra_fields):
        extra_fields['role'] = UserRole.COURIER
        return self.create_user(email, password, **extra_fields)

    def create_superuser(self, email, password=None, **extra_fields):
        extra_fields.setdefault('is_staff', True)
        extra_fields.setdefault('is_superuser', True)
        extra_fields.setdefault('role', UserRole.ADMIN)

        if extra_fields.get('is_staff') is not True:
            raise ValueError('Superuser must have is_staff=True.')
        if extra_fields.get('is_superuser') is not True:
            raise ValueError('Superuser must have is_superuser=True.')

        return self.create_user(email, password, **extra_fields)


class User(AbstractBaseUser, PermissionsMixin):
    """
    Custom User model; couriers carry their legal and license data inline.

    Key Business Logic:
    - tax_id and license_number are unique across couriers
    - only license categories A and AB may rent a vehicle
    - the UUID identity doubles as the courier's channel key
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    email = models.EmailField(unique=True, verbose_name="Email")

    # Profile
    full_name = models.CharField(max_length=150, blank=True, verbose_name="Full name")
    role = models.CharField(
        max_length=20,
        choices=UserRole.choices,
        default=UserRole.COURIER,
        verbose_name="Role"
    )

    # Courier legal & license data
    tax_id = models.CharField(
        max_length=20,
        unique=True,
        null=True,
        blank=True,
        verbose_name="Company tax id"
    )
    birth_date = models.DateField(null=True, blank=True, verbose_name="Birth date")
    license_number = models.CharField(
        max_length=20,
        unique=True,
        null=True,
        blank=True,
        verbose_name="Driver license number"
    )
    license_category = models.CharField(
        max_length=2,
        choices=LicenseCategory.choices,
        null=True,
        blank=True,
        verbose_name="Driver license category"
    )

    # Django Auth Fields
    is_active = models.BooleanField(default=True)
    is_staff = models.BooleanField(default=False)
    date_joined = models.DateTimeField(auto_now_add=True)

    objects = UserManager()

    USERNAME_FIELD = 'email'
    REQUIRED_FIELDS = []

    class Meta:
        verbose_name = "User"
        verbose_name_plural = "Users"
        ordering = ['-date_joined']

    def __str__(self):
        return f"{self.full_name or self.email} ({self.role})"

    @property
    def is_courier(self) -> bool:
        return self.role == UserRole.COURIER

    @property
    def is_fleet_admin(self) -> bool:
        return self.role == UserRole.ADMIN or self.is_superuser

    @property
    def can_rent(self) -> bool:
        """Only couriers licensed for motorcycles may hold a rental."""
        return self.is_courier and self.license_category in RENTAL_LICENSE_CATEGORIES
