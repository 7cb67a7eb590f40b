"""
CORE App - Custom User Model for BALADI

Handles: Users (Customers, Shops, Riders, Admins) and Shops
"""

import random
import string
import uuid
from decimal import Decimal

from django.conf import settings
from django.contrib.auth.models import AbstractBaseUser, BaseUserManager, PermissionsMixin
from django.core.validators import MaxValueValidator, MinValueValidator, RegexValidator
from django.db import models

REFERRAL_CODE_LENGTH = 8
REFERRAL_CODE_ALPHABET = string.ascii_uppercase + string.digits


class UserRole(models.TextChoices):
    """User role enumeration."""
    ADMIN = 'ADMIN', 'Administrator'
    CUSTOMER = 'CUSTOMER', 'Customer'
    SHOP = 'SHOP', 'Shop owner'
    RIDER = 'RIDER', 'Rider'


def generate_referral_code() -> str:
    return ''.join(random.choices(REFERRAL_CODE_ALPHABET, k=REFERRAL_CODE_LENGTH))


class UserManager(BaseUserManager):
    """Custom user manager for phone-based authentication."""

    def create_user(self, phone_number, password=None, **extra_fields):
        if not phone_number:
            raise ValueError('Phone number is required')

        user = self.model(phone_number=phone_number, **extra_fields)
        if password:
            user.set_password(password)
        else:
            user.set_unusable_password()
        user.save(using=self._db)
        return user

    def create_superuser(self, phone_number, password=None, **extra_fields):
        extra_fields.setdefault('is_staff', True)
        extra_fields.setdefault('is_superuser', True)
        extra_fields.setdefault('role', UserRole.ADMIN)

        if extra_fields.get('is_staff') is not True:
            raise ValueError('Superuser must have is_staff=True.')
        if extra_fields.get('is_superuser') is not True:
            raise ValueError('Superuser must have is_superuser=True.')

        return self.create_user(phone_number, password, **extra_fields)


class User(AbstractBaseUser, PermissionsMixin):
    """
    Custom User model using phone number as primary identifier.

    Key Business Logic:
    - points_balance is only written by loyalty.services.PointsService
      and never goes negative
    - referral_code is auto-generated for CUSTOMER users (shared with friends)
    """

    # Egyptian mobile numbers (+20 1X XXXX XXXX)
    phone_regex = RegexValidator(
        regex=r'^\+201[0-9]{9}$',
        message="Format: +201XXXXXXXXX"
    )

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    phone_number = models.CharField(
        max_length=15,
        unique=True,
        validators=[phone_regex],
        verbose_name="Phone number"
    )

    # Profile
    full_name = models.CharField(max_length=150, blank=True, verbose_name="Full name")
    role = models.CharField(
        max_length=20,
        choices=UserRole.choices,
        default=UserRole.CUSTOMER,
        verbose_name="Role"
    )

    # Loyalty
    points_balance = models.PositiveIntegerField(
        default=0,
        verbose_name="Points balance"
    )
    referral_code = models.CharField(
        max_length=REFERRAL_CODE_LENGTH,
        unique=True,
        null=True,
        blank=True,
        db_index=True,
        verbose_name="Referral code"
    )

    # Django Auth Fields
    is_active = models.BooleanField(default=True)
    is_staff = models.BooleanField(default=False)
    date_joined = models.DateTimeField(auto_now_add=True)

    objects = UserManager()

    USERNAME_FIELD = 'phone_number'
    REQUIRED_FIELDS = []

    class Meta:
        verbose_name = "User"
        verbose_name_plural = "Users"
        ordering = ['-date_joined']

    def __str__(self):
        return f"{self.full_name or self.phone_number} ({self.role})"

    def save(self, *args, **kwargs):
        """
        Auto-generate a referral code for CUSTOMER users if not set.
        """
        if self.role == UserRole.CUSTOMER and not self.referral_code:
            code = generate_referral_code()

            # Ensure uniqueness
            while User.objects.filter(referral_code=code).exclude(pk=self.pk).exists():
                code = generate_referral_code()

            self.referral_code = code

        super().save(*args, **kwargs)

    @property
    def is_customer(self) -> bool:
        return self.role == UserRole.CUSTOMER

    @property
    def is_shop_owner(self) -> bool:
        return self.role == UserRole.SHOP

    @property
    def is_rider(self) -> bool:
        return self.role == UserRole.RIDER

    @property
    def is_platform_admin(self) -> bool:
        return self.role == UserRole.ADMIN or self.is_superuser


def default_commission_rate():
    return settings.DEFAULT_COMMISSION_RATE


def default_delivery_fee():
    return settings.DEFAULT_DELIVERY_FEE


class Shop(models.Model):
    """
    A shop selling through the marketplace.

    commission_rate is the platform's cut of the order subtotal, bounded
    by MIN_COMMISSION_RATE / MAX_COMMISSION_RATE.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    owner = models.ForeignKey(
        User,
        on_delete=models.PROTECT,
        related_name='shops',
        limit_choices_to={'role': UserRole.SHOP},
        verbose_name="Owner"
    )
    name = models.CharField(max_length=150, verbose_name="Name")
    commission_rate = models.DecimalField(
        max_digits=4,
        decimal_places=2,
        default=default_commission_rate,
        validators=[
            MinValueValidator(Decimal('0.05')),
            MaxValueValidator(Decimal('0.30')),
        ],
        verbose_name="Commission rate"
    )
    minimum_order = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        default=Decimal('0.00'),
        verbose_name="Minimum order (EGP)"
    )
    default_delivery_fee = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        default=default_delivery_fee,
        verbose_name="Delivery fee (EGP)"
    )
    is_active = models.BooleanField(default=True, verbose_name="Active")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = "Shop"
        verbose_name_plural = "Shops"
        ordering = ['name']

    def __str__(self):
        return self.name
