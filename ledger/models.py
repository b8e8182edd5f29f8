from datetime import timedelta
from decimal import Decimal

from django.conf import settings
from django.db import models
from django.utils import timezone


def normalize_customer_name(name):
    """Canonical key used to group one guest's records across bookings."""
    return (name or "").strip().lower()


def payment_status_for(paid_amount, outstanding_amount):
    if outstanding_amount <= 0:
        return "paid"
    if paid_amount > 0:
        return "partial"
    return "pending"


class Guest(models.Model):
    name = models.CharField(max_length=100)
    normalized_name = models.CharField(max_length=100, db_index=True, editable=False)
    email = models.EmailField(blank=True)
    phone = models.CharField(max_length=20, blank=True, null=True)

    def __str__(self):
        return self.name

    def save(self, *args, **kwargs):
        self.normalized_name = normalize_customer_name(self.name)
        super().save(*args, **kwargs)


class Room(models.Model):
    ROOM_TYPES = (
        ('single', 'Single'),
        ('double', 'Double'),
        ('suite', 'Suite'),
    )
    number = models.CharField(max_length=10)
    room_type = models.CharField(max_length=10, choices=ROOM_TYPES)
    capacity = models.IntegerField(default=1)
    price = models.DecimalField(max_digits=10, decimal_places=2)

    def __str__(self):
        return f"Room {self.number} ({self.room_type})"


class Booking(models.Model):
    PAYMENT_STATUSES = [
        ('pending', 'Pending'),
        ('partial', 'Partial'),
        ('paid', 'Paid'),
    ]

    STATUS_CHOICES = [
        ('pending', 'Pending'),
        ('confirmed', 'Confirmed'),
        ('checked_in', 'Checked In'),
        ('checked_out', 'Checked Out'),
        ('cancelled', 'Cancelled'),
    ]

    booking_number = models.CharField(max_length=40, unique=True)
    guest = models.ForeignKey("Guest", on_delete=models.CASCADE, related_name="bookings")
    room = models.ForeignKey("Room", on_delete=models.CASCADE, related_name="bookings")
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="created_bookings",
    )

    check_in = models.DateField()
    check_out = models.DateField()
    adults = models.PositiveIntegerField(default=1)
    children = models.PositiveIntegerField(default=0)

    total_nights = models.PositiveIntegerField(default=0)
    room_rate = models.DecimalField(max_digits=10, decimal_places=2)
    total_amount = models.DecimalField(max_digits=10, decimal_places=2, blank=True, null=True)
    paid_amount = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal("0.00"))
    outstanding_amount = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal("0.00"))

    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default="pending")
    payment_status = models.CharField(max_length=10, choices=PAYMENT_STATUSES, default="pending")

    special_requests = models.TextField(blank=True, default="")
    notes = models.TextField(blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [
            models.Index(fields=["check_in"], name="booking_check_in_idx"),
            models.Index(fields=["outstanding_amount"], name="booking_outstanding_idx"),
        ]

    def __str__(self):
        return f"{self.booking_number} - {self.guest.name} - Room {self.room.number}"

    # --- Price Calculation ---
    def compute_total_nights(self):
        return max((self.check_out - self.check_in).days, 0)

    def compute_total_amount(self):
        """Calculate total amount from the nightly rate and number of nights."""
        return self.room_rate * self.compute_total_nights()

    @property
    def daily_amount(self):
        if not self.total_nights:
            return Decimal("0.00")
        return (self.total_amount / self.total_nights).quantize(Decimal("0.01"))

    def night_date(self, day_of_stay):
        return self.check_in + timedelta(days=day_of_stay - 1)

    def save(self, *args, **kwargs):
        """Derive nights, total and outstanding before the first save."""
        if not self.total_nights:
            self.total_nights = self.compute_total_nights()
        if not self.total_amount:
            self.total_amount = self.compute_total_amount()
        if self._state.adding:
            self.outstanding_amount = max(self.total_amount - self.paid_amount, Decimal("0.00"))
        super().save(*args, **kwargs)

    # --- Payment Helpers ---
    def total_paid(self):
        """Total of completed payments recorded against this booking."""
        return sum(
            (p.amount for p in self.payments.all() if p.status == "completed"),
            Decimal("0.00"),
        )

    def is_fully_paid(self):
        return self.outstanding_amount <= 0

    def set_paid_amount(self, paid_amount):
        """Store a new cumulative paid amount and everything derived from it."""
        self.paid_amount = paid_amount
        self.outstanding_amount = max(self.total_amount - paid_amount, Decimal("0.00"))
        self.update_payment_status()

    def update_payment_status(self):
        self.payment_status = payment_status_for(self.paid_amount, self.outstanding_amount)
        if self.payment_status == "paid" and self.status == "pending":
            self.status = "confirmed"


class DailyPayment(models.Model):
    booking = models.ForeignKey(Booking, on_delete=models.CASCADE, related_name="daily_payments")
    day_of_stay = models.PositiveIntegerField()
    amount = models.DecimalField(max_digits=10, decimal_places=2)
    paid_amount = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal("0.00"))
    outstanding_amount = models.DecimalField(max_digits=10, decimal_places=2)
    is_paid = models.BooleanField(default=False)
    payment_date = models.DateTimeField(blank=True, null=True)

    class Meta:
        ordering = ["day_of_stay"]
        constraints = [
            models.UniqueConstraint(fields=["booking", "day_of_stay"], name="unique_booking_day"),
        ]

    def __str__(self):
        return f"{self.booking.booking_number} day {self.day_of_stay}"


class Payment(models.Model):
    PAYMENT_METHODS = [
        ('cash', 'Cash'),
        ('bank_transfer', 'Bank Transfer'),
        ('check', 'Check'),
        ('card', 'Card'),
    ]

    STATUS_CHOICES = [
        ('completed', 'Completed'),
        ('pending', 'Pending'),
        ('failed', 'Failed'),
    ]

    booking = models.ForeignKey(Booking, on_delete=models.CASCADE, related_name='payments')
    customer_name = models.CharField(max_length=100)
    normalized_name = models.CharField(max_length=100, db_index=True)
    amount = models.DecimalField(max_digits=10, decimal_places=2)
    note = models.CharField(max_length=255, blank=True, default="")
    received_by = models.CharField(max_length=100, blank=True, default="")
    payment_method = models.CharField(max_length=20, choices=PAYMENT_METHODS, default="cash")
    status = models.CharField(max_length=10, choices=STATUS_CHOICES, default="completed")
    day_of_stay = models.PositiveIntegerField(blank=True, null=True)
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["normalized_name", "-created_at"], name="payment_customer_idx"),
        ]

    def __str__(self):
        return f"Payment {self.pk} - {self.customer_name} - {self.amount}"

    def save(self, *args, **kwargs):
        if self.amount <= 0:
            raise ValueError("Payment amount must be greater than zero.")
        super().save(*args, **kwargs)
