from decimal import Decimal

import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Guest",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=100)),
                ("normalized_name", models.CharField(db_index=True, editable=False, max_length=100)),
                ("email", models.EmailField(blank=True, max_length=254)),
                ("phone", models.CharField(blank=True, max_length=20, null=True)),
            ],
        ),
        migrations.CreateModel(
            name="Room",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("number", models.CharField(max_length=10)),
                ("room_type", models.CharField(choices=[("single", "Single"), ("double", "Double"), ("suite", "Suite")], max_length=10)),
                ("capacity", models.IntegerField(default=1)),
                ("price", models.DecimalField(decimal_places=2, max_digits=10)),
            ],
        ),
        migrations.CreateModel(
            name="Booking",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("booking_number", models.CharField(max_length=40, unique=True)),
                ("check_in", models.DateField()),
                ("check_out", models.DateField()),
                ("adults", models.PositiveIntegerField(default=1)),
                ("children", models.PositiveIntegerField(default=0)),
                ("total_nights", models.PositiveIntegerField(default=0)),
                ("room_rate", models.DecimalField(decimal_places=2, max_digits=10)),
                ("total_amount", models.DecimalField(blank=True, decimal_places=2, max_digits=10, null=True)),
                ("paid_amount", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=10)),
                ("outstanding_amount", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=10)),
                ("status", models.CharField(choices=[("pending", "Pending"), ("confirmed", "Confirmed"), ("checked_in", "Checked In"), ("checked_out", "Checked Out"), ("cancelled", "Cancelled")], default="pending", max_length=20)),
                ("payment_status", models.CharField(choices=[("pending", "Pending"), ("partial", "Partial"), ("paid", "Paid")], default="pending", max_length=10)),
                ("special_requests", models.TextField(blank=True, default="")),
                ("notes", models.TextField(blank=True, default="")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("created_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="created_bookings", to=settings.AUTH_USER_MODEL)),
                ("guest", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="bookings", to="ledger.guest")),
                ("room", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="bookings", to="ledger.room")),
            ],
            options={
                "indexes": [
                    models.Index(fields=["check_in"], name="booking_check_in_idx"),
                    models.Index(fields=["outstanding_amount"], name="booking_outstanding_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="DailyPayment",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("day_of_stay", models.PositiveIntegerField()),
                ("amount", models.DecimalField(decimal_places=2, max_digits=10)),
                ("paid_amount", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=10)),
                ("outstanding_amount", models.DecimalField(decimal_places=2, max_digits=10)),
                ("is_paid", models.BooleanField(default=False)),
                ("payment_date", models.DateTimeField(blank=True, null=True)),
                ("booking", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="daily_payments", to="ledger.booking")),
            ],
            options={
                "ordering": ["day_of_stay"],
                "constraints": [
                    models.UniqueConstraint(fields=("booking", "day_of_stay"), name="unique_booking_day"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Payment",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("customer_name", models.CharField(max_length=100)),
                ("normalized_name", models.CharField(db_index=True, max_length=100)),
                ("amount", models.DecimalField(decimal_places=2, max_digits=10)),
                ("note", models.CharField(blank=True, default="", max_length=255)),
                ("received_by", models.CharField(blank=True, default="", max_length=100)),
                ("payment_method", models.CharField(choices=[("cash", "Cash"), ("bank_transfer", "Bank Transfer"), ("check", "Check"), ("card", "Card")], default="cash", max_length=20)),
                ("status", models.CharField(choices=[("completed", "Completed"), ("pending", "Pending"), ("failed", "Failed")], default="completed", max_length=10)),
                ("day_of_stay", models.PositiveIntegerField(blank=True, null=True)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("booking", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="payments", to="ledger.booking")),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["normalized_name", "-created_at"], name="payment_customer_idx"),
                ],
            },
        ),
    ]
