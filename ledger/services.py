import logging
import uuid
from datetime import timedelta
from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.paginator import Paginator
from django.db import transaction
from django.db.models import Count, Q, Sum
from django.utils import timezone

from .models import Booking, DailyPayment, Payment, normalize_customer_name, payment_status_for
from .reconciliation import (
    ZERO,
    DayStatusMode,
    PaymentError,
    ReconciliationConfig,
    StayDayCharge,
    allocate_bulk_payment,
    apply_payment,
    classify_stay,
    summarize_customers,
    to_decimal,
)
from .validators import validate_date_range

logger = logging.getLogger(__name__)

PERIODS = ("today", "week", "month", "lifetime")


def get_reconciliation_config():
    """Build the engine configuration from settings.LEDGER."""
    options = getattr(settings, "LEDGER", {})
    return ReconciliationConfig(
        day_status_mode=DayStatusMode(options.get("DAY_STATUS_MODE", DayStatusMode.CUMULATIVE.value)),
    )


# =======================
# Booking -> ledger records
# =======================

def booking_charge(booking):
    """The whole booking as one charge, dated at check-in."""
    return StayDayCharge(
        record_id=booking.pk,
        customer_name=booking.guest.name,
        normalized_name=booking.guest.normalized_name,
        total_amount=booking.total_amount,
        paid_amount=booking.paid_amount,
        day_of_stay=1,
        total_nights=booking.total_nights,
        issue_date=booking.check_in,
        booking_id=booking.pk,
    )


def _night_amounts(total_amount, nights):
    """Split a total into nightly amounts; the last night absorbs rounding."""
    daily = (total_amount / nights).quantize(Decimal("0.01"))
    return [daily] * (nights - 1) + [total_amount - daily * (nights - 1)]


def expand_booking(booking, config=None):
    """
    Expand a booking into one StayDayCharge per night.

    In cumulative mode every row carries the booking's whole paid amount; in
    per-row mode each row carries its own share (from the DailyPayment rows
    when they exist, otherwise an even split).
    """
    config = config or get_reconciliation_config()
    nights = booking.total_nights or 1
    amounts = _night_amounts(to_decimal(booking.total_amount), nights)

    if config.day_status_mode is DayStatusMode.PER_ROW:
        daily_rows = {d.day_of_stay: d.paid_amount for d in booking.daily_payments.all()}
        if daily_rows:
            paid = [daily_rows.get(day, ZERO) for day in range(1, nights + 1)]
        else:
            paid = _night_amounts(to_decimal(booking.paid_amount), nights)
    else:
        paid = [booking.paid_amount] * nights

    return [
        StayDayCharge(
            record_id=f"{booking.pk}-day-{day}",
            customer_name=booking.guest.name,
            normalized_name=booking.guest.normalized_name,
            total_amount=amounts[day - 1],
            paid_amount=paid[day - 1],
            day_of_stay=day,
            total_nights=nights,
            issue_date=booking.night_date(day),
            booking_id=booking.pk,
        )
        for day in range(1, nights + 1)
    ]


def sale_rows(booking, config=None):
    """Per-night sales ledger rows for one booking, with day payment status."""
    config = config or get_reconciliation_config()
    charges = expand_booking(booking, config)
    statuses = classify_stay(charges, config.day_status_mode)
    nights = booking.total_nights or 1
    outstanding_per_night = (booking.outstanding_amount / nights).quantize(Decimal("0.01"))
    issued_by = booking.created_by.get_username() if booking.created_by else "System"

    rows = []
    for charge in charges:
        rows.append({
            "id": charge.record_id,
            "bookingId": str(booking.pk),
            "customerName": charge.customer_name,
            "normalizedName": charge.normalized_name,
            "totalAmount": str(charge.total_amount),
            "paidAmount": str(charge.paid_amount),
            "outstanding": str(outstanding_per_night),
            "isFullyPaid": booking.outstanding_amount <= 0,
            "issueDate": charge.issue_date.date().isoformat(),
            "quantity": 1,
            "issuedBy": issued_by,
            "partNumber": booking.room.number,
            "partName": f"Room {booking.room.number}",
            "itemCount": 1,
            "status": "completed" if booking.status == "confirmed" else "pending",
            "dayOfStay": charge.day_of_stay,
            "totalNights": nights,
            "paymentStatus": statuses[charge.record_id].value,
        })
    return rows


def _period_start(period, today):
    if period == "today":
        return today
    if period == "week":
        # Weeks start on Sunday
        return today - timedelta(days=(today.weekday() + 1) % 7)
    if period == "month":
        return today.replace(day=1)
    return None


def sales_records(period="today", from_date=None, to_date=None, search="", page=1, limit=None):
    """
    The sales ledger: bookings filtered by check-in date and search term,
    expanded into per-night rows.

    An explicit from/to range overrides the period. Returns a dict with
    data, pagination, summary and customers keys.
    """
    options = getattr(settings, "LEDGER", {})
    limit = limit or options.get("DEFAULT_PAGE_SIZE", 100)
    limit = min(limit, options.get("MAX_PAGE_SIZE", 500))
    config = get_reconciliation_config()

    bookings = Booking.objects.select_related("guest", "room", "created_by").prefetch_related("daily_payments")

    if from_date or to_date:
        if from_date:
            bookings = bookings.filter(check_in__gte=from_date)
        if to_date:
            bookings = bookings.filter(check_in__lte=to_date)
    else:
        start = _period_start(period, timezone.localdate())
        if start:
            bookings = bookings.filter(check_in__gte=start)

    if search:
        bookings = bookings.filter(
            Q(booking_number__icontains=search) | Q(guest__name__icontains=search)
        )

    totals = bookings.aggregate(
        totalSales=Sum("total_amount"),
        totalPaid=Sum("paid_amount"),
        totalOutstanding=Sum("outstanding_amount"),
        totalRecords=Count("id"),
    )

    paginator = Paginator(bookings.order_by("-created_at", "-pk"), limit)
    page_obj = paginator.get_page(page)

    data = []
    for booking in page_obj.object_list:
        data.extend(sale_rows(booking, config))

    customers = summarize_customers([booking_charge(b) for b in page_obj.object_list])

    return {
        "data": data,
        "pagination": {
            "page": page_obj.number,
            "limit": limit,
            "total": paginator.count,
            "totalPages": paginator.num_pages,
        },
        "summary": {
            "totalSales": float(totals["totalSales"] or 0),
            "totalPaid": float(totals["totalPaid"] or 0),
            "totalOutstanding": float(totals["totalOutstanding"] or 0),
            "totalRecords": totals["totalRecords"],
        },
        "customers": customers,
    }


# =======================
# Payments
# =======================

def _spread_over_days(booking, amount):
    """Apply an amount to a booking's DailyPayment rows, earliest night first."""
    days = list(booking.daily_payments.select_for_update().order_by("day_of_stay"))
    if not days or amount <= ZERO:
        return

    charges = [
        StayDayCharge(
            record_id=day.pk,
            customer_name=booking.guest.name,
            normalized_name=booking.guest.normalized_name,
            total_amount=day.amount,
            paid_amount=day.paid_amount,
            day_of_stay=day.day_of_stay,
            total_nights=booking.total_nights,
            issue_date=booking.night_date(day.day_of_stay),
            booking_id=booking.pk,
        )
        for day in days
    ]
    outcome = allocate_bulk_payment(charges, booking.guest.normalized_name, amount)
    if not outcome.ok:
        return

    by_id = {day.pk: day for day in days}
    now = timezone.now()
    for updated in outcome.updated_records:
        day = by_id[updated.record_id]
        day.paid_amount = updated.paid_amount
        day.outstanding_amount = updated.outstanding
        day.is_paid = updated.is_fully_paid
        day.payment_date = now
        day.save(update_fields=["paid_amount", "outstanding_amount", "is_paid", "payment_date"])


def ensure_daily_payments(booking):
    """
    Create the booking's per-night DailyPayment rows if it has none yet.

    Money already paid against the booking is carried over onto the
    earliest nights.
    """
    if booking.daily_payments.exists():
        return
    nights = booking.total_nights or 1
    DailyPayment.objects.bulk_create([
        DailyPayment(
            booking=booking,
            day_of_stay=day,
            amount=amount,
            paid_amount=ZERO,
            outstanding_amount=amount,
        )
        for day, amount in enumerate(_night_amounts(to_decimal(booking.total_amount), nights), start=1)
    ])
    _spread_over_days(booking, to_decimal(booking.paid_amount))


def _save_booking_balance(booking):
    booking.save(update_fields=["paid_amount", "outstanding_amount", "payment_status", "status"])


def record_payment(booking_id, amount, note="", received_by="", day_of_stay=None, payment_method="cash"):
    """
    Record a payment against a booking, or against one night of it.

    Returns (payment, error). error is a PaymentError when the booking does
    not exist or the amount cannot be applied.

    Raises:
        ValidationError: If day_of_stay is outside the booking
    """
    with transaction.atomic():
        try:
            booking = Booking.objects.select_for_update().select_related("guest").get(pk=booking_id)
        except (Booking.DoesNotExist, ValueError):
            logger.warning("Payment rejected: booking %s not found", booking_id)
            return None, PaymentError.RECORD_NOT_FOUND

        if day_of_stay:
            if not 1 <= day_of_stay <= booking.total_nights:
                raise ValidationError("Invalid day of stay.")

            ensure_daily_payments(booking)
            day = booking.daily_payments.select_for_update().get(day_of_stay=day_of_stay)
            charge = StayDayCharge(
                record_id=day.pk,
                customer_name=booking.guest.name,
                normalized_name=booking.guest.normalized_name,
                total_amount=day.amount,
                paid_amount=day.paid_amount,
                day_of_stay=day_of_stay,
                total_nights=booking.total_nights,
                issue_date=booking.night_date(day_of_stay),
                booking_id=booking.pk,
            )
            outcome = apply_payment(charge, amount)
            if not outcome.ok:
                logger.warning("Payment of %s rejected for booking %s day %s", amount, booking.pk, day_of_stay)
                return None, outcome.error

            day.paid_amount = outcome.record.paid_amount
            day.outstanding_amount = outcome.record.outstanding
            day.is_paid = outcome.record.is_fully_paid
            day.payment_date = timezone.now()
            day.save(update_fields=["paid_amount", "outstanding_amount", "is_paid", "payment_date"])

            paid = booking.daily_payments.aggregate(total=Sum("paid_amount"))["total"] or ZERO
            booking.set_paid_amount(paid)
        else:
            outcome = apply_payment(booking_charge(booking), amount)
            if not outcome.ok:
                logger.warning("Payment of %s rejected for booking %s", amount, booking.pk)
                return None, outcome.error

            applied = outcome.record.paid_amount - booking.paid_amount
            booking.set_paid_amount(outcome.record.paid_amount)
            _spread_over_days(booking, applied)

        _save_booking_balance(booking)

        payment = Payment.objects.create(
            booking=booking,
            customer_name=booking.guest.name,
            normalized_name=booking.guest.normalized_name,
            amount=to_decimal(amount),
            note=note or "",
            received_by=received_by or "",
            payment_method=payment_method,
            status="completed",
            day_of_stay=day_of_stay or None,
        )

    logger.info(
        "Recorded payment %s of %s for booking %s (outstanding %s)",
        payment.pk, payment.amount, booking.booking_number, booking.outstanding_amount,
    )
    return payment, None


def process_bulk_payment(normalized_name, amount, note="", received_by=""):
    """
    Apply one payment across all of a customer's unpaid bookings, oldest
    check-in first.

    The customer's outstanding bookings are locked for the whole
    transaction, so two bulk payments for the same customer never spend the
    same balance twice.

    Returns (BulkPaymentResult, error).
    """
    key = normalize_customer_name(normalized_name)

    with transaction.atomic():
        bookings = list(
            Booking.objects.select_for_update()
            .select_related("guest")
            .filter(guest__normalized_name=key, outstanding_amount__gt=0)
            .order_by("check_in", "pk")
        )

        outcome = allocate_bulk_payment([booking_charge(b) for b in bookings], key, amount)
        if not outcome.ok:
            logger.warning("Bulk payment of %s for '%s' rejected: %s", amount, key, outcome.error.value)
            return None, outcome.error

        by_id = {booking.pk: booking for booking in bookings}
        portions = dict(outcome.allocations)
        payment_note = f"{note} (Bulk payment)" if note else "Bulk payment"

        for updated in outcome.updated_records:
            booking = by_id[updated.record_id]
            booking.set_paid_amount(updated.paid_amount)
            _spread_over_days(booking, portions[updated.record_id])
            _save_booking_balance(booking)

            Payment.objects.create(
                booking=booking,
                customer_name=booking.guest.name,
                normalized_name=key,
                amount=portions[updated.record_id],
                note=payment_note,
                received_by=received_by or "",
                payment_method="cash",
                status="completed",
            )

    result = outcome.result
    logger.info(
        "Bulk payment for '%s': %s payments, %s applied, %s unapplied",
        key, result.processed_payments, result.total_amount, result.remaining_amount,
    )
    return result, None


# =======================
# Bookings
# =======================

def generate_booking_number():
    stamp = int(timezone.now().timestamp() * 1000)
    return f"BKG-{stamp}-{uuid.uuid4().hex[:5].upper()}"


def create_booking(guest, room, check_in, check_out, room_rate=None, adults=1, children=0,
                   special_requests="", notes="", created_by=None):
    """
    Create a pending booking; nights and total are derived from the dates
    and the nightly rate (the room's price unless one is given).

    Raises:
        ValidationError: If the dates are invalid
    """
    validate_date_range(check_in, check_out)

    booking = Booking(
        booking_number=generate_booking_number(),
        guest=guest,
        room=room,
        check_in=check_in,
        check_out=check_out,
        adults=adults,
        children=children,
        room_rate=room_rate if room_rate is not None else room.price,
        special_requests=special_requests or "",
        notes=notes or "",
        created_by=created_by,
    )
    booking.save()
    logger.info("Created booking %s for %s (%s nights, %s)",
                booking.booking_number, guest.name, booking.total_nights, booking.total_amount)
    return booking


# =======================
# Balance checks
# =======================

def get_booking_financial_summary(booking):
    """
    Get financial summary for a booking.
    Returns dictionary with all financial details.
    """
    return {
        'total_amount': booking.total_amount or ZERO,
        'total_nights': booking.total_nights,
        'daily_amount': booking.daily_amount,
        'paid_amount': booking.paid_amount,
        'outstanding_amount': booking.outstanding_amount,
        'payment_status': booking.payment_status,
        'is_fully_paid': booking.is_fully_paid(),
    }


def check_booking_balance(booking):
    """Compare a booking's stored balance with what its payments say."""
    paid = booking.total_paid()
    total = booking.total_amount or ZERO
    expected_outstanding = max(total - paid, ZERO)
    expected_status = payment_status_for(paid, expected_outstanding)

    return {
        'booking_id': booking.id,
        'booking_number': booking.booking_number,
        'is_consistent': (
            booking.paid_amount == paid
            and booking.outstanding_amount == expected_outstanding
            and booking.payment_status == expected_status
        ),
        'stored_paid': booking.paid_amount,
        'expected_paid': paid,
        'stored_outstanding': booking.outstanding_amount,
        'expected_outstanding': expected_outstanding,
        'current_status': booking.payment_status,
        'expected_status': expected_status,
        'overpaid_by': max(paid - total, ZERO),
    }


def get_payment_anomalies():
    """
    Identify bookings whose stored balance disagrees with their payments,
    or whose payments exceed the booking total.
    """
    anomalies = []
    for booking in Booking.objects.select_related('guest', 'room').prefetch_related('payments'):
        check = check_booking_balance(booking)
        issues = []

        if check['overpaid_by'] > 0:
            issues.append(f"Overpaid by {check['overpaid_by']}")

        if not check['is_consistent']:
            issues.append(
                f"Stored {check['stored_paid']}/{check['current_status']}, "
                f"payments say {check['expected_paid']}/{check['expected_status']}"
            )

        if issues:
            anomalies.append({
                'booking': booking,
                'issues': issues,
                'financial_summary': get_booking_financial_summary(booking),
            })

    return anomalies


def sync_booking_balance(booking):
    """
    Rewrite a booking's stored balance from its completed payments.

    The nightly rows are dropped; the next day payment rebuilds them from
    the corrected paid amount.
    """
    booking.set_paid_amount(booking.total_paid())
    _save_booking_balance(booking)
    booking.daily_payments.all().delete()
    return booking
