"""
Payment reconciliation for per-night stay charges.

Pure functions over StayDayCharge values: day payment-status classification,
single-record payment application and oldest-first bulk payment allocation.
Nothing here touches the database; ledger.services feeds fresh snapshots in
and persists what comes out.
"""

import math
from dataclasses import dataclass, field, replace
from datetime import date, datetime, time, timezone as dt_timezone
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from enum import Enum
from typing import Any, Optional

from django.utils.dateparse import parse_date, parse_datetime

CENTS = Decimal("0.01")
ZERO = Decimal("0.00")


class PaymentStatus(str, Enum):
    FULLY_PAID = "fully-paid"
    PARTIALLY_PAID = "partially-paid"
    UNPAID = "unpaid"


class DayStatusMode(str, Enum):
    # paid_amount on every day row is the booking's cumulative payment
    CUMULATIVE = "cumulative"
    # each day row tracks only its own payment
    PER_ROW = "per_row"


class PaymentError(str, Enum):
    INVALID_AMOUNT = "invalid_amount"
    NO_OUTSTANDING_BALANCE = "no_outstanding_balance"
    RECORD_NOT_FOUND = "record_not_found"

    @property
    def message(self):
        return ERROR_MESSAGES[self]


ERROR_MESSAGES = {
    PaymentError.INVALID_AMOUNT: "Payment amount must be greater than 0 and cannot exceed the outstanding balance.",
    PaymentError.NO_OUTSTANDING_BALANCE: "No unpaid bookings found for this customer.",
    PaymentError.RECORD_NOT_FOUND: "Booking not found.",
}


@dataclass(frozen=True)
class ReconciliationConfig:
    """Options for the reconciliation engine, passed in by callers."""
    day_status_mode: DayStatusMode = DayStatusMode.CUMULATIVE


def parse_decimal(value):
    """
    Parse a money value into a finite Decimal without rounding it.

    None, blanks, unparsable strings, NaN and infinities all become 0.00 so
    they never leak into the arithmetic.
    """
    if value is None or isinstance(value, bool):
        return ZERO
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            return ZERO
        value = repr(value)
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return ZERO
    return amount if amount.is_finite() else ZERO


def to_decimal(value):
    """Parse a money value into a cent-quantised Decimal (see parse_decimal)."""
    try:
        return parse_decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        return ZERO


def to_issue_datetime(value):
    """Normalise an issue date to a naive UTC datetime so records always sort."""
    if value is None or value == "":
        return datetime.min
    if isinstance(value, str):
        parsed = parse_datetime(value.replace("Z", "+00:00"))
        if parsed is None:
            parsed_date = parse_date(value)
            if parsed_date is None:
                return datetime.min
            parsed = datetime.combine(parsed_date, time.min)
        value = parsed
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(dt_timezone.utc).replace(tzinfo=None)
        return value
    if isinstance(value, date):
        return datetime.combine(value, time.min)
    return datetime.min


def _positive_int(value, default=1):
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return number if number >= 1 else default


@dataclass(frozen=True)
class StayDayCharge:
    """
    One night of a booking as seen by the ledger.

    Amounts are normalised on construction: garbage becomes zero and negatives
    are clamped, so outstanding is never negative.
    """
    record_id: Any
    customer_name: str
    normalized_name: str
    total_amount: Decimal
    paid_amount: Decimal = ZERO
    day_of_stay: int = 1
    total_nights: int = 1
    issue_date: Optional[datetime] = None
    booking_id: Any = None

    def __post_init__(self):
        object.__setattr__(self, "total_amount", max(to_decimal(self.total_amount), ZERO))
        object.__setattr__(self, "paid_amount", max(to_decimal(self.paid_amount), ZERO))
        object.__setattr__(self, "day_of_stay", _positive_int(self.day_of_stay))
        object.__setattr__(self, "total_nights", _positive_int(self.total_nights))
        object.__setattr__(self, "issue_date", to_issue_datetime(self.issue_date))
        object.__setattr__(self, "normalized_name", (self.normalized_name or "").strip().lower())

    @property
    def outstanding(self):
        return max(self.total_amount - self.paid_amount, ZERO)

    @property
    def is_fully_paid(self):
        return self.outstanding == ZERO

    @property
    def stay_key(self):
        return self.booking_id if self.booking_id is not None else self.record_id


def charge_from_mapping(data):
    """Build a StayDayCharge from a camelCase sales record (API/JSON shape)."""
    customer_name = data.get("customerName") or ""
    return StayDayCharge(
        record_id=data.get("id"),
        customer_name=customer_name,
        normalized_name=data.get("normalizedName") or customer_name,
        total_amount=data.get("totalAmount"),
        paid_amount=data.get("paidAmount"),
        day_of_stay=data.get("dayOfStay") or 1,
        total_nights=data.get("totalNights") or 1,
        issue_date=data.get("issueDate"),
        booking_id=data.get("bookingId"),
    )


@dataclass(frozen=True)
class BulkPaymentRequest:
    normalized_name: str
    amount_to_apply: Decimal
    note: str = ""


@dataclass(frozen=True)
class BulkPaymentResult:
    processed_payments: int
    total_amount: Decimal
    remaining_amount: Decimal

    def as_dict(self):
        return {
            "processedPayments": self.processed_payments,
            "totalAmount": float(self.total_amount),
            "remainingAmount": float(self.remaining_amount),
        }


@dataclass(frozen=True)
class PaymentOutcome:
    record: StayDayCharge
    error: Optional[PaymentError] = None

    @property
    def ok(self):
        return self.error is None


@dataclass(frozen=True)
class AllocationOutcome:
    result: Optional[BulkPaymentResult] = None
    updated_records: list = field(default_factory=list)
    # (record_id, portion) in the order the money was applied
    allocations: list = field(default_factory=list)
    error: Optional[PaymentError] = None

    @property
    def ok(self):
        return self.error is None


# --- Classification ---

def _day_slice_status(day_of_stay, daily_amount, paid_for_booking):
    if daily_amount <= ZERO:
        return PaymentStatus.UNPAID

    fully_paid_days = int(paid_for_booking // daily_amount)
    remainder = paid_for_booking % daily_amount

    if day_of_stay <= fully_paid_days:
        return PaymentStatus.FULLY_PAID
    if day_of_stay == fully_paid_days + 1 and remainder > ZERO:
        return PaymentStatus.PARTIALLY_PAID
    return PaymentStatus.UNPAID


def classify(record, mode=DayStatusMode.CUMULATIVE):
    """
    Classify one stay-day as fully-paid, partially-paid or unpaid.

    In cumulative mode the row's paid amount is taken as the whole booking's
    payment and compared against the night's slice of it. In per-row mode the
    row is judged on its own balance; use classify_stay to get the day-slice
    view across a booking's rows.
    """
    if DayStatusMode(mode) is DayStatusMode.PER_ROW:
        if record.total_amount <= ZERO:
            return PaymentStatus.UNPAID
        if record.paid_amount >= record.total_amount:
            return PaymentStatus.FULLY_PAID
        if record.paid_amount > ZERO:
            return PaymentStatus.PARTIALLY_PAID
        return PaymentStatus.UNPAID

    return _day_slice_status(record.day_of_stay, record.total_amount, record.paid_amount)


def classify_stay(records, mode=DayStatusMode.CUMULATIVE):
    """Return {record_id: PaymentStatus} for every row of one or more bookings."""
    mode = DayStatusMode(mode)
    if mode is DayStatusMode.CUMULATIVE:
        return {record.record_id: classify(record, mode) for record in records}

    paid_per_stay = {}
    for record in records:
        paid_per_stay[record.stay_key] = paid_per_stay.get(record.stay_key, ZERO) + record.paid_amount

    return {
        record.record_id: _day_slice_status(
            record.day_of_stay, record.total_amount, paid_per_stay[record.stay_key]
        )
        for record in records
    }


# --- Payment application ---

def apply_payment(record, amount):
    """
    Apply a payment to a single record.

    The amount must be positive and no larger than the record's outstanding
    balance; otherwise the record comes back unchanged with INVALID_AMOUNT.
    The bounds are checked before rounding to cents, so 100.004 against an
    outstanding 100.00 is rejected.
    """
    raw = parse_decimal(amount)
    amount = to_decimal(raw)
    if amount <= ZERO or raw > record.outstanding:
        return PaymentOutcome(record=record, error=PaymentError.INVALID_AMOUNT)

    return PaymentOutcome(record=replace(record, paid_amount=record.paid_amount + amount))


def _record_id_key(record_id):
    if isinstance(record_id, (int, Decimal)) and not isinstance(record_id, bool):
        return (0, record_id, "")
    return (1, 0, str(record_id))


def _allocation_order(record):
    return (record.issue_date, _record_id_key(record.record_id))


def allocate_bulk_payment(records, normalized_name, amount_to_apply):
    """
    Spread one payment over a customer's outstanding records, oldest first.

    Records are re-sorted by issue date (record id breaks ties) regardless of
    the order given. Whatever exceeds the customer's total debt is reported as
    remaining_amount.
    """
    amount = to_decimal(amount_to_apply)
    if amount <= ZERO:
        return AllocationOutcome(error=PaymentError.INVALID_AMOUNT)

    key = (normalized_name or "").strip().lower()
    owed = sorted(
        (r for r in records if r.normalized_name == key and not r.is_fully_paid),
        key=_allocation_order,
    )
    if not owed:
        return AllocationOutcome(error=PaymentError.NO_OUTSTANDING_BALANCE)

    remaining = amount
    processed = 0
    updated = []
    allocations = []

    for record in owed:
        if remaining <= ZERO:
            break
        portion = min(remaining, record.outstanding)
        outcome = apply_payment(record, portion)
        updated.append(outcome.record)
        allocations.append((record.record_id, portion))
        remaining -= portion
        processed += 1

    result = BulkPaymentResult(
        processed_payments=processed,
        total_amount=amount - remaining,
        remaining_amount=remaining,
    )
    return AllocationOutcome(result=result, updated_records=updated, allocations=allocations)


# --- Customer aggregation ---

def total_outstanding(records, normalized_name):
    key = (normalized_name or "").strip().lower()
    return sum((r.outstanding for r in records if r.normalized_name == key), ZERO)


def summarize_customers(records):
    """
    Group not-fully-paid records by normalized name.

    Returns a list of dicts in order of first appearance, one per customer.
    """
    summary = {}
    for record in records:
        if record.is_fully_paid:
            continue
        entry = summary.setdefault(record.normalized_name, {
            "customer_name": record.customer_name,
            "normalized_name": record.normalized_name,
            "total_sales": ZERO,
            "total_paid": ZERO,
            "total_outstanding": ZERO,
            "sales_count": 0,
        })
        entry["total_sales"] += record.total_amount
        entry["total_paid"] += record.paid_amount
        entry["total_outstanding"] += record.outstanding
        entry["sales_count"] += 1
    return list(summary.values())
