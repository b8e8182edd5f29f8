"""
Validation utilities for the stay ledger.
Parses and sanitises values arriving from forms and JSON request bodies.
"""

import bleach
from django.core.exceptions import ValidationError

from .reconciliation import ZERO, parse_decimal, to_decimal

MAX_PAYMENT_AMOUNT = 999999


def sanitize_text_input(text, max_length=None):
    """
    Strip markup from free text such as payment notes.

    Raises:
        ValidationError: If text exceeds max_length
    """
    if not text:
        return ""

    text = str(text).strip()

    if max_length and len(text) > max_length:
        raise ValidationError(f"Text cannot exceed {max_length} characters.")

    return bleach.clean(text, tags=set(), strip=True)


def parse_payment_amount(value, max_value=MAX_PAYMENT_AMOUNT):
    """
    Parse a payment amount from user input.

    Unparsable input is treated as 0 and therefore rejected like any other
    non-positive amount.

    Raises:
        ValidationError: If the amount is not positive, has fractions of a
            cent or is implausibly large
    """
    raw = parse_decimal(value)
    amount = to_decimal(raw)

    if amount <= ZERO:
        raise ValidationError("Payment amount must be greater than 0.")

    if raw != amount:
        raise ValidationError("Payment amount cannot have more than 2 decimal places.")

    if amount > max_value:
        raise ValidationError("Payment amount seems too high. Please verify.")

    return amount


def validate_date_range(start_date, end_date, min_days=1, max_days=90):
    """
    Validate a stay's date range.

    Raises:
        ValidationError: If date range is invalid
    """
    if not start_date or not end_date:
        raise ValidationError("Both check-in and check-out dates are required.")

    if end_date <= start_date:
        raise ValidationError("Check-out date must be after check-in date.")

    days_diff = (end_date - start_date).days

    if days_diff < min_days:
        raise ValidationError(f"Minimum stay is {min_days} night(s).")

    if days_diff > max_days:
        raise ValidationError(f"Maximum stay is {max_days} nights.")
