from django import forms
from django.core.exceptions import ValidationError

from .models import Booking, Payment
from .reconciliation import BulkPaymentRequest
from .services import PERIODS
from .validators import parse_payment_amount, sanitize_text_input, validate_date_range


class PaymentForm(forms.Form):
    """Single payment against a booking, optionally for one night of it."""

    sale_id = forms.CharField(max_length=64)
    amount = forms.CharField(max_length=32)
    note = forms.CharField(max_length=255, required=False)
    received_by = forms.CharField(max_length=100, required=False)
    day_of_stay = forms.IntegerField(required=False, min_value=1)
    payment_method = forms.ChoiceField(choices=Payment.PAYMENT_METHODS, required=False)

    def clean_sale_id(self):
        sale_id = self.cleaned_data.get('sale_id', '').strip()
        # Per-night rows are addressed as "<booking id>-day-<n>"
        booking_id = sale_id.split('-day-')[0]
        if not booking_id.isdigit():
            raise ValidationError("Invalid sale ID.")
        return int(booking_id)

    def clean_amount(self):
        """Parse and validate the payment amount."""
        return parse_payment_amount(self.cleaned_data.get('amount'))

    def clean_note(self):
        return sanitize_text_input(self.cleaned_data.get('note'), max_length=255)

    def clean_received_by(self):
        return sanitize_text_input(self.cleaned_data.get('received_by'), max_length=100)

    def clean_payment_method(self):
        return self.cleaned_data.get('payment_method') or 'cash'


class BulkPaymentForm(forms.Form):
    """One amount to spread across all of a customer's unpaid bookings."""

    normalized_name = forms.CharField(max_length=100)
    total_amount = forms.CharField(max_length=32)
    note = forms.CharField(max_length=255, required=False)
    received_by = forms.CharField(max_length=100, required=False)

    def clean_normalized_name(self):
        name = sanitize_text_input(self.cleaned_data.get('normalized_name'), max_length=100)
        if not name:
            raise ValidationError("Customer name and amount are required.")
        return name.lower()

    def clean_total_amount(self):
        return parse_payment_amount(self.cleaned_data.get('total_amount'))

    def clean_note(self):
        return sanitize_text_input(self.cleaned_data.get('note'), max_length=200)

    def clean_received_by(self):
        return sanitize_text_input(self.cleaned_data.get('received_by'), max_length=100)

    def to_request(self):
        return BulkPaymentRequest(
            normalized_name=self.cleaned_data['normalized_name'],
            amount_to_apply=self.cleaned_data['total_amount'],
            note=self.cleaned_data['note'],
        )


class BookingForm(forms.ModelForm):
    """Booking creation with date validation and room availability check."""

    room_rate = forms.DecimalField(max_digits=10, decimal_places=2, required=False, min_value=0)

    class Meta:
        model = Booking
        fields = ['guest', 'room', 'check_in', 'check_out', 'room_rate',
                  'adults', 'children', 'special_requests', 'notes']

    def clean_special_requests(self):
        return sanitize_text_input(self.cleaned_data.get('special_requests'), max_length=1000)

    def clean_notes(self):
        return sanitize_text_input(self.cleaned_data.get('notes'), max_length=1000)

    def clean(self):
        """Cross-field validation for booking dates and room availability."""
        cleaned_data = super().clean()
        room = cleaned_data.get('room')
        check_in = cleaned_data.get('check_in')
        check_out = cleaned_data.get('check_out')

        if check_in and check_out:
            validate_date_range(check_in, check_out)

        if room and check_in and check_out:
            overlapping_bookings = Booking.objects.filter(
                room=room,
                check_in__lt=check_out,
                check_out__gt=check_in,
                status__in=['pending', 'confirmed', 'checked_in'],
            )
            if self.instance.pk:
                overlapping_bookings = overlapping_bookings.exclude(pk=self.instance.pk)

            if overlapping_bookings.exists():
                conflicting_booking = overlapping_bookings.first()
                raise ValidationError(
                    f"Room {room.number} is not available for the selected dates. "
                    f"Conflict with booking from {conflicting_booking.check_in} "
                    f"to {conflicting_booking.check_out}."
                )

        return cleaned_data


class SalesFilterForm(forms.Form):
    page = forms.IntegerField(required=False, min_value=1)
    limit = forms.IntegerField(required=False, min_value=1)
    search = forms.CharField(required=False, max_length=100)
    from_date = forms.DateField(required=False)
    to_date = forms.DateField(required=False)
    period = forms.ChoiceField(choices=[(p, p) for p in PERIODS], required=False)

    def clean_search(self):
        return sanitize_text_input(self.cleaned_data.get('search'), max_length=100)

    def clean_period(self):
        return self.cleaned_data.get('period') or 'today'
