from datetime import date, datetime, timedelta
from decimal import Decimal
from io import StringIO

from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError
from django.core.management import call_command
from django.test import SimpleTestCase, TestCase, override_settings
from django.urls import reverse
from django.utils import timezone

from ledger.models import Booking, DailyPayment, Guest, Payment, Room
from ledger.reconciliation import (
    DayStatusMode,
    PaymentError,
    PaymentStatus,
    StayDayCharge,
    allocate_bulk_payment,
    apply_payment,
    charge_from_mapping,
    classify,
    classify_stay,
    summarize_customers,
    to_decimal,
    total_outstanding,
)
from ledger.services import (
    create_booking,
    get_payment_anomalies,
    process_bulk_payment,
    record_payment,
    sales_records,
)
from ledger.validators import parse_payment_amount, sanitize_text_input


def charge(record_id, total, paid="0", day=1, nights=1, issued=None, name="ali rezaei", booking_id=None):
    return StayDayCharge(
        record_id=record_id,
        customer_name=name.title(),
        normalized_name=name,
        total_amount=total,
        paid_amount=paid,
        day_of_stay=day,
        total_nights=nights,
        issue_date=issued or date(2025, 1, 1),
        booking_id=booking_id,
    )


class DayClassificationTestCase(SimpleTestCase):
    def stay(self, paid):
        return [charge(f"b1-day-{d}", "100", paid, day=d, nights=3, booking_id="b1") for d in (1, 2, 3)]

    def test_partial_payment_covers_nights_oldest_first(self):
        """150 paid on a 3 x 100 stay: night 1 paid, night 2 partial, night 3 unpaid."""
        statuses = [classify(r) for r in self.stay("150")]
        self.assertEqual(
            statuses,
            [PaymentStatus.FULLY_PAID, PaymentStatus.PARTIALLY_PAID, PaymentStatus.UNPAID],
        )

    def test_exact_multiple_has_no_partial_night(self):
        statuses = [classify(r) for r in self.stay("200")]
        self.assertEqual(
            statuses,
            [PaymentStatus.FULLY_PAID, PaymentStatus.FULLY_PAID, PaymentStatus.UNPAID],
        )

    def test_overpayment_marks_every_night_paid(self):
        for record in self.stay("450"):
            self.assertEqual(classify(record), PaymentStatus.FULLY_PAID)

    def test_zero_rate_night_is_unpaid(self):
        self.assertEqual(classify(charge("x", "0", "50")), PaymentStatus.UNPAID)

    def test_classification_is_repeatable(self):
        record = self.stay("150")[1]
        self.assertEqual(classify(record), classify(record))

    def test_per_row_mode_judges_single_row_on_its_own_balance(self):
        self.assertEqual(classify(charge("x", "100", "100"), DayStatusMode.PER_ROW), PaymentStatus.FULLY_PAID)
        self.assertEqual(classify(charge("x", "100", "30"), DayStatusMode.PER_ROW), PaymentStatus.PARTIALLY_PAID)
        self.assertEqual(classify(charge("x", "100", "0"), DayStatusMode.PER_ROW), PaymentStatus.UNPAID)

    def test_per_row_stay_sums_payments_across_rows(self):
        rows = [charge(f"b1-day-{d}", "100", "50", day=d, nights=3, booking_id="b1") for d in (1, 2, 3)]
        statuses = classify_stay(rows, DayStatusMode.PER_ROW)
        self.assertEqual(statuses["b1-day-1"], PaymentStatus.FULLY_PAID)
        self.assertEqual(statuses["b1-day-2"], PaymentStatus.PARTIALLY_PAID)
        self.assertEqual(statuses["b1-day-3"], PaymentStatus.UNPAID)

    def test_per_row_stay_keeps_bookings_apart(self):
        rows = [
            charge("a-day-1", "100", "100", day=1, nights=2, booking_id="a"),
            charge("a-day-2", "100", "0", day=2, nights=2, booking_id="a"),
            charge("b-day-1", "100", "0", day=1, nights=1, booking_id="b"),
        ]
        statuses = classify_stay(rows, "per_row")
        self.assertEqual(statuses["a-day-2"], PaymentStatus.UNPAID)
        self.assertEqual(statuses["b-day-1"], PaymentStatus.UNPAID)


class ApplyPaymentTestCase(SimpleTestCase):
    def test_payment_reduces_outstanding(self):
        record = charge("r1", "300", "100")
        outcome = apply_payment(record, "150")
        self.assertTrue(outcome.ok)
        self.assertEqual(outcome.record.paid_amount, Decimal("250.00"))
        self.assertEqual(outcome.record.outstanding, Decimal("50.00"))
        self.assertFalse(outcome.record.is_fully_paid)

    def test_paying_exact_outstanding_settles_record(self):
        outcome = apply_payment(charge("r1", "300", "100"), Decimal("200"))
        self.assertTrue(outcome.record.is_fully_paid)
        self.assertEqual(outcome.record.outstanding, Decimal("0.00"))

    def test_zero_and_excess_amounts_are_rejected(self):
        record = charge("r1", "300", "100")
        for amount in (0, "-10", record.outstanding + 1, "not a number"):
            outcome = apply_payment(record, amount)
            self.assertEqual(outcome.error, PaymentError.INVALID_AMOUNT)
            self.assertIs(outcome.record, record)
        self.assertEqual(record.paid_amount, Decimal("100.00"))

    def test_fraction_of_a_cent_over_outstanding_is_rejected(self):
        record = charge("r1", "100")
        outcome = apply_payment(record, "100.004")
        self.assertEqual(outcome.error, PaymentError.INVALID_AMOUNT)
        self.assertIs(outcome.record, record)


class BulkAllocationTestCase(SimpleTestCase):
    def test_oldest_debt_is_settled_first(self):
        records = [
            charge("jan3", "50", issued=date(2025, 1, 3)),
            charge("jan1", "30", issued=date(2025, 1, 1)),
            charge("jan2", "20", issued=date(2025, 1, 2)),
        ]
        outcome = allocate_bulk_payment(records, "ali rezaei", "40")

        self.assertTrue(outcome.ok)
        updated = {r.record_id: r for r in outcome.updated_records}
        self.assertEqual(set(updated), {"jan1", "jan2"})
        self.assertTrue(updated["jan1"].is_fully_paid)
        self.assertEqual(updated["jan2"].outstanding, Decimal("10.00"))
        self.assertEqual(outcome.allocations, [("jan1", Decimal("30.00")), ("jan2", Decimal("10.00"))])
        self.assertEqual(outcome.result.processed_payments, 2)
        self.assertEqual(outcome.result.total_amount, Decimal("40.00"))
        self.assertEqual(outcome.result.remaining_amount, Decimal("0.00"))

    def test_surplus_is_reported_not_discarded(self):
        records = [charge("a", "60", issued=date(2025, 1, 1)), charge("b", "40", issued=date(2025, 1, 2))]
        outcome = allocate_bulk_payment(records, "ali rezaei", "150")

        self.assertEqual(outcome.result.total_amount, Decimal("100.00"))
        self.assertEqual(outcome.result.remaining_amount, Decimal("50.00"))
        self.assertTrue(all(r.is_fully_paid for r in outcome.updated_records))

    def test_applied_and_remaining_add_up_to_payment(self):
        records = [charge(i, "33.33", "10", issued=date(2025, 1, i)) for i in range(1, 6)]
        for amount in ("0.01", "17.50", "116.65", "500"):
            result = allocate_bulk_payment(records, "ali rezaei", amount).result
            self.assertEqual(result.total_amount + result.remaining_amount, Decimal(amount))
            self.assertGreaterEqual(result.remaining_amount, 0)

    def test_same_day_ties_break_on_record_id(self):
        records = [charge(12, "50"), charge(3, "50"), charge(7, "50")]
        outcome = allocate_bulk_payment(records, "ali rezaei", "60")
        self.assertEqual([rid for rid, _ in outcome.allocations], [3, 7])

    def test_other_customers_and_paid_records_are_ignored(self):
        records = [
            charge("mine", "100", issued=date(2025, 1, 2)),
            charge("paid", "100", "100", issued=date(2025, 1, 1)),
            charge("theirs", "100", issued=date(2024, 12, 1), name="sara karimi"),
        ]
        outcome = allocate_bulk_payment(records, "  Ali Rezaei ", "30")
        self.assertEqual(outcome.allocations, [("mine", Decimal("30.00"))])

    def test_nothing_owed_is_an_error(self):
        self.assertEqual(
            allocate_bulk_payment([], "ali rezaei", "10").error,
            PaymentError.NO_OUTSTANDING_BALANCE,
        )
        paid_up = [charge("a", "100", "100")]
        outcome = allocate_bulk_payment(paid_up, "ali rezaei", "10")
        self.assertEqual(outcome.error, PaymentError.NO_OUTSTANDING_BALANCE)
        self.assertIsNone(outcome.result)

    def test_non_positive_amount_is_an_error(self):
        records = [charge("a", "100")]
        for amount in (0, "-5", "nan", None):
            self.assertEqual(
                allocate_bulk_payment(records, "ali rezaei", amount).error,
                PaymentError.INVALID_AMOUNT,
            )

    def test_result_serialises_to_caller_shape(self):
        result = allocate_bulk_payment([charge("a", "100")], "ali rezaei", "120").result
        self.assertEqual(
            result.as_dict(),
            {"processedPayments": 1, "totalAmount": 100.0, "remainingAmount": 20.0},
        )


class BoundaryParsingTestCase(SimpleTestCase):
    def test_to_decimal_treats_garbage_as_zero(self):
        for value in (None, "", "abc", "NaN", float("nan"), float("inf"), "Infinity"):
            self.assertEqual(to_decimal(value), Decimal("0.00"))

    def test_to_decimal_rounds_to_cents(self):
        self.assertEqual(to_decimal("12.345"), Decimal("12.35"))
        self.assertEqual(to_decimal(0.1), Decimal("0.10"))
        self.assertEqual(to_decimal(7), Decimal("7.00"))

    def test_payment_amount_input(self):
        self.assertEqual(parse_payment_amount("12.50"), Decimal("12.50"))
        for value in ("0", "-1", "abc", "12.345", "1000000"):
            with self.assertRaises(ValidationError):
                parse_payment_amount(value)

    def test_markup_is_stripped_from_text(self):
        self.assertEqual(sanitize_text_input("<b>desk</b> <a href='x'>cash</a>"), "desk cash")

    def test_charge_from_sales_record(self):
        record = charge_from_mapping({
            "id": "42-day-2",
            "bookingId": "42",
            "customerName": "Ali Rezaei",
            "normalizedName": "ali rezaei",
            "totalAmount": "100",
            "paidAmount": "NaN",
            "dayOfStay": 2,
            "totalNights": 3,
            "issueDate": "2025-01-02T00:00:00.000Z",
        })
        self.assertEqual(record.paid_amount, Decimal("0.00"))
        self.assertEqual(record.outstanding, Decimal("100.00"))
        self.assertEqual(record.issue_date, datetime(2025, 1, 2))
        self.assertEqual(record.day_of_stay, 2)

    def test_negative_amounts_never_produce_negative_outstanding(self):
        record = charge("a", "-100", "-5")
        self.assertEqual(record.outstanding, Decimal("0.00"))
        self.assertTrue(record.is_fully_paid)

    def test_customer_summary_skips_paid_records(self):
        records = [
            charge("a", "100", "40"),
            charge("b", "50"),
            charge("c", "80", "80"),
            charge("d", "70", name="sara karimi"),
        ]
        summary = summarize_customers(records)
        self.assertEqual([s["normalized_name"] for s in summary], ["ali rezaei", "sara karimi"])
        self.assertEqual(summary[0]["total_outstanding"], Decimal("110.00"))
        self.assertEqual(summary[0]["sales_count"], 2)
        self.assertEqual(total_outstanding(records, "Ali Rezaei"), Decimal("110.00"))


class LedgerTestMixin:
    def setUp(self):
        """Set up a guest with a 3-night booking at 100 per night."""
        self.guest = Guest.objects.create(name="Test Guest", email="test@example.com")
        self.other_guest = Guest.objects.create(name="Other Guest", email="other@example.com")
        self.room = Room.objects.create(number="101", room_type="double", capacity=2, price=Decimal("100.00"))
        self.booking = create_booking(self.guest, self.room, date(2025, 1, 1), date(2025, 1, 4))


class BookingPaymentTestCase(LedgerTestMixin, TestCase):
    def test_booking_totals_are_derived(self):
        self.assertEqual(self.booking.total_nights, 3)
        self.assertEqual(self.booking.total_amount, Decimal("300.00"))
        self.assertEqual(self.booking.outstanding_amount, Decimal("300.00"))
        self.assertEqual(self.booking.payment_status, "pending")
        self.assertTrue(self.booking.booking_number.startswith("BKG-"))

    def test_explicit_total_gets_outstanding_on_create(self):
        booking = Booking.objects.create(
            booking_number="BKG-EXPLICIT",
            guest=self.other_guest,
            room=self.room,
            check_in=date(2025, 6, 1),
            check_out=date(2025, 6, 4),
            room_rate=Decimal("100.00"),
            total_amount=Decimal("300.00"),
        )
        self.assertEqual(booking.outstanding_amount, Decimal("300.00"))
        self.assertFalse(booking.is_fully_paid())

        result, error = process_bulk_payment("other guest", "100")
        self.assertIsNone(error)
        booking.refresh_from_db()
        self.assertEqual(booking.outstanding_amount, Decimal("200.00"))

    def test_invalid_dates_are_rejected(self):
        with self.assertRaises(ValidationError):
            create_booking(self.guest, self.room, date(2025, 1, 4), date(2025, 1, 4))

    def test_payment_status_follows_payments(self):
        payment, error = record_payment(self.booking.pk, Decimal("150.00"), note="deposit")
        self.assertIsNone(error)
        self.assertEqual(payment.normalized_name, "test guest")
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.payment_status, "partial")
        self.assertEqual(self.booking.outstanding_amount, Decimal("150.00"))

        record_payment(self.booking.pk, "150")
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.payment_status, "paid")
        self.assertEqual(self.booking.status, "confirmed")
        self.assertEqual(self.booking.outstanding_amount, Decimal("0.00"))

    def test_overpayment_is_rejected(self):
        record_payment(self.booking.pk, Decimal("200.00"))
        payment, error = record_payment(self.booking.pk, Decimal("200.00"))

        self.assertIsNone(payment)
        self.assertEqual(error, PaymentError.INVALID_AMOUNT)
        self.assertEqual(Payment.objects.count(), 1)
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.paid_amount, Decimal("200.00"))

    def test_missing_booking(self):
        payment, error = record_payment(999999, Decimal("10.00"))
        self.assertIsNone(payment)
        self.assertEqual(error, PaymentError.RECORD_NOT_FOUND)

    def test_day_payment_creates_nightly_rows(self):
        payment, error = record_payment(self.booking.pk, Decimal("100.00"), day_of_stay=2)
        self.assertIsNone(error)
        self.assertEqual(payment.day_of_stay, 2)

        days = list(self.booking.daily_payments.all())
        self.assertEqual([d.amount for d in days], [Decimal("100.00")] * 3)
        self.assertEqual([d.is_paid for d in days], [False, True, False])

        self.booking.refresh_from_db()
        self.assertEqual(self.booking.paid_amount, Decimal("100.00"))
        self.assertEqual(self.booking.payment_status, "partial")

    def test_day_payment_cannot_exceed_that_night(self):
        payment, error = record_payment(self.booking.pk, Decimal("150.00"), day_of_stay=1)
        self.assertEqual(error, PaymentError.INVALID_AMOUNT)

    def test_day_outside_stay_is_invalid(self):
        with self.assertRaises(ValidationError):
            record_payment(self.booking.pk, Decimal("10.00"), day_of_stay=4)

    def test_earlier_payments_carry_onto_first_nights(self):
        record_payment(self.booking.pk, Decimal("150.00"))
        record_payment(self.booking.pk, Decimal("50.00"), day_of_stay=3)

        days = {d.day_of_stay: d for d in DailyPayment.objects.filter(booking=self.booking)}
        self.assertEqual(days[1].paid_amount, Decimal("100.00"))
        self.assertEqual(days[2].paid_amount, Decimal("50.00"))
        self.assertEqual(days[3].paid_amount, Decimal("50.00"))
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.paid_amount, Decimal("200.00"))


class BulkPaymentServiceTestCase(LedgerTestMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.later = create_booking(self.guest, self.room, date(2025, 2, 1), date(2025, 2, 4))
        self.unrelated = create_booking(self.other_guest, self.room, date(2024, 12, 1), date(2024, 12, 3))

    def test_bulk_payment_settles_oldest_booking_first(self):
        result, error = process_bulk_payment("Test Guest", "350")

        self.assertIsNone(error)
        self.assertEqual(result.processed_payments, 2)
        self.assertEqual(result.total_amount, Decimal("350.00"))
        self.assertEqual(result.remaining_amount, Decimal("0.00"))

        self.booking.refresh_from_db()
        self.later.refresh_from_db()
        self.unrelated.refresh_from_db()
        self.assertEqual(self.booking.payment_status, "paid")
        self.assertEqual(self.later.outstanding_amount, Decimal("250.00"))
        self.assertEqual(self.unrelated.paid_amount, Decimal("0.00"))

        payments = Payment.objects.order_by("amount")
        self.assertEqual([p.amount for p in payments], [Decimal("50.00"), Decimal("300.00")])
        self.assertTrue(all(p.note == "Bulk payment" for p in payments))

    def test_bulk_payment_reports_surplus(self):
        result, error = process_bulk_payment("test guest", "700", note="cash at desk")
        self.assertEqual(result.total_amount, Decimal("600.00"))
        self.assertEqual(result.remaining_amount, Decimal("100.00"))
        self.assertEqual(Payment.objects.first().note, "cash at desk (Bulk payment)")

    def test_bulk_payment_keeps_nightly_rows_in_step(self):
        record_payment(self.booking.pk, Decimal("50.00"), day_of_stay=1)
        process_bulk_payment("test guest", "100")

        days = list(self.booking.daily_payments.all())
        self.assertEqual([d.paid_amount for d in days], [Decimal("100.00"), Decimal("50.00"), Decimal("0.00")])

    def test_customer_without_debt(self):
        result, error = process_bulk_payment("nobody here", "100")
        self.assertIsNone(result)
        self.assertEqual(error, PaymentError.NO_OUTSTANDING_BALANCE)
        self.assertFalse(Payment.objects.exists())


class SalesLedgerTestCase(LedgerTestMixin, TestCase):
    def test_booking_expands_into_nightly_rows(self):
        record_payment(self.booking.pk, Decimal("150.00"))
        result = sales_records(period="lifetime")

        rows = result["data"]
        self.assertEqual(len(rows), 3)
        self.assertEqual([r["issueDate"] for r in rows], ["2025-01-01", "2025-01-02", "2025-01-03"])
        self.assertEqual(
            [r["paymentStatus"] for r in rows],
            ["fully-paid", "partially-paid", "unpaid"],
        )
        self.assertEqual(rows[0]["id"], f"{self.booking.pk}-day-1")
        self.assertEqual(result["summary"]["totalOutstanding"], 150.0)
        self.assertEqual(result["customers"][0]["total_outstanding"], Decimal("150.00"))

    @override_settings(LEDGER={"DAY_STATUS_MODE": "per_row"})
    def test_per_row_mode_gives_same_picture(self):
        record_payment(self.booking.pk, Decimal("150.00"))
        rows = sales_records(period="lifetime")["data"]
        self.assertEqual([r["paidAmount"] for r in rows], ["50.00", "50.00", "50.00"])
        self.assertEqual(
            [r["paymentStatus"] for r in rows],
            ["fully-paid", "partially-paid", "unpaid"],
        )

    def test_week_starts_on_sunday(self):
        today = timezone.localdate()
        week_start = today - timedelta(days=(today.weekday() + 1) % 7)
        in_week = create_booking(self.other_guest, self.room, week_start, week_start + timedelta(days=1))
        create_booking(self.other_guest, self.room, week_start - timedelta(days=1), week_start)

        result = sales_records(period="week")
        self.assertEqual(week_start.weekday(), 6)
        self.assertEqual(result["pagination"]["total"], 1)
        self.assertEqual({r["bookingId"] for r in result["data"]}, {str(in_week.pk)})

    def test_date_range_and_search(self):
        create_booking(self.other_guest, self.room, date(2025, 3, 1), date(2025, 3, 2))
        result = sales_records(from_date=date(2025, 2, 1), to_date=date(2025, 3, 31))
        self.assertEqual(result["pagination"]["total"], 1)

        result = sales_records(period="lifetime", search="other")
        self.assertEqual({r["customerName"] for r in result["data"]}, {"Other Guest"})


class LedgerViewsTestCase(LedgerTestMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.user = get_user_model().objects.create_user(username="frontdesk", password="secret")
        self.client.force_login(self.user)

    def test_login_required(self):
        self.client.logout()
        response = self.client.get(reverse("sales_list"))
        self.assertEqual(response.status_code, 302)

    def test_sales_list(self):
        response = self.client.get(reverse("sales_list"), {"period": "lifetime"})
        body = response.json()
        self.assertTrue(body["success"])
        self.assertEqual(len(body["data"]), 3)
        self.assertEqual(body["pagination"]["total"], 1)
        self.assertEqual(body["customers"], [{
            "customerName": "Test Guest",
            "normalizedName": "test guest",
            "totalSales": 300.0,
            "totalPaid": 0.0,
            "totalOutstanding": 300.0,
            "salesCount": 1,
        }])

    def test_single_payment(self):
        response = self.client.post(
            reverse("payment_create"),
            {"saleId": f"{self.booking.pk}-day-2", "amount": "100", "dayOfStay": 2},
            content_type="application/json",
        )
        self.assertEqual(response.status_code, 200)
        booking = response.json()["data"]["booking"]
        self.assertEqual(booking["paidAmount"], 100.0)
        self.assertEqual(booking["paymentStatus"], "partial")
        self.assertEqual(Payment.objects.get().received_by, "frontdesk")

    def test_single_payment_unknown_booking(self):
        response = self.client.post(
            reverse("payment_create"),
            {"saleId": "999999", "amount": "10"},
            content_type="application/json",
        )
        self.assertEqual(response.status_code, 404)
        self.assertFalse(response.json()["success"])

    def test_bulk_payment(self):
        response = self.client.post(
            reverse("bulk_payment_create"),
            {"normalizedName": "test guest", "totalAmount": 350, "note": "<b>desk</b>"},
            content_type="application/json",
        )
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["processedPayments"], 1)
        self.assertEqual(body["totalAmount"], 300.0)
        self.assertEqual(body["remainingAmount"], 50.0)
        self.assertEqual(Payment.objects.get().note, "desk (Bulk payment)")

    def test_bulk_payment_errors(self):
        response = self.client.post(
            reverse("bulk_payment_create"),
            {"normalizedName": "test guest", "totalAmount": "-5"},
            content_type="application/json",
        )
        self.assertEqual(response.status_code, 400)

        response = self.client.post(
            reverse("bulk_payment_create"),
            {"normalizedName": "other guest", "totalAmount": "50"},
            content_type="application/json",
        )
        self.assertEqual(response.status_code, 404)

    def test_create_booking(self):
        response = self.client.post(
            reverse("booking_create"),
            {
                "guestId": self.other_guest.pk,
                "roomId": self.room.pk,
                "checkInDate": "2025-05-01",
                "checkOutDate": "2025-05-03",
                "roomRate": "120",
            },
            content_type="application/json",
        )
        self.assertEqual(response.status_code, 201)
        booking = Booking.objects.get(booking_number=response.json()["data"]["bookingNumber"])
        self.assertEqual(booking.total_amount, Decimal("240.00"))
        self.assertEqual(booking.created_by, self.user)

    def test_create_booking_conflicting_room(self):
        response = self.client.post(
            reverse("booking_create"),
            {
                "guestId": self.other_guest.pk,
                "roomId": self.room.pk,
                "checkInDate": "2025-01-02",
                "checkOutDate": "2025-01-05",
            },
            content_type="application/json",
        )
        self.assertEqual(response.status_code, 400)


class BalanceCommandsTestCase(LedgerTestMixin, TestCase):
    def test_sync_payment_statuses_repairs_stored_balance(self):
        record_payment(self.booking.pk, Decimal("120.00"))
        Booking.objects.filter(pk=self.booking.pk).update(
            paid_amount=Decimal("999.00"), outstanding_amount=Decimal("0.00"), payment_status="paid",
        )
        self.assertEqual(len(get_payment_anomalies()), 1)

        out = StringIO()
        call_command("sync_payment_statuses", "--dry-run", stdout=out)
        self.assertIn("Would update 1 bookings", out.getvalue())

        call_command("sync_payment_statuses", stdout=StringIO())
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.paid_amount, Decimal("120.00"))
        self.assertEqual(self.booking.outstanding_amount, Decimal("180.00"))
        self.assertEqual(self.booking.payment_status, "partial")
        self.assertEqual(get_payment_anomalies(), [])

    def test_sync_payment_statuses_resets_nightly_rows(self):
        payment, _ = record_payment(self.booking.pk, Decimal("100.00"), day_of_stay=1)
        Payment.objects.filter(pk=payment.pk).update(status="failed")

        call_command("sync_payment_statuses", stdout=StringIO())
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.paid_amount, Decimal("0.00"))
        self.assertFalse(self.booking.daily_payments.exists())

        record_payment(self.booking.pk, Decimal("10.00"), day_of_stay=2)
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.paid_amount, Decimal("10.00"))
        self.assertEqual(
            [d.paid_amount for d in self.booking.daily_payments.all()],
            [Decimal("0.00"), Decimal("10.00"), Decimal("0.00")],
        )

    def test_fix_booking_totals(self):
        Booking.objects.filter(pk=self.booking.pk).update(total_amount=Decimal("50.00"))

        call_command("fix_booking_totals", stdout=StringIO())
        self.booking.refresh_from_db()
        self.assertEqual(self.booking.total_amount, Decimal("300.00"))
        self.assertEqual(self.booking.outstanding_amount, Decimal("300.00"))
