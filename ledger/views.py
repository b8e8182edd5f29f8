import json
import logging

from django.contrib.auth.decorators import login_required
from django.core.exceptions import ValidationError
from django.http import JsonResponse
from django.views.decorators.http import require_GET, require_POST

from . import services
from .forms import BookingForm, BulkPaymentForm, PaymentForm, SalesFilterForm
from .reconciliation import PaymentError

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    PaymentError.INVALID_AMOUNT: 400,
    PaymentError.NO_OUTSTANDING_BALANCE: 404,
    PaymentError.RECORD_NOT_FOUND: 404,
}


def _error(message, status):
    return JsonResponse({"success": False, "error": message}, status=status)


def _payment_error(error):
    return _error(error.message, ERROR_STATUS[error])


def _form_error(form):
    # First message of the first invalid field
    for errors in form.errors.values():
        return _error(errors[0], 400)
    return _error("Invalid request.", 400)


def _json_body(request):
    try:
        body = json.loads(request.body or b"{}")
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None
    return body if isinstance(body, dict) else None


def _customer_summary(entry):
    return {
        "customerName": entry["customer_name"],
        "normalizedName": entry["normalized_name"],
        "totalSales": float(entry["total_sales"]),
        "totalPaid": float(entry["total_paid"]),
        "totalOutstanding": float(entry["total_outstanding"]),
        "salesCount": entry["sales_count"],
    }


# =======================
# 🔹 SALES LEDGER
# =======================
@login_required
@require_GET
def sales_list(request):
    form = SalesFilterForm({
        "page": request.GET.get("page") or None,
        "limit": request.GET.get("limit") or None,
        "search": request.GET.get("search", ""),
        "from_date": request.GET.get("fromDate") or None,
        "to_date": request.GET.get("toDate") or None,
        "period": request.GET.get("period") or "today",
    })
    if not form.is_valid():
        return _form_error(form)

    params = form.cleaned_data
    try:
        result = services.sales_records(
            period=params["period"],
            from_date=params["from_date"],
            to_date=params["to_date"],
            search=params["search"],
            page=params["page"] or 1,
            limit=params["limit"],
        )
    except Exception:
        logger.exception("Error fetching sales")
        return _error("Failed to fetch sales data", 500)

    result["customers"] = [_customer_summary(customer) for customer in result["customers"]]
    return JsonResponse({"success": True, **result})


# =======================
# 🔹 PAYMENTS
# =======================
@login_required
@require_POST
def payment_create(request):
    body = _json_body(request)
    if body is None:
        return _error("Invalid JSON body.", 400)

    form = PaymentForm({
        "sale_id": body.get("saleId") or "",
        "amount": body.get("amount") or "",
        "note": body.get("note") or "",
        "received_by": body.get("receivedBy") or "",
        "day_of_stay": body.get("dayOfStay") or None,
        "payment_method": body.get("paymentMethod") or "",
    })
    if not form.is_valid():
        return _form_error(form)

    data = form.cleaned_data
    try:
        payment, error = services.record_payment(
            data["sale_id"],
            data["amount"],
            note=data["note"],
            received_by=data["received_by"] or request.user.get_username(),
            day_of_stay=data["day_of_stay"],
            payment_method=data["payment_method"],
        )
    except ValidationError as e:
        return _error(e.messages[0], 400)
    except Exception:
        logger.exception("Error processing payment")
        return _error("Failed to process payment", 500)

    if error:
        return _payment_error(error)

    booking = payment.booking
    return JsonResponse({
        "success": True,
        "data": {
            "payment": {
                "id": payment.pk,
                "amount": float(payment.amount),
                "dayOfStay": payment.day_of_stay,
                "note": payment.note,
            },
            "booking": {
                "id": str(booking.pk),
                "paidAmount": float(booking.paid_amount),
                "outstandingAmount": float(booking.outstanding_amount),
                "paymentStatus": booking.payment_status,
                "status": booking.status,
                "dailyPayments": [
                    {
                        "dayOfStay": day.day_of_stay,
                        "amount": float(day.amount),
                        "paidAmount": float(day.paid_amount),
                        "outstandingAmount": float(day.outstanding_amount),
                        "isPaid": day.is_paid,
                    }
                    for day in booking.daily_payments.all()
                ],
            },
        },
        "message": "Payment recorded successfully",
    })


@login_required
@require_POST
def bulk_payment_create(request):
    body = _json_body(request)
    if body is None:
        return _error("Invalid JSON body.", 400)

    form = BulkPaymentForm({
        "normalized_name": body.get("normalizedName") or "",
        "total_amount": body.get("totalAmount") or "",
        "note": body.get("note") or "",
        "received_by": body.get("receivedBy") or "",
    })
    if not form.is_valid():
        return _form_error(form)

    bulk_request = form.to_request()
    try:
        result, error = services.process_bulk_payment(
            bulk_request.normalized_name,
            bulk_request.amount_to_apply,
            note=bulk_request.note,
            received_by=form.cleaned_data["received_by"] or request.user.get_username(),
        )
    except Exception:
        logger.exception("Error processing bulk payment")
        return _error("Failed to process bulk payment", 500)

    if error:
        return _payment_error(error)

    return JsonResponse({
        "success": True,
        **result.as_dict(),
        "message": f"Successfully processed {result.processed_payments} payments",
    })


# =======================
# 🔹 BOOKINGS
# =======================
@login_required
@require_POST
def booking_create(request):
    body = _json_body(request)
    if body is None:
        return _error("Invalid JSON body.", 400)

    form = BookingForm({
        "guest": body.get("guestId"),
        "room": body.get("roomId"),
        "check_in": body.get("checkInDate"),
        "check_out": body.get("checkOutDate"),
        "room_rate": body.get("roomRate"),
        "adults": body.get("adults", 1),
        "children": body.get("children", 0),
        "special_requests": body.get("specialRequests") or "",
        "notes": body.get("notes") or "",
    })
    if not form.is_valid():
        return _form_error(form)

    data = form.cleaned_data
    try:
        booking = services.create_booking(
            data["guest"],
            data["room"],
            data["check_in"],
            data["check_out"],
            room_rate=data["room_rate"],
            adults=data["adults"],
            children=data["children"],
            special_requests=data["special_requests"],
            notes=data["notes"],
            created_by=request.user,
        )
    except ValidationError as e:
        return _error(e.messages[0], 400)
    except Exception:
        logger.exception("Error creating booking")
        return _error("Failed to create booking", 500)

    return JsonResponse({
        "success": True,
        "data": {
            "id": str(booking.pk),
            "bookingNumber": booking.booking_number,
            "totalAmount": str(booking.total_amount),
            "status": booking.status,
        },
        "message": "Booking created successfully",
    }, status=201)
