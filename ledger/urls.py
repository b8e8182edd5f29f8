from django.urls import path
from . import views

urlpatterns = [
    # =======================
    # 🔹 Sales ledger
    # =======================
    path('sales/', views.sales_list, name='sales_list'),

    # =======================
    # 🔹 Payments
    # =======================
    path('payments/', views.payment_create, name='payment_create'),
    path('payments/bulk/', views.bulk_payment_create, name='bulk_payment_create'),

    # =======================
    # 🔹 Bookings
    # =======================
    path('bookings/', views.booking_create, name='booking_create'),
]
