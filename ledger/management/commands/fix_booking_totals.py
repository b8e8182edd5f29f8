from decimal import Decimal

from django.core.management.base import BaseCommand
from django.db import transaction
from ledger.models import Booking


class Command(BaseCommand):
    help = 'Fix booking total_nights/total_amount values that disagree with dates and room rate'

    def add_arguments(self, parser):
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Show what would be updated without making changes',
        )

    def handle(self, *args, **options):
        dry_run = options['dry_run']

        if dry_run:
            self.stdout.write("DRY RUN MODE - No changes will be made")

        updated_count = 0
        issues = []

        for booking in Booking.objects.select_related('guest', 'room'):
            nights = booking.compute_total_nights()
            computed_total = booking.compute_total_amount()

            if booking.total_nights == nights and booking.total_amount == computed_total:
                continue

            issues.append({
                'booking_number': booking.booking_number,
                'guest': booking.guest.name,
                'nights': nights,
                'room_rate': booking.room_rate,
                'old_total': booking.total_amount,
                'new_total': computed_total,
            })

            if not dry_run:
                with transaction.atomic():
                    booking.total_nights = nights
                    booking.total_amount = computed_total
                    booking.set_paid_amount(booking.paid_amount or Decimal("0.00"))
                    booking.save(update_fields=[
                        'total_nights', 'total_amount', 'outstanding_amount', 'payment_status', 'status',
                    ])
                    booking.daily_payments.all().delete()
                updated_count += 1

        if not issues:
            self.stdout.write(self.style.SUCCESS("All booking totals are correct."))
            return

        self.stdout.write(f"\nFound {len(issues)} bookings with incorrect totals:")
        for item in issues:
            self.stdout.write(
                f"Booking {item['booking_number']} ({item['guest']}): "
                f"{item['nights']} nights × {item['room_rate']} = {item['new_total']} "
                f"(was: {item['old_total']})"
            )

        if dry_run:
            self.stdout.write(
                self.style.WARNING(f"\nWould update {len(issues)} bookings. Run without --dry-run to apply changes.")
            )
        else:
            self.stdout.write(self.style.SUCCESS(f"\nUpdated {updated_count} booking totals."))
