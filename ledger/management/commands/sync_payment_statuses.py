from django.core.management.base import BaseCommand
from django.db import transaction
from ledger.models import Booking
from ledger.services import check_booking_balance, sync_booking_balance


class Command(BaseCommand):
    help = 'Rebuild stored paid/outstanding amounts and payment statuses from recorded payments'

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

        bookings = Booking.objects.select_related('guest').prefetch_related('payments')
        updated_count = 0
        inconsistencies = []

        for booking in bookings:
            check = check_booking_balance(booking)
            if check['is_consistent']:
                continue

            inconsistencies.append({**check, 'guest': booking.guest.name})
            if not dry_run:
                with transaction.atomic():
                    sync_booking_balance(booking)
                updated_count += 1

        if not inconsistencies:
            self.stdout.write(self.style.SUCCESS("All payment statuses are consistent."))
            return

        self.stdout.write(f"\nFound {len(inconsistencies)} balance inconsistencies:")
        for item in inconsistencies:
            self.stdout.write(
                f"Booking {item['booking_number']} ({item['guest']}): "
                f"paid {item['stored_paid']} → {item['expected_paid']}, "
                f"outstanding {item['stored_outstanding']} → {item['expected_outstanding']}, "
                f"{item['current_status']} → {item['expected_status']}"
            )

        if dry_run:
            self.stdout.write(
                self.style.WARNING(f"\nWould update {len(inconsistencies)} bookings. Run without --dry-run to apply changes.")
            )
        else:
            self.stdout.write(self.style.SUCCESS(f"\nUpdated {updated_count} booking balances."))
