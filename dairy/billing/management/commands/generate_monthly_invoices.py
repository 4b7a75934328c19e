from django.core.management.base import BaseCommand, CommandError
from django.db import transaction
from django.utils import timezone

from dairy.billing.services import generate_monthly_invoices
from dairy.core.utils import create_audit_log


class Command(BaseCommand):
    help = 'Generates invoices for every active customer from the delivered items of a month'

    def add_arguments(self, parser):
        parser.add_argument('--year', type=int, help='Billing year (defaults to the previous month\'s year)')
        parser.add_argument('--month', type=int, help='Billing month 1-12 (defaults to the previous month)')
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Show what would be generated without saving',
        )

    def handle(self, *args, **options):
        today = timezone.localdate()
        default_year, default_month = (today.year, today.month - 1) if today.month > 1 else (today.year - 1, 12)
        year = options['year'] or default_year
        month = options['month'] or default_month
        if not 1 <= month <= 12:
            raise CommandError(f'Invalid month: {month}')

        dry_run = options['dry_run']
        if dry_run:
            self.stdout.write(self.style.WARNING("DRY RUN MODE: No changes will be saved."))

        self.stdout.write(f"Generating invoices for {year}-{month:02d}...")
        with transaction.atomic():
            result = generate_monthly_invoices(year, month)

            for invoice in result['invoices']:
                self.stdout.write(f"  - {invoice['invoice_number']}: {invoice['customer_name']} ({invoice['amount']})")
            for error in result['errors']:
                self.stdout.write(self.style.ERROR(f"  - {error}"))

            if dry_run:
                transaction.set_rollback(True)
                self.stdout.write(self.style.WARNING(
                    f"\nDry run complete: {result['generated']} invoices would be generated, {result['skipped']} skipped."
                ))
                return

        create_audit_log(action='invoice_create', model_name='Invoice', object_id=0,
                         object_reference=f"{year}-{month:02d}",
                         changes={'generated': result['generated'], 'skipped': result['skipped'],
                                  'total_amount': str(result['total_amount'])})
        self.stdout.write(self.style.SUCCESS(
            f"\nGenerated {result['generated']} invoices totalling {result['total_amount']} ({result['skipped']} skipped)."
        ))
