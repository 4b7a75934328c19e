from django.core.management.base import BaseCommand
from django.db import transaction

from dairy.customers.ledger import (
    calculate_balance, recalculate_ledger_balances, sync_customer_balance, sync_invoices_to_ledger,
)
from dairy.customers.models import Customer
from dairy.core.utils import create_audit_log


class Command(BaseCommand):
    help = 'Posts missing invoice debits, recalculates running balances and repairs customer balances'

    def add_arguments(self, parser):
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Perform a dry run without saving changes',
        )
        parser.add_argument(
            '--customer',
            type=int,
            help='Only repair this customer ID',
        )

    def handle(self, *args, **options):
        dry_run = options['dry_run']
        if dry_run:
            self.stdout.write(self.style.WARNING("DRY RUN MODE: No changes will be saved."))

        customers = Customer.objects.all().order_by('id')
        if options['customer']:
            customers = customers.filter(pk=options['customer'])
        self.stdout.write(f"Starting balance repair for {customers.count()} customers...")

        repaired = 0
        with transaction.atomic():
            for c in customers:
                self.stdout.write(f"\nProcessing Customer: {c.name} (ID: {c.id})")

                sync_result = sync_invoices_to_ledger(customer=c)
                if sync_result['created']:
                    self.stdout.write(self.style.NOTICE(f"  - Posted {sync_result['created']} missing invoice debits"))
                for error in sync_result['errors']:
                    self.stdout.write(self.style.ERROR(f"  - {error}"))

                recalculate_ledger_balances(c)
                new_balance = calculate_balance(c)['balance']
                if c.credit_balance != new_balance:
                    self.stdout.write(self.style.SUCCESS(f"  - Balance Update: {c.credit_balance} -> {new_balance}"))
                    sync_customer_balance(c.pk)
                    repaired += 1
                else:
                    self.stdout.write(f"  - Balance Correct: {new_balance}")

            if dry_run:
                self.stdout.write(self.style.WARNING("\nDry run complete. Rolling back changes."))
                transaction.set_rollback(True)
            else:
                create_audit_log(action='balance_repair', model_name='Customer', object_id='all',
                                 changes={'repaired': repaired})
                self.stdout.write(self.style.SUCCESS(f"\nBalance repair complete and committed ({repaired} customers updated)."))
