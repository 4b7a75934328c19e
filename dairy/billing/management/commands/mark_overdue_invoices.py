from django.core.management.base import BaseCommand

from dairy.billing.services import mark_overdue_invoices


class Command(BaseCommand):
    help = 'Stores the overdue status on unpaid invoices past their due date'

    def handle(self, *args, **options):
        updated = mark_overdue_invoices()
        self.stdout.write(self.style.SUCCESS(f"Marked {updated} invoices as overdue."))
