from datetime import date, timedelta

from django.core.management.base import BaseCommand, CommandError
from django.utils import timezone

from dairy.core.utils import create_audit_log
from dairy.deliveries.scheduler import run_auto_deliver, schedule_deliveries_for_range


class Command(BaseCommand):
    help = 'Marks today\'s subscription deliveries as delivered, creating the missing ones (run daily from cron)'

    def add_arguments(self, parser):
        parser.add_argument(
            '--date',
            type=str,
            help='Date to process (YYYY-MM-DD). Defaults to today',
        )
        parser.add_argument(
            '--days',
            type=int,
            default=1,
            help='Number of consecutive days to process starting at --date',
        )
        parser.add_argument(
            '--schedule-only',
            action='store_true',
            help='Only create pending deliveries, do not mark anything delivered',
        )

    def handle(self, *args, **options):
        if options['date']:
            try:
                start = date.fromisoformat(options['date'])
            except ValueError:
                raise CommandError(f"Invalid date: {options['date']}. Use YYYY-MM-DD")
        else:
            start = timezone.localdate()

        days = options['days']
        if days < 1 or days > 31:
            raise CommandError('--days must be between 1 and 31')

        if options['schedule_only']:
            results = schedule_deliveries_for_range(start, days)
            for result in results:
                self.stdout.write(f"{result['date']}: scheduled {result['scheduled']}, skipped {result['skipped']}")
                for error in result['errors']:
                    self.stdout.write(self.style.ERROR(f"  - {error}"))
            self.stdout.write(self.style.SUCCESS(
                f"Scheduled {sum(r['scheduled'] for r in results)} deliveries over {days} day(s)"
            ))
            return

        for offset in range(days):
            result = run_auto_deliver(start + timedelta(days=offset))
            self.stdout.write(
                f"{result['date']}: scheduled {result['scheduled']}, delivered {result['delivered']}, "
                f"skipped {result['skipped']}"
            )
            for error in result['errors']:
                self.stdout.write(self.style.ERROR(f"  - {error}"))
            create_audit_log(action='auto_deliver', model_name='Delivery', object_id=0,
                             object_reference=str(result['date']),
                             changes={k: result[k] for k in ('scheduled', 'delivered', 'skipped')})

        self.stdout.write(self.style.SUCCESS("Auto-deliver complete."))
