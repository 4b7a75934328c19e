import json

from django.core.management.base import BaseCommand, CommandError
from django.core.serializers.json import DjangoJSONEncoder

from dairy.core.exceptions import DairyError
from dairy.reports.backup import BACKUP_PERIODS, build_backup


class Command(BaseCommand):
    help = 'Writes a JSON backup of dairy data for this week, this month or everything'

    def add_arguments(self, parser):
        parser.add_argument(
            '--period',
            choices=BACKUP_PERIODS,
            default='monthly',
            help='Period to export (default: monthly)',
        )
        parser.add_argument(
            '--output',
            type=str,
            help='File to write. Prints to stdout when omitted',
        )

    def handle(self, *args, **options):
        try:
            backup = build_backup(options['period'])
        except DairyError as e:
            raise CommandError(e.message)

        payload = json.dumps(backup, cls=DjangoJSONEncoder, indent=2)
        if options['output']:
            with open(options['output'], 'w', encoding='utf-8') as fh:
                fh.write(payload)
            counts = backup['metadata']['record_counts']
            self.stdout.write(self.style.SUCCESS(
                f"Backup written to {options['output']} ({sum(counts.values())} records in {len(counts)} tables)"
            ))
        else:
            self.stdout.write(payload)
