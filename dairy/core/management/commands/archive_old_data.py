"""
Management command to archive (delete) historical data past a retention period
Usage:
    python manage.py archive_old_data --retention-years 2                 # preview
    python manage.py archive_old_data --retention-years 2 --execute --username owner --pin 123456
    python manage.py archive_old_data --retention-years 0 --execute ...   # factory reset
"""
from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand, CommandError

from dairy.core.archive import preview_archive, execute_archive
from dairy.core.exceptions import DairyError

User = get_user_model()


class Command(BaseCommand):
    help = 'Preview or delete historical data older than a retention period (0 = factory reset)'

    def add_arguments(self, parser):
        parser.add_argument(
            '--retention-years',
            type=int,
            required=True,
            choices=list(settings.ARCHIVE_RETENTION_CHOICES),
            help='Keep this many years of data; 0 deletes everything',
        )
        parser.add_argument(
            '--execute',
            action='store_true',
            help='Actually delete rows (default is a preview)',
        )
        parser.add_argument('--username', help='Super admin running the archive')
        parser.add_argument('--pin', help="The super admin's 6-digit PIN")
        parser.add_argument(
            '--confirm',
            action='store_true',
            help='Skip confirmation prompt',
        )

    def handle(self, *args, **options):
        retention_years = options['retention_years']

        preview = preview_archive(retention_years)
        label = 'FACTORY RESET' if preview['is_factory_reset'] else f'Archive older than {retention_years} year(s)'
        self.stdout.write(f'{label} - cutoff date: {preview["cutoff_date"]}')
        for key, count in preview['counts'].items():
            self.stdout.write(f'  - {key}: {count}')
        self.stdout.write(f'  Total: {preview["total"]}')

        if not options['execute']:
            self.stdout.write(self.style.WARNING('\nPreview only. Re-run with --execute to delete.'))
            return

        if not options['username']:
            raise CommandError('--username is required with --execute')
        try:
            user = User.objects.get(username=options['username'])
        except User.DoesNotExist:
            raise CommandError(f'User "{options["username"]}" not found')

        if not options['confirm']:
            self.stdout.write(self.style.WARNING(f'\n⚠️  WARNING: This will permanently delete {preview["total"]} rows.'))
            confirm = input('Type "YES" to confirm: ')
            if confirm != 'YES':
                self.stdout.write(self.style.ERROR('Operation cancelled.'))
                return

        try:
            result = execute_archive(retention_years, user, options['pin'])
        except DairyError as e:
            raise CommandError(e.message)

        for key, count in result['deleted'].items():
            self.stdout.write(self.style.SUCCESS(f'  ✓ {key}: {count} deleted'))
        for error in result['errors']:
            self.stdout.write(self.style.ERROR(f'  ✗ {error}'))
        self.stdout.write(self.style.SUCCESS(f'\nDone: {result["total_deleted"]} rows deleted (cutoff {result["cutoff_date"]})'))
