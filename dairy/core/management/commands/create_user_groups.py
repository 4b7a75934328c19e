from django.core.management.base import BaseCommand
from django.contrib.auth.models import Group, Permission


class Command(BaseCommand):
    help = 'Create Django user groups for RBAC: SuperAdmin, Manager, Accountant, DeliveryStaff, FarmWorker, Auditor'

    def handle(self, *args, **options):
        groups_config = [
            {
                'name': 'SuperAdmin',
                'description': 'Dairy owner - full access including settings, users and data archival',
                'permissions': '*',
            },
            {
                'name': 'Manager',
                'description': 'Runs daily operations - customers, deliveries, billing, procurement, expenses',
                'apps': ['catalog', 'customers', 'deliveries', 'billing', 'procurement', 'expenses'],
            },
            {
                'name': 'Accountant',
                'description': 'Invoices, payments, ledger, vendor payments and expenses',
                'apps': ['billing', 'customers', 'procurement', 'expenses'],
            },
            {
                'name': 'DeliveryStaff',
                'description': 'Marks deliveries and records add-on orders',
                'apps': ['deliveries'],
            },
            {
                'name': 'FarmWorker',
                'description': 'Records milk procurement from vendors',
                'apps': ['procurement'],
            },
            {
                'name': 'Auditor',
                'description': 'Read-only access to every module and the audit trail',
                'view_only': True,
            },
        ]

        created_count = 0
        updated_count = 0

        for group_config in groups_config:
            group, created = Group.objects.get_or_create(name=group_config['name'])

            if created:
                self.stdout.write(self.style.SUCCESS(f'✓ Created group: {group_config["name"]}'))
                created_count += 1
            else:
                self.stdout.write(f'  Group already exists: {group_config["name"]}')
                updated_count += 1

            if group_config.get('permissions') == '*':
                group.permissions.set(Permission.objects.all())
                self.stdout.write(f'  Added all permissions to {group_config["name"]} group')
            elif group_config.get('view_only'):
                group.permissions.set(Permission.objects.filter(codename__startswith='view_'))
                self.stdout.write(f'  Added view permissions to {group_config["name"]} group')
            else:
                group.permissions.set(
                    Permission.objects.filter(content_type__app_label__in=group_config['apps'])
                )
                self.stdout.write(f'  Added {", ".join(group_config["apps"])} permissions to {group_config["name"]} group')

        self.stdout.write(self.style.SUCCESS(
            f'\nCompleted: {created_count} groups created, {updated_count} groups already existed'
        ))
