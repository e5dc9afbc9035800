"""
Management command: date-driven project status sweep.

Usage:
    python manage.py update_project_statuses
    python manage.py update_project_statuses --dry-run --detailed
"""
from django.core.management.base import BaseCommand

from projects.services import ProjectService


class Command(BaseCommand):
    help = 'Complete expired projects and activate projects whose start date has arrived'

    def add_arguments(self, parser):
        parser.add_argument('--dry-run', action='store_true', help='Show what would change without saving')
        parser.add_argument('--detailed', action='store_true', help='List every affected project')

    def handle(self, *args, **options):
        dry_run = options['dry_run']
        detailed = options['detailed']

        if dry_run:
            self.stdout.write(self.style.WARNING('DRY RUN: no changes will be saved'))

        report = ProjectService.update_statuses_by_date(dry_run=dry_run)

        self.stdout.write(f'Completed: {len(report["completed"])}')
        if detailed:
            for label in report['completed']:
                self.stdout.write(f'  - {label}')

        self.stdout.write(f'Activated: {len(report["activated"])}')
        if detailed:
            for label in report['activated']:
                self.stdout.write(f'  - {label}')

        self.stdout.write(f'Not ready: {len(report["not_ready"])}')
        if detailed:
            for item in report['not_ready']:
                self.stdout.write(f'  - {item["project"]}: {"; ".join(item["reasons"])}')

        if report['errors']:
            for item in report['errors']:
                self.stderr.write(self.style.ERROR(f'  ! {item["project"]}: {item["error"]}'))
            self.stdout.write(self.style.WARNING(f'Finished with {len(report["errors"])} error(s)'))
        else:
            self.stdout.write(self.style.SUCCESS('Project statuses updated'))
