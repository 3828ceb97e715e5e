"""
Django Management Command: Look up an error report by correlation id

Users of the anonymous error page only see a short code such as "3fa9c".
This command finds the matching log line(s) so the failure can be read in
full.

Usage:
    python manage.py errorguard_lookup 3fa9c
    python manage.py errorguard_lookup 3fa9c --file errorguard.log
"""

import re
from pathlib import Path

from django.conf import settings
from django.core.management.base import BaseCommand, CommandError

from errorguard.conf import get_setting


CORRELATION_ID = re.compile(r'^[0-9a-f]{5}$')


class Command(BaseCommand):
    help = 'Find the log lines written for an error correlation id'

    def add_arguments(self, parser):
        parser.add_argument(
            'correlation_id',
            help='The 5-character code shown on the error page',
        )
        parser.add_argument(
            '--file',
            type=str,
            default=None,
            help='Log file name inside LOGS_DIR (default: the LOG_FILE setting)',
        )

    def handle(self, *args, **options):
        correlation_id = options['correlation_id'].strip().lower()
        if not CORRELATION_ID.match(correlation_id):
            raise CommandError(
                f'Not a correlation id: {options["correlation_id"]!r} '
                '(expected 5 hexadecimal characters)'
            )

        logs_dir = getattr(settings, 'LOGS_DIR', None)
        if logs_dir is None or not Path(logs_dir).exists():
            raise CommandError(f'Logs directory does not exist: {logs_dir}')
        logs_dir = Path(logs_dir)

        filename = options['file'] or get_setting('LOG_FILE')
        # Rotated files are named errorguard.log.1, errorguard.log.2, ...
        log_files = sorted(logs_dir.glob(f'{filename}*'))
        if not log_files:
            raise CommandError(f'Log file not found: {logs_dir / filename}')

        marker = f'[{correlation_id}]'
        matches = 0
        for log_file in log_files:
            with open(log_file, 'r', encoding='utf-8', errors='replace') as f:
                for line in f:
                    if line.rstrip().endswith(marker):
                        self.stdout.write(f'{log_file.name}: {line.rstrip()}')
                        matches += 1

        if matches == 0:
            self.stdout.write(
                self.style.WARNING(f'No log line found for {correlation_id}')
            )
        else:
            self.stdout.write(
                self.style.SUCCESS(f'{matches} line(s) found for {correlation_id}')
            )
