"""
Django management command to run the courier notification listener.

Usage:
    python manage.py consume_notifications
    python manage.py consume_notifications --courier <uuid> --courier <uuid>

Without --courier, listens for every courier holding an open rental and
picks up couriers who start renting while it runs, so it also starts on
an empty fleet. SIGINT/SIGTERM finish the in-flight message before exiting.
"""
import signal

from django.core.management.base import BaseCommand

from core.ledger import LedgerStore
from logistics.messaging import get_connection
from logistics.notifications import NotificationListener


class Command(BaseCommand):
    help = 'Drain courier notification queues and record offer receipts'

    def add_arguments(self, parser):
        parser.add_argument(
            '--courier',
            action='append',
            dest='couriers',
            default=[],
            help='Courier id to listen for (repeatable; disables following new rentals)',
        )

    def handle(self, *args, **options):
        courier_ids = options['couriers'] or None

        with get_connection() as connection:
            listener = NotificationListener(connection, courier_ids, ledger=LedgerStore)

            def stop(signum, frame):
                self.stdout.write('Stopping after the current message...')
                listener.should_stop = True

            signal.signal(signal.SIGINT, stop)
            signal.signal(signal.SIGTERM, stop)

            if listener.follow_rentals:
                self.stdout.write(self.style.SUCCESS(
                    f'Listening for {len(listener.courier_ids)} renting couriers (following new rentals)'
                ))
            else:
                self.stdout.write(self.style.SUCCESS(
                    f'Listening for {len(listener.courier_ids)} couriers'
                ))
            listener.run()

        self.stdout.write(self.style.SUCCESS('Listener stopped'))
