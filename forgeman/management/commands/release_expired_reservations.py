"""
Management command to release expired material reservations.

Usage:
    python manage.py release_expired_reservations
    python manage.py release_expired_reservations --dry-run
"""

from django.core.management.base import BaseCommand

from forgeman import mes
from forgeman.models import MaterialReservation


class Command(BaseCommand):
    """Release expired reservations command."""

    help = 'Libera reservas de material expiradas'

    def add_arguments(self, parser):
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Mostra o que seria liberado sem executar'
        )

    def handle(self, *args, **options):
        if options['dry_run']:
            expired = MaterialReservation.objects.expired().count()
            self.stdout.write(f'{expired} reserva(s) seria(m) liberada(s)')
        else:
            count = mes.release_expired()
            self.stdout.write(
                self.style.SUCCESS(f'{count} reserva(s) liberada(s)')
            )
