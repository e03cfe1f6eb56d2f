"""
Tests for management commands.
"""

from datetime import timedelta
from decimal import Decimal
from io import StringIO

import pytest
from django.core.management import CommandError, call_command
from django.utils import timezone

from forgeman import mes
from forgeman.models import MaterialReservation, StockLedgerEntry
from forgeman.values import Requirement


pytestmark = pytest.mark.django_db


class TestReleaseExpiredReservations:

    @pytest.fixture
    def expired(self, order, steel):
        mes.receive(Decimal('10'), steel)
        mes.reserve(order, [Requirement.of(steel.pk, 5, 'kg')],
                    expires_at=timezone.now() - timedelta(minutes=5))

    def test_dry_run(self, expired):
        out = StringIO()
        call_command('release_expired_reservations', '--dry-run', stdout=out)

        assert '1 reserva(s) seria(m) liberada(s)' in out.getvalue()
        assert MaterialReservation.objects.filter(is_active=True).count() == 1

    def test_release(self, expired):
        out = StringIO()
        call_command('release_expired_reservations', stdout=out)

        assert '1 reserva(s) liberada(s)' in out.getvalue()
        assert MaterialReservation.objects.filter(is_active=True).count() == 0


class TestVerifyLedger:

    def test_consistent(self, running_order):
        out = StringIO()
        call_command('verify_ledger', stdout=out)

        assert 'sem divergência' in out.getvalue()

    def test_single_product(self, steel):
        mes.receive(Decimal('10'), steel)
        out = StringIO()
        call_command('verify_ledger', '--product', steel.sku, stdout=out)

        assert '1 fluxo(s)' in out.getvalue()

    def test_mismatch_fails(self, steel):
        entry = mes.receive(Decimal('10'), steel)
        mes.receive(Decimal('5'), steel)
        # Simulate corruption behind the model's back
        StockLedgerEntry.objects.filter(pk=entry.pk).update(running_balance=Decimal('11'))

        err = StringIO()
        with pytest.raises(CommandError):
            call_command('verify_ledger', stderr=err)

        assert f'lançamento={entry.pk}' in err.getvalue()

    def test_unknown_product(self):
        with pytest.raises(CommandError):
            call_command('verify_ledger', '--product', 'nao-existe')
