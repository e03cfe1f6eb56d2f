"""
Tests for material reservations.
"""

from datetime import timedelta
from decimal import Decimal

import pytest
from django.utils import timezone

from forgeman import mes
from forgeman.exceptions import (
    BusinessRuleViolationError,
    EntityNotFoundError,
    InsufficientStockError,
    ValidationError,
)
from forgeman.models import MaterialReservation, Product, ProductType, StockLedgerEntry, TransactionType
from forgeman.values import Requirement


pytestmark = pytest.mark.django_db


@pytest.fixture
def part(db):
    part = Product.objects.create(sku='p', name='P', unit='un', product_type=ProductType.RAW_MATERIAL)
    mes.receive(Decimal('100'), part)
    return part


@pytest.fixture
def second_order(frame, bom, user):
    return mes.create_order(frame, Decimal('1'), reference='MO-TESTE-0002', user=user)


class TestReserve:

    def test_reservation_does_not_touch_ledger(self, order, second_order, part):
        result = mes.reserve(order, [Requirement.of(part.pk, 40, 'un')])

        assert result.total_reserved == Decimal('40')
        assert mes.current_balance(part) == Decimal('100')
        assert [r.reserved_quantity for r in mes.active_reservations(order)] == [Decimal('40')]

    def test_second_order_sees_remaining_availability(self, order, second_order, part):
        mes.reserve(order, [{'product_id': part.pk, 'quantity': 40, 'unit': 'un'}])

        with pytest.raises(InsufficientStockError) as exc:
            mes.reserve(second_order, [{'product_id': part.pk, 'quantity': 70, 'unit': 'un'}])

        assert exc.value.data['product_id'] == part.pk
        assert exc.value.requested == Decimal('70')
        assert exc.value.available == Decimal('60')
        assert not mes.active_reservations(second_order).exists()

    def test_all_or_nothing(self, order, user):
        parts = []
        for i, stock in enumerate([50, 50, 5, 50, 50]):
            part = Product.objects.create(sku=f'peca-{i}', name=f'Peça {i}', unit='un')
            mes.receive(Decimal(stock), part)
            parts.append(part)

        requirements = [Requirement.of(p.pk, 10, 'un') for p in parts]
        with pytest.raises(InsufficientStockError) as exc:
            mes.reserve(order, requirements, user=user)

        assert exc.value.data['product_id'] == parts[2].pk
        assert MaterialReservation.objects.filter(order=order).count() == 0

    def test_re_reserve_is_idempotent(self, order, part):
        mes.reserve(order, [Requirement.of(part.pk, 40, 'un')])
        mes.reserve(order, [Requirement.of(part.pk, 40, 'un')])

        assert MaterialReservation.objects.filter(order=order).count() == 1
        assert mes.reserved_quantity(part) == Decimal('40')

    def test_re_reserve_can_grow_within_availability(self, order, part):
        mes.reserve(order, [Requirement.of(part.pk, 40, 'un')])
        mes.reserve(order, [Requirement.of(part.pk, 100, 'un')])

        assert mes.available_to_reserve(part) == Decimal('0')

    def test_duplicate_requirements_are_merged(self, order, part):
        result = mes.reserve(order, [
            Requirement.of(part.pk, 30, 'un'),
            Requirement.of(part.pk, 20, 'un'),
        ])

        assert len(result.reservations) == 1
        assert result.total_reserved == Decimal('50')

    def test_empty_requirements(self, order):
        with pytest.raises(ValidationError):
            mes.reserve(order, [])

    def test_malformed_requirement(self, order):
        with pytest.raises(ValidationError):
            mes.reserve(order, [{'quantity': 1}])

    def test_terminal_order_cannot_reserve(self, order, part):
        mes.cancel_order(order, reason='Pedido cancelado')

        with pytest.raises(BusinessRuleViolationError):
            mes.reserve(order, [Requirement.of(part.pk, 1, 'un')])

    def test_ttl_from_settings(self, settings, order, part):
        settings.FORGEMAN = {'RESERVATION_TTL_MINUTES': 30}
        result = mes.reserve(order, [Requirement.of(part.pk, 1, 'un')])

        assert result.reservations[0].expires_at > timezone.now() + timedelta(minutes=29)


class TestCeiling:

    def test_reserved_never_exceeds_balance(self, order, second_order, part):
        mes.reserve(order, [Requirement.of(part.pk, 60, 'un')])
        mes.reserve(second_order, [Requirement.of(part.pk, 40, 'un')])

        assert mes.reserved_quantity(part) <= mes.current_balance(part)
        assert mes.available_to_reserve(part) == Decimal('0')
        with pytest.raises(InsufficientStockError):
            mes.issue(Decimal('1'), part)


class TestAllocate:

    def test_allocate_moves_reserved_to_allocated(self, order, part, user):
        mes.reserve(order, [Requirement.of(part.pk, 40, 'un')])
        entry = mes.allocate(order, part, Decimal('15'), user=user)

        reservation = mes.active_reservations(order).get()
        assert reservation.reserved_quantity == Decimal('25')
        assert reservation.allocated_quantity == Decimal('15')
        assert entry.transaction_type == TransactionType.PRODUCTION_ISSUE
        assert entry.reference_id == str(order.pk)
        assert mes.current_balance(part) == Decimal('85')

    def test_allocate_more_than_reserved(self, order, part):
        mes.reserve(order, [Requirement.of(part.pk, 10, 'un')])

        with pytest.raises(ValidationError) as exc:
            mes.allocate(order, part, Decimal('11'))

        assert exc.value.available == Decimal('10')
        assert not StockLedgerEntry.objects.filter(
            product=part, transaction_type=TransactionType.PRODUCTION_ISSUE,
        ).exists()

    def test_allocate_without_reservation(self, order, part):
        with pytest.raises(EntityNotFoundError):
            mes.allocate(order, part, Decimal('1'))

    def test_allocate_by_ids(self, order, part):
        mes.reserve(order.pk, [Requirement.of(part.pk, 40, 'un')])
        entry = mes.allocate(order.pk, part.pk, Decimal('5'))

        assert entry.reference_id == str(order.pk)
        assert entry.notes == f"Consumo {order.reference}"
        assert mes.active_reservations(order).get().allocated_quantity == Decimal('5')
        assert mes.current_balance(part) == Decimal('95')

    def test_allocate_unknown_order(self, part):
        with pytest.raises(EntityNotFoundError):
            mes.allocate(999999, part.pk, Decimal('1'))

    def test_re_reserve_after_allocation(self, order, part):
        mes.reserve(order, [Requirement.of(part.pk, 40, 'un')])
        mes.allocate(order, part, Decimal('15'))
        mes.reserve(order, [Requirement.of(part.pk, 40, 'un')])

        reservation = mes.active_reservations(order).get()
        assert reservation.reserved_quantity == Decimal('25')
        assert reservation.allocated_quantity == Decimal('15')


class TestRelease:

    def test_release_writes_no_ledger_entries(self, order, part, user):
        mes.reserve(order, [Requirement.of(part.pk, 40, 'un')])
        before = StockLedgerEntry.objects.count()

        assert mes.release(order, user=user, reason='Replanejado') == 1
        assert StockLedgerEntry.objects.count() == before
        assert mes.available_to_reserve(part) == Decimal('100')

        reservation = MaterialReservation.objects.get(order=order)
        assert reservation.is_active is False
        assert reservation.released_by == user
        assert reservation.release_reason == 'Replanejado'

    def test_release_single_product(self, confirmed_order, steel, screw):
        assert mes.release(confirmed_order, steel) == 1

        assert [r.product_id for r in mes.active_reservations(confirmed_order)] == [screw.pk]

    def test_release_twice_is_safe(self, order, part):
        mes.reserve(order, [Requirement.of(part.pk, 1, 'un')])

        assert mes.release(order) == 1
        assert mes.release(order) == 0


class TestExpiry:

    def test_expired_reservation_stops_counting(self, order, second_order, part):
        mes.reserve(order, [Requirement.of(part.pk, 90, 'un')],
                    expires_at=timezone.now() - timedelta(minutes=1))

        assert mes.available_to_reserve(part) == Decimal('100')
        mes.reserve(second_order, [Requirement.of(part.pk, 100, 'un')])

    def test_release_expired(self, order, second_order, part):
        mes.reserve(order, [Requirement.of(part.pk, 10, 'un')],
                    expires_at=timezone.now() - timedelta(minutes=1))
        mes.reserve(second_order, [Requirement.of(part.pk, 10, 'un')])

        assert mes.release_expired() == 1
        assert MaterialReservation.objects.filter(is_active=True).count() == 1
        assert mes.release_expired() == 0
