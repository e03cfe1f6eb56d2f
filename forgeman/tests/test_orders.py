"""
Tests for the manufacturing order lifecycle.
"""

from datetime import timedelta
from decimal import Decimal

import pytest
from django.core.exceptions import ImproperlyConfigured
from django.utils import timezone

from forgeman import mes
from forgeman.exceptions import (
    BusinessRuleViolationError,
    ConcurrencyError,
    DuplicateEntityError,
    InsufficientStockError,
    InvalidStatusTransitionError,
    ValidationError,
)
from forgeman.models import (
    ManufacturingOrder,
    MaterialReservation,
    OrderStatus,
    StockLedgerEntry,
    TransactionType,
    WorkOrderStatus,
)
from forgeman.transitions import ORDER_ACTION_TARGETS, ORDER_TRANSITIONS, next_order_status


pytestmark = pytest.mark.django_db


def _finish_work_orders(order):
    for work_order in order.work_orders.order_by('sequence'):
        mes.start_work_order(work_order)
        mes.complete_work_order(work_order, actual_duration=10)


class TestCreateOrder:

    def test_creates_draft(self, frame, user):
        order = mes.create_order(frame, 5, user=user)

        assert order.status == OrderStatus.DRAFT
        assert order.unit == 'un'
        assert order.version == 1
        assert order.reference.startswith('MO-')

    def test_reference_prefix_setting(self, settings, frame):
        settings.FORGEMAN = {'REFERENCE_PREFIX': 'OP'}

        assert mes.create_order(frame, 1).reference.startswith('OP-')

    def test_duplicate_reference(self, order, frame):
        with pytest.raises(DuplicateEntityError):
            mes.create_order(frame, 1, reference=order.reference)

    def test_raw_material_cannot_be_manufactured(self, steel):
        with pytest.raises(BusinessRuleViolationError):
            mes.create_order(steel, 1)

    def test_quantity_must_be_positive(self, frame):
        with pytest.raises(ValidationError):
            mes.create_order(frame, 0)

    def test_bom_of_other_product(self, bom):
        from forgeman.models import Product, ProductType

        other = Product.objects.create(sku='garfo', name='Garfo', product_type=ProductType.FINISHED_GOOD)
        with pytest.raises(ValidationError):
            mes.create_order(other, 1, bom=bom)


class TestBindBom:

    def test_bind_once(self, frame, bom):
        order = mes.create_order(frame, 1)
        order = mes.bind_bom(order, bom)

        assert order.bom == bom
        assert mes.bind_bom(order, bom).bom == bom

    def test_cannot_rebind(self, frame, bom):
        from forgeman.models import BillOfMaterials

        other = BillOfMaterials.objects.create(product=frame, name='Outra', version='2')
        order = mes.create_order(frame, 1, bom=bom)

        with pytest.raises(BusinessRuleViolationError):
            mes.bind_bom(order, other)


class TestConfirm:

    def test_confirm_reserves_materials(self, order, stocked, steel, screw):
        order = mes.confirm_order(order)

        assert order.status == OrderStatus.CONFIRMED
        assert order.version == 2
        reserved = {r.product_id: r.reserved_quantity for r in mes.active_reservations(order)}
        assert reserved == {steel.pk: Decimal('26'), screw.pk: Decimal('40')}
        assert mes.current_balance(steel) == Decimal('100')

    def test_confirm_binds_default_bom(self, order, stocked, bom):
        assert mes.confirm_order(order).bom == bom

    def test_confirm_generates_chained_work_orders(self, order, stocked):
        order = mes.confirm_order(order)
        cut, assemble = order.work_orders.order_by('sequence')

        assert cut.reference == f'{order.reference}-10'
        assert cut.estimated_duration == 30
        assert list(cut.dependencies.all()) == []
        assert list(assemble.dependencies.all()) == [cut]

    def test_confirm_without_stock_stays_draft(self, order, steel, screw):
        mes.receive(Decimal('100'), steel)

        with pytest.raises(InsufficientStockError) as exc:
            mes.confirm_order(order)

        assert exc.value.data['product_id'] == screw.pk
        order.refresh_from_db()
        assert order.status == OrderStatus.DRAFT
        assert order.version == 1
        assert not MaterialReservation.objects.filter(order=order).exists()
        assert not order.work_orders.exists()

    def test_confirm_without_bom(self, frame):
        order = mes.create_order(frame, 1)

        with pytest.raises(BusinessRuleViolationError):
            mes.confirm_order(order)

    def test_confirm_twice(self, confirmed_order):
        with pytest.raises(InvalidStatusTransitionError):
            mes.confirm_order(confirmed_order)


class TestStartAndConsumption:

    def test_start_issues_reserved_material(self, confirmed_order, steel):
        order = mes.start_order(confirmed_order)

        assert order.status == OrderStatus.IN_PROGRESS
        assert order.actual_start_date is not None
        assert mes.current_balance(steel) == Decimal('74')
        reservation = mes.active_reservations(order).get(product=steel)
        assert reservation.reserved_quantity == Decimal('0')
        assert reservation.allocated_quantity == Decimal('26')

    def test_on_complete_consumption(self, settings, confirmed_order, steel):
        settings.FORGEMAN = {'CONSUMPTION_MODE': 'on_complete'}

        order = mes.start_order(confirmed_order)
        assert mes.current_balance(steel) == Decimal('100')

        _finish_work_orders(order)
        mes.complete_order(order)
        assert mes.current_balance(steel) == Decimal('74')

    def test_invalid_consumption_mode(self, settings, confirmed_order):
        settings.FORGEMAN = {'CONSUMPTION_MODE': 'sometimes'}

        with pytest.raises(ImproperlyConfigured):
            mes.start_order(confirmed_order)

    def test_start_requires_pending_work_order(self, frame, stocked, steel, user):
        from forgeman.models import BillOfMaterials, BOMComponent

        bom = BillOfMaterials.objects.create(product=frame, name='Sem roteiro', version='x')
        BOMComponent.objects.create(bom=bom, component=steel, quantity=1, unit='kg', sequence=10)
        order = mes.confirm_order(mes.create_order(frame, 1, bom=bom))

        with pytest.raises(BusinessRuleViolationError):
            mes.start_order(order)

    def test_workflow_depth(self, settings, confirmed_order):
        settings.FORGEMAN = {'ORDER_WORKFLOW': 'released'}

        with pytest.raises(InvalidStatusTransitionError):
            mes.start_order(confirmed_order)

        order = mes.plan_order(confirmed_order)
        with pytest.raises(InvalidStatusTransitionError):
            mes.start_order(order)

        order = mes.release_order(order)
        assert mes.start_order(order).status == OrderStatus.IN_PROGRESS

    def test_invalid_workflow_setting(self, settings, confirmed_order):
        settings.FORGEMAN = {'ORDER_WORKFLOW': 'agile'}

        with pytest.raises(ImproperlyConfigured):
            mes.start_order(confirmed_order)

    def test_pause_and_resume(self, running_order):
        order = mes.pause_order(running_order)
        assert order.status == OrderStatus.PAUSED

        with pytest.raises(InvalidStatusTransitionError):
            mes.complete_order(order)

        assert mes.resume_order(order).status == OrderStatus.IN_PROGRESS


def _expire_reservations(order):
    MaterialReservation.objects.filter(order=order).update(
        expires_at=timezone.now() - timedelta(minutes=5),
    )


def _issues(order):
    return StockLedgerEntry.objects.filter(
        transaction_type=TransactionType.PRODUCTION_ISSUE,
        reference_id=str(order.pk),
    )


class TestExpiredReservations:

    @pytest.fixture(autouse=True)
    def short_ttl(self, settings):
        settings.FORGEMAN = {'RESERVATION_TTL_MINUTES': 1}

    def test_start_consumes_expired_holds(self, order, stocked, steel, screw):
        mes.confirm_order(order)
        _expire_reservations(order)

        mes.start_order(order)

        assert _issues(order).count() == 2
        assert mes.current_balance(steel) == Decimal('74')
        assert mes.current_balance(screw) == Decimal('60')

    def test_complete_consumes_expired_holds(self, settings, order, stocked, frame, steel, screw):
        settings.FORGEMAN = {'RESERVATION_TTL_MINUTES': 1, 'CONSUMPTION_MODE': 'on_complete'}
        mes.confirm_order(order)
        mes.start_order(order)
        _expire_reservations(order)

        _finish_work_orders(order)
        mes.complete_order(order)

        assert _issues(order).count() == 2
        assert mes.current_balance(frame) == Decimal('10')
        assert mes.current_balance(steel) == Decimal('74')
        assert mes.current_balance(screw) == Decimal('60')

    def test_expired_hold_taken_by_another_order(self, order, stocked, frame, steel, user):
        mes.confirm_order(order)
        _expire_reservations(order)
        rival = mes.create_order(frame, Decimal('35'), reference='MO-TESTE-0002', user=user)
        mes.reserve(rival, [{'product_id': steel.pk, 'quantity': Decimal('90'), 'unit': 'kg'}])

        with pytest.raises(InsufficientStockError):
            mes.start_order(order)

        order.refresh_from_db()
        assert order.status == OrderStatus.CONFIRMED
        assert not _issues(order).exists()

    def test_swept_holds_block_start_until_reserved_again(self, order, stocked, steel, screw):
        mes.confirm_order(order)
        _expire_reservations(order)
        assert mes.release_expired() == 2

        with pytest.raises(BusinessRuleViolationError) as exc:
            mes.start_order(order)

        assert exc.value.data['expired_products'] == sorted([steel.sku, screw.sku])
        order.refresh_from_db()
        assert order.status == OrderStatus.CONFIRMED
        assert not _issues(order).exists()

        mes.reserve(order, mes.explode(order.bom, order.quantity))
        mes.start_order(order)
        assert mes.current_balance(steel) == Decimal('74')


class TestComplete:

    def test_full_lifecycle(self, running_order, frame, steel, screw):
        _finish_work_orders(running_order)
        order = mes.complete_order(running_order)

        assert order.status == OrderStatus.COMPLETED
        assert order.produced_quantity == Decimal('10')
        assert order.actual_end_date is not None

        receipt = StockLedgerEntry.objects.get(
            product=frame, transaction_type=TransactionType.PRODUCTION_RECEIPT,
        )
        assert receipt.quantity == Decimal('10')
        assert receipt.reference_id == str(order.pk)
        assert mes.current_balance(frame) == Decimal('10')
        assert mes.current_balance(steel) == Decimal('74')
        assert mes.current_balance(screw) == Decimal('60')
        assert not mes.active_reservations(order).exists()

    def test_actual_quantity(self, running_order, frame):
        _finish_work_orders(running_order)
        order = mes.complete_order(running_order, actual_quantity=Decimal('8'))

        assert order.produced_quantity == Decimal('8')
        assert mes.current_balance(frame) == Decimal('8')

    def test_zero_actual_quantity_writes_no_receipt(self, running_order, frame):
        _finish_work_orders(running_order)
        mes.complete_order(running_order, actual_quantity=0)

        assert not StockLedgerEntry.objects.filter(product=frame).exists()

    def test_negative_actual_quantity(self, running_order):
        with pytest.raises(ValidationError):
            mes.complete_order(running_order, actual_quantity=-1)

    def test_open_work_orders_block_completion(self, running_order):
        with pytest.raises(BusinessRuleViolationError):
            mes.complete_order(running_order)

        running_order.refresh_from_db()
        assert running_order.status == OrderStatus.IN_PROGRESS

    def test_needs_one_completed_work_order(self, running_order):
        for work_order in running_order.work_orders.all():
            mes.cancel_work_order(work_order)

        with pytest.raises(BusinessRuleViolationError):
            mes.complete_order(running_order)

    def test_reservations_deactivated(self, running_order, steel):
        reservation = MaterialReservation.objects.get(order=running_order, product=steel)
        assert reservation.reserved_quantity == Decimal('0')

        _finish_work_orders(running_order)
        mes.complete_order(running_order)

        assert MaterialReservation.objects.filter(order=running_order, is_active=True).count() == 0


class TestCancel:

    def test_cancel_releases_reservations(self, confirmed_order, steel):
        before = StockLedgerEntry.objects.count()
        order = mes.cancel_order(confirmed_order, reason='Cliente desistiu')

        assert order.status == OrderStatus.CANCELLED
        assert order.cancel_reason == 'Cliente desistiu'
        assert StockLedgerEntry.objects.count() == before
        assert mes.available_to_reserve(steel) == Decimal('100')
        assert not order.work_orders.exclude(status=WorkOrderStatus.CANCELLED).exists()

    def test_cancel_requires_reason(self, order):
        with pytest.raises(ValidationError):
            mes.cancel_order(order, reason='  ')

    def test_cancel_after_complete(self, running_order):
        _finish_work_orders(running_order)
        order = mes.complete_order(running_order)

        with pytest.raises(InvalidStatusTransitionError) as exc:
            mes.cancel_order(order, reason='Tarde demais')

        assert exc.value.current_status == 'completed'
        assert exc.value.target_status == 'cancelled'

    def test_cancel_in_progress_keeps_consumed_material(self, running_order, steel):
        mes.cancel_order(running_order, reason='Máquina quebrada')

        assert mes.current_balance(steel) == Decimal('74')


class TestConcurrency:

    def test_stale_version(self, order, stocked):
        mes.confirm_order(order, expected_version=1)

        with pytest.raises(ConcurrencyError) as exc:
            mes.cancel_order(order, reason='Duplicado', expected_version=1)

        assert exc.value.data['current_version'] == 2
        order.refresh_from_db()
        assert order.status == OrderStatus.CONFIRMED


class TestStateMachineClosure:

    @pytest.mark.parametrize('status', OrderStatus.values)
    @pytest.mark.parametrize('action', list(ORDER_ACTION_TARGETS))
    def test_every_pair_is_listed_or_rejected(self, status, action):
        key = (OrderStatus(status), action)
        if key in ORDER_TRANSITIONS:
            assert next_order_status(status, action) == ORDER_TRANSITIONS[key]
        else:
            with pytest.raises(InvalidStatusTransitionError):
                next_order_status(status, action)

    def test_cancelled_reachable_from_every_non_terminal_state(self):
        for status in OrderStatus:
            if status in (OrderStatus.COMPLETED, OrderStatus.CANCELLED):
                with pytest.raises(InvalidStatusTransitionError):
                    next_order_status(status, 'cancel')
            else:
                assert next_order_status(status, 'cancel') == OrderStatus.CANCELLED

    def test_illegal_transition_does_not_mutate(self, order):
        with pytest.raises(InvalidStatusTransitionError):
            mes.start_order(order)

        order.refresh_from_db()
        assert order.status == OrderStatus.DRAFT
        assert order.version == 1
        assert ManufacturingOrder.objects.filter(status=OrderStatus.IN_PROGRESS).count() == 0
