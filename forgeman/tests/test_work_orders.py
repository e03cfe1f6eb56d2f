"""
Tests for the work order lifecycle.
"""

from datetime import timedelta

import pytest
from django.utils import timezone

from forgeman import mes
from forgeman.exceptions import (
    BusinessRuleViolationError,
    ConcurrencyError,
    DuplicateEntityError,
    EntityNotFoundError,
    InvalidStatusTransitionError,
    ValidationError,
)
from forgeman.models import WorkOrder, WorkOrderStatus
from forgeman.transitions import WORK_ORDER_ACTION_TARGETS, WORK_ORDER_TRANSITIONS, next_work_order_status


pytestmark = pytest.mark.django_db


@pytest.fixture
def cut(running_order):
    return running_order.work_orders.get(sequence=10)


@pytest.fixture
def assemble(running_order):
    return running_order.work_orders.get(sequence=20)


class TestStart:

    def test_start(self, cut, user):
        work_order = mes.start_work_order(cut, user=user)

        assert work_order.status == WorkOrderStatus.IN_PROGRESS
        assert work_order.actual_start_date is not None
        assert work_order.assigned_to == user
        assert work_order.version == 2

    def test_dependency_must_be_completed(self, cut, assemble):
        with pytest.raises(BusinessRuleViolationError) as exc:
            mes.start_work_order(assemble)

        assert exc.value.data['pending_dependencies'] == [cut.reference]

        mes.start_work_order(cut)
        mes.complete_work_order(cut)
        assert mes.start_work_order(assemble).status == WorkOrderStatus.IN_PROGRESS

    def test_independent_branches_run_together(self, running_order, cutting):
        extra = mes.add_work_order(running_order, cutting, 'Rebarbar')

        mes.start_work_order(running_order.work_orders.get(sequence=10))
        assert mes.start_work_order(extra).status == WorkOrderStatus.IN_PROGRESS

    def test_order_must_be_running(self, confirmed_order):
        work_order = confirmed_order.work_orders.get(sequence=10)

        with pytest.raises(BusinessRuleViolationError):
            mes.start_work_order(work_order)

    def test_paused_order_blocks_resume(self, running_order, cut):
        mes.start_work_order(cut)
        mes.pause_work_order(cut)
        mes.pause_order(running_order)

        with pytest.raises(BusinessRuleViolationError):
            mes.resume_work_order(cut)

    def test_missing_work_order(self):
        with pytest.raises(EntityNotFoundError):
            mes.start_work_order(999999)


class TestComplete:

    def test_explicit_duration(self, cut):
        mes.start_work_order(cut)
        work_order = mes.complete_work_order(cut, actual_duration=42)

        assert work_order.status == WorkOrderStatus.COMPLETED
        assert work_order.actual_duration == 42
        assert work_order.actual_end_date is not None

    def test_duration_from_clock(self, cut):
        mes.start_work_order(cut)
        WorkOrder.objects.filter(pk=cut.pk).update(
            actual_start_date=timezone.now() - timedelta(minutes=90),
        )

        assert mes.complete_work_order(cut).actual_duration == 90

    def test_negative_duration(self, cut):
        mes.start_work_order(cut)

        with pytest.raises(ValidationError):
            mes.complete_work_order(cut, actual_duration=-5)

    def test_complete_pending(self, cut):
        with pytest.raises(InvalidStatusTransitionError):
            mes.complete_work_order(cut)

    def test_paused_order_blocks_completion(self, running_order, cut):
        mes.start_work_order(cut)
        mes.pause_order(running_order)

        with pytest.raises(BusinessRuleViolationError):
            mes.complete_work_order(cut, actual_duration=10)

        cut.refresh_from_db()
        assert cut.status == WorkOrderStatus.IN_PROGRESS
        assert cut.actual_end_date is None

        mes.resume_order(running_order)
        assert mes.complete_work_order(cut).status == WorkOrderStatus.COMPLETED


class TestCancel:

    def test_cancel_from_any_open_state(self, cut, assemble):
        mes.start_work_order(cut)
        mes.pause_work_order(cut)

        assert mes.cancel_work_order(cut).status == WorkOrderStatus.CANCELLED
        assert mes.cancel_work_order(assemble).status == WorkOrderStatus.CANCELLED

    def test_cancel_completed(self, cut):
        mes.start_work_order(cut)
        mes.complete_work_order(cut)

        with pytest.raises(InvalidStatusTransitionError):
            mes.cancel_work_order(cut)

    def test_stale_version(self, cut):
        mes.start_work_order(cut, expected_version=1)

        with pytest.raises(ConcurrencyError):
            mes.pause_work_order(cut, expected_version=1)


class TestAddWorkOrder:

    def test_sequence_and_dependencies(self, confirmed_order, assembly):
        assemble = confirmed_order.work_orders.get(sequence=20)
        paint = mes.add_work_order(
            confirmed_order, assembly, 'Pintar', estimated_duration=20, dependencies=[assemble],
        )

        assert paint.sequence == 30
        assert paint.reference == f'{confirmed_order.reference}-30'
        assert list(paint.dependencies.all()) == [assemble]

    def test_duplicate_sequence(self, confirmed_order, assembly):
        with pytest.raises(DuplicateEntityError):
            mes.add_work_order(confirmed_order, assembly, 'Repetida', sequence=10)

    def test_foreign_dependency(self, confirmed_order, frame, assembly):
        other = mes.create_order(frame, 1)
        foreign = mes.add_work_order(other, assembly, 'Outra ordem')

        with pytest.raises(ValidationError):
            mes.add_work_order(confirmed_order, assembly, 'Pintar', dependencies=[foreign])

    def test_terminal_order(self, confirmed_order, assembly):
        mes.cancel_order(confirmed_order, reason='Sem demanda')

        with pytest.raises(BusinessRuleViolationError):
            mes.add_work_order(confirmed_order, assembly, 'Pintar')


class TestStateMachineClosure:

    @pytest.mark.parametrize('status', WorkOrderStatus.values)
    @pytest.mark.parametrize('action', list(WORK_ORDER_ACTION_TARGETS))
    def test_every_pair_is_listed_or_rejected(self, status, action):
        key = (WorkOrderStatus(status), action)
        if key in WORK_ORDER_TRANSITIONS:
            assert next_work_order_status(status, action) == WORK_ORDER_TRANSITIONS[key]
        else:
            with pytest.raises(InvalidStatusTransitionError):
                next_work_order_status(status, action)
