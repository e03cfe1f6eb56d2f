"""
Work orders — shop-floor operation lifecycle (start, pause, resume, complete, cancel).

Rows are locked manufacturing order first, then work order, matching
cancel_order().
"""

import logging

from django.db import transaction
from django.utils import timezone

from forgeman.exceptions import (
    BusinessRuleViolationError,
    ConcurrencyError,
    EntityNotFoundError,
    ValidationError,
)
from forgeman.models.enums import OrderStatus, WorkOrderStatus
from forgeman.models.order import ManufacturingOrder, WorkOrder
from forgeman.services._utils import pk_of
from forgeman.transitions import next_work_order_status

logger = logging.getLogger('forgeman')


class WorkOrders:
    """Work order lifecycle methods."""

    @classmethod
    def _lock_work_order(cls, work_order, expected_version=None) -> WorkOrder:
        work_order_id = pk_of(work_order)
        order_id = (
            WorkOrder.objects.filter(pk=work_order_id).values_list('order_id', flat=True).first()
        )
        if order_id is None:
            raise EntityNotFoundError('WorkOrder', work_order_id)

        order = ManufacturingOrder.objects.select_for_update().get(pk=order_id)
        locked = WorkOrder.objects.select_for_update().get(pk=work_order_id)
        locked.order = order

        if expected_version is not None and locked.version != expected_version:
            raise ConcurrencyError(
                work_order_id=work_order_id,
                expected_version=expected_version,
                current_version=locked.version,
            )
        return locked

    @classmethod
    def _require_running_order(cls, work_order):
        order = work_order.order
        if order.status != OrderStatus.IN_PROGRESS:
            raise BusinessRuleViolationError(
                "Ordem de produção não está em andamento",
                work_order_id=work_order.pk,
                order_id=order.pk,
                order_status=order.status,
            )

    @classmethod
    def _apply(cls, work_order, action, event, expected_version=None, guard=None,
               **changes) -> WorkOrder:
        with transaction.atomic():
            locked = cls._lock_work_order(work_order, expected_version)
            previous = locked.status
            target = next_work_order_status(previous, action)
            if guard is not None:
                guard(locked)

            locked.status = target
            for name, value in changes.items():
                setattr(locked, name, value)
            locked.version += 1
            locked.save(update_fields=['status', 'version', 'updated_at', *changes])

            logger.info(
                f"work_order.{event}",
                extra={
                    "work_order_id": locked.pk,
                    "order_id": locked.order_id,
                    "from": previous,
                    "to": locked.status,
                },
            )
            return locked

    # ══════════════════════════════════════════════════════════════
    # TRANSITIONS
    # ══════════════════════════════════════════════════════════════

    @classmethod
    def start_work_order(cls, work_order, user=None, expected_version=None) -> WorkOrder:
        """
        pending → in_progress.

        Raises:
            InvalidStatusTransitionError: not pending
            BusinessRuleViolationError: order not in_progress, or a
                dependency is not completed yet
        """
        def guard(locked):
            cls._require_running_order(locked)
            blocking = list(
                locked.dependencies.exclude(status=WorkOrderStatus.COMPLETED)
                .values_list('reference', flat=True)
            )
            if blocking:
                raise BusinessRuleViolationError(
                    "Dependências ainda não concluídas",
                    work_order_id=locked.pk,
                    pending_dependencies=blocking,
                )

        changes = {'actual_start_date': timezone.now()}
        if user is not None:
            changes['assigned_to'] = user
        return cls._apply(work_order, 'start', 'started', expected_version, guard, **changes)

    @classmethod
    def pause_work_order(cls, work_order, user=None, expected_version=None) -> WorkOrder:
        return cls._apply(work_order, 'pause', 'paused', expected_version)

    @classmethod
    def resume_work_order(cls, work_order, user=None, expected_version=None) -> WorkOrder:
        """paused → in_progress; the order itself must be running."""
        return cls._apply(
            work_order, 'resume', 'resumed', expected_version,
            guard=cls._require_running_order,
        )

    @classmethod
    def complete_work_order(cls, work_order, actual_duration=None, user=None,
                            expected_version=None) -> WorkOrder:
        """
        in_progress → completed.

        actual_duration (minutes) defaults to the wall-clock time since start.

        Raises:
            InvalidStatusTransitionError: not in_progress
            BusinessRuleViolationError: order not in_progress
        """
        if actual_duration is not None and actual_duration < 0:
            raise ValidationError(
                "Duração não pode ser negativa",
                field='actual_duration',
                actual_duration=actual_duration,
            )
        with transaction.atomic():
            locked = cls._lock_work_order(work_order, expected_version)
            previous = locked.status
            locked.status = next_work_order_status(previous, 'complete')
            cls._require_running_order(locked)

            now = timezone.now()
            if actual_duration is None and locked.actual_start_date is not None:
                actual_duration = round((now - locked.actual_start_date).total_seconds() / 60)
            locked.actual_end_date = now
            locked.actual_duration = actual_duration
            locked.version += 1
            locked.save(update_fields=[
                'status', 'actual_end_date', 'actual_duration', 'version', 'updated_at',
            ])

            logger.info(
                "work_order.completed",
                extra={
                    "work_order_id": locked.pk,
                    "order_id": locked.order_id,
                    "from": previous,
                    "actual_duration": actual_duration,
                },
            )
            return locked

    @classmethod
    def cancel_work_order(cls, work_order, user=None, expected_version=None) -> WorkOrder:
        return cls._apply(work_order, 'cancel', 'cancelled', expected_version)
