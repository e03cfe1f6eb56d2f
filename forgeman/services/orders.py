"""
Manufacturing orders — lifecycle transitions and their side effects.

Every transition locks the order row, checks the state table in
forgeman.transitions, applies side effects and bumps the version, all
inside one transaction.atomic(). A failing guard or side effect leaves
the order exactly as it was.
"""

import logging
import uuid
from decimal import ROUND_HALF_UP

from django.core.exceptions import ImproperlyConfigured
from django.db import transaction
from django.db.models import Max
from django.utils import timezone

from forgeman.conf import forgeman_settings
from forgeman.exceptions import (
    BusinessRuleViolationError,
    ConcurrencyError,
    DuplicateEntityError,
    EntityNotFoundError,
    ValidationError,
)
from forgeman.models.bom import BillOfMaterials
from forgeman.models.catalog import Product
from forgeman.models.enums import OrderStatus, Priority, TransactionType, WorkOrderStatus
from forgeman.models.order import TERMINAL_WORK_ORDER_STATUSES, ManufacturingOrder, WorkOrder
from forgeman.services._utils import LEDGER_EXPONENT, pk_of, positive_quantity
from forgeman.services.explosion import default_bom, explode
from forgeman.services.ledger import StockLedger
from forgeman.services.reservations import MaterialReservations
from forgeman.transitions import next_order_status
from forgeman.values import LedgerEntryDraft, to_decimal

logger = logging.getLogger('forgeman')

CONSUMPTION_MODES = ('on_start', 'on_complete')


def _consumption_mode() -> str:
    mode = forgeman_settings.CONSUMPTION_MODE
    if mode not in CONSUMPTION_MODES:
        raise ImproperlyConfigured(
            f"FORGEMAN['CONSUMPTION_MODE'] inválido: {mode!r} "
            f"(opções: {', '.join(CONSUMPTION_MODES)})"
        )
    return mode


def _generate_reference() -> str:
    prefix = forgeman_settings.REFERENCE_PREFIX
    return f"{prefix}-{timezone.now():%Y%m%d}-{uuid.uuid4().hex[:6].upper()}"


def _check_bom(product_id, bom) -> BillOfMaterials:
    if not isinstance(bom, BillOfMaterials):
        try:
            bom = BillOfMaterials.objects.get(pk=bom)
        except BillOfMaterials.DoesNotExist:
            raise EntityNotFoundError('BillOfMaterials', bom) from None
    if bom.product_id != product_id:
        raise ValidationError(
            "Lista de materiais pertence a outro produto",
            bom_id=bom.pk,
            product_id=product_id,
        )
    if not bom.is_active:
        raise ValidationError("Lista de materiais inativa", bom_id=bom.pk)
    return bom


class ManufacturingOrders:
    """Manufacturing order lifecycle methods."""

    # ══════════════════════════════════════════════════════════════
    # HELPERS
    # ══════════════════════════════════════════════════════════════

    @classmethod
    def _lock_order(cls, order, expected_version=None) -> ManufacturingOrder:
        """
        Lock the order row. Must be called inside transaction.atomic().

        Raises:
            EntityNotFoundError: order does not exist
            ConcurrencyError: expected_version given and stale
        """
        order_id = pk_of(order)
        try:
            locked = ManufacturingOrder.objects.select_for_update().get(pk=order_id)
        except ManufacturingOrder.DoesNotExist:
            raise EntityNotFoundError('ManufacturingOrder', order_id) from None

        if expected_version is not None and locked.version != expected_version:
            raise ConcurrencyError(
                order_id=order_id,
                expected_version=expected_version,
                current_version=locked.version,
            )
        return locked

    @classmethod
    def _commit(cls, order, event, previous, *fields, **extra) -> ManufacturingOrder:
        order.version += 1
        order.save(update_fields=['status', 'version', 'updated_at', *fields])
        logger.info(
            f"order.{event}",
            extra={
                "order_id": order.pk,
                "reference": order.reference,
                "from": previous,
                "to": order.status,
                "version": order.version,
                **extra,
            },
        )
        return order

    @classmethod
    def _transition(cls, order, action, event, expected_version=None, **dates) -> ManufacturingOrder:
        """Side-effect free transition (plan, release, pause, resume)."""
        with transaction.atomic():
            locked = cls._lock_order(order, expected_version)
            previous = locked.status
            locked.status = next_order_status(previous, action)
            for name, value in dates.items():
                setattr(locked, name, value)
            return cls._commit(locked, event, previous, *dates)

    # ══════════════════════════════════════════════════════════════
    # CREATE
    # ══════════════════════════════════════════════════════════════

    @classmethod
    def create_order(cls, product, quantity, bom=None, warehouse=None,
                     reference=None, priority=Priority.NORMAL,
                     planned_start_date=None, planned_end_date=None,
                     user=None, notes='') -> ManufacturingOrder:
        """
        Create a draft manufacturing order.

        The unit is always the product's unit. reference is generated as
        PREFIX-YYYYMMDD-XXXXXX when not supplied.

        Raises:
            EntityNotFoundError: product or bom does not exist
            BusinessRuleViolationError: product is a raw material
            ValidationError: bad quantity, priority, dates or bom
            DuplicateEntityError: reference already in use
        """
        product_id = pk_of(product)
        try:
            product = Product.objects.get(pk=product_id)
        except Product.DoesNotExist:
            raise EntityNotFoundError('Product', product_id) from None

        if product.is_raw_material:
            raise BusinessRuleViolationError(
                "Matéria-prima não pode ser fabricada",
                product_id=product.pk,
            )
        quantity = positive_quantity(quantity)
        if priority not in Priority.values:
            raise ValidationError("Prioridade inválida", priority=priority)
        if planned_start_date and planned_end_date and planned_end_date < planned_start_date:
            raise ValidationError("Fim planejado anterior ao início", field='planned_end_date')
        if bom is not None:
            bom = _check_bom(product.pk, bom)

        with transaction.atomic():
            if reference:
                if ManufacturingOrder.objects.filter(reference=reference).exists():
                    raise DuplicateEntityError(
                        "Número de ordem já existe",
                        reference=reference,
                    )
            else:
                reference = _generate_reference()

            order = ManufacturingOrder.objects.create(
                reference=reference,
                product=product,
                bom=bom,
                warehouse_id=pk_of(warehouse),
                quantity=quantity,
                unit=product.unit,
                priority=priority,
                planned_start_date=planned_start_date,
                planned_end_date=planned_end_date,
                created_by=user,
                notes=notes,
            )

        logger.info(
            "order.created",
            extra={
                "order_id": order.pk,
                "reference": order.reference,
                "product_id": product.pk,
                "qty": str(quantity),
            },
        )
        return order

    @classmethod
    def bind_bom(cls, order, bom, user=None, expected_version=None) -> ManufacturingOrder:
        """
        Bind the BOM used by the order. Only allowed while draft, only once.

        Raises:
            BusinessRuleViolationError: not draft, or another BOM already bound
            ValidationError: BOM of another product, or inactive
        """
        with transaction.atomic():
            locked = cls._lock_order(order, expected_version)
            bom = _check_bom(locked.product_id, bom)

            if locked.status != OrderStatus.DRAFT:
                raise BusinessRuleViolationError(
                    "Lista de materiais só pode ser definida em rascunho",
                    order_id=locked.pk,
                    status=locked.status,
                )
            if locked.bom_id == bom.pk:
                return locked
            if locked.bom_id is not None:
                raise BusinessRuleViolationError(
                    "Ordem já possui lista de materiais",
                    order_id=locked.pk,
                    bom_id=locked.bom_id,
                )

            locked.bom = bom
            locked.version += 1
            locked.save(update_fields=['bom', 'version', 'updated_at'])
            logger.info(
                "order.bom_bound",
                extra={"order_id": locked.pk, "bom_id": bom.pk},
            )
            return locked

    @classmethod
    def add_work_order(cls, order, work_center, name, sequence=None,
                       estimated_duration=0, dependencies=(), assigned_to=None,
                       expected_version=None) -> WorkOrder:
        """
        Add a work order to a non-terminal order.

        sequence defaults to the next multiple of 10 after the current
        highest. dependencies must be work orders of the same order.

        Raises:
            BusinessRuleViolationError: order completed or cancelled
            DuplicateEntityError: sequence already used in this order
            ValidationError: dependency from another order
        """
        if not name:
            raise ValidationError("Nome da operação é obrigatório", field='name')

        with transaction.atomic():
            locked = cls._lock_order(order, expected_version)
            if locked.is_terminal:
                raise BusinessRuleViolationError(
                    "Ordem encerrada não aceita novas operações",
                    order_id=locked.pk,
                    status=locked.status,
                )

            if sequence is None:
                highest = locked.work_orders.aggregate(m=Max('sequence'))['m'] or 0
                sequence = highest + 10
            elif locked.work_orders.filter(sequence=sequence).exists():
                raise DuplicateEntityError(
                    "Sequência já usada nesta ordem",
                    order_id=locked.pk,
                    sequence=sequence,
                )

            dependency_ids = [pk_of(dep) for dep in dependencies]
            found = set(
                locked.work_orders.filter(pk__in=dependency_ids).values_list('pk', flat=True)
            )
            foreign = [pk for pk in dependency_ids if pk not in found]
            if foreign:
                raise ValidationError(
                    "Dependências devem pertencer à mesma ordem",
                    order_id=locked.pk,
                    dependencies=foreign,
                )

            work_order = WorkOrder.objects.create(
                reference=f"{locked.reference}-{sequence:02d}",
                order=locked,
                work_center_id=pk_of(work_center),
                sequence=sequence,
                name=name,
                estimated_duration=estimated_duration,
                assigned_to=assigned_to,
            )
            if dependency_ids:
                work_order.dependencies.set(dependency_ids)

            logger.info(
                "order.work_order_added",
                extra={
                    "order_id": locked.pk,
                    "work_order_id": work_order.pk,
                    "sequence": sequence,
                },
            )
            return work_order

    @classmethod
    def _generate_work_orders(cls, order, bom) -> list[WorkOrder]:
        """One work order per BOM operation, each depending on the previous one."""
        existing = set(order.work_orders.values_list('sequence', flat=True))
        created = []
        previous = None
        for operation in bom.operations.order_by('sequence'):
            if operation.sequence in existing:
                continue
            work_order = WorkOrder.objects.create(
                reference=f"{order.reference}-{operation.sequence:02d}",
                order=order,
                work_center_id=operation.work_center_id,
                sequence=operation.sequence,
                name=operation.name,
                estimated_duration=operation.duration_minutes,
            )
            if previous is not None:
                work_order.dependencies.add(previous)
            previous = work_order
            created.append(work_order)
        return created

    # ══════════════════════════════════════════════════════════════
    # TRANSITIONS
    # ══════════════════════════════════════════════════════════════

    @classmethod
    def confirm_order(cls, order, user=None, expected_version=None) -> ManufacturingOrder:
        """
        draft → confirmed.

        Binds the product's default BOM when none is bound, explodes it at
        the order quantity and reserves every requirement. Work orders are
        generated from the BOM operations.

        Raises:
            InvalidStatusTransitionError: order not draft
            BusinessRuleViolationError: no BOM available for the product
            InsufficientStockError: some component cannot be reserved
                (the order stays draft, nothing is reserved)
        """
        with transaction.atomic():
            locked = cls._lock_order(order, expected_version)
            previous = locked.status
            target = next_order_status(previous, 'confirm')

            bom = locked.bom or default_bom(locked.product_id)
            if bom is None:
                raise BusinessRuleViolationError(
                    "Produto sem lista de materiais",
                    order_id=locked.pk,
                    product_id=locked.product_id,
                )

            requirements = explode(bom, locked.quantity)
            reserved = 0
            if requirements:
                result = MaterialReservations.reserve(locked, requirements, user=user)
                reserved = len(result.reservations)

            locked.bom = bom
            locked.status = target
            work_orders = cls._generate_work_orders(locked, bom)
            return cls._commit(
                locked, 'confirmed', previous, 'bom',
                reservations=reserved,
                work_orders=len(work_orders),
            )

    @classmethod
    def plan_order(cls, order, planned_start_date=None, planned_end_date=None,
                   user=None, expected_version=None) -> ManufacturingOrder:
        """confirmed → planned, optionally setting the planned window."""
        dates = {}
        if planned_start_date is not None:
            dates['planned_start_date'] = planned_start_date
        if planned_end_date is not None:
            dates['planned_end_date'] = planned_end_date
        if planned_start_date and planned_end_date and planned_end_date < planned_start_date:
            raise ValidationError("Fim planejado anterior ao início", field='planned_end_date')
        return cls._transition(order, 'plan', 'planned', expected_version, **dates)

    @classmethod
    def release_order(cls, order, user=None, expected_version=None) -> ManufacturingOrder:
        """planned → released (to the shop floor)."""
        return cls._transition(order, 'release', 'released', expected_version)

    @classmethod
    def start_order(cls, order, user=None, expected_version=None) -> ManufacturingOrder:
        """
        Start production.

        Allowed from the stages ORDER_WORKFLOW accepts. With
        CONSUMPTION_MODE 'on_start' every reserved quantity is issued now.

        Raises:
            InvalidStatusTransitionError: stage not allowed by the workflow
            BusinessRuleViolationError: no pending work order to run
            InsufficientStockError: reserved stock no longer on hand
        """
        with transaction.atomic():
            locked = cls._lock_order(order, expected_version)
            previous = locked.status
            target = next_order_status(previous, 'start')

            if not locked.work_orders.filter(status=WorkOrderStatus.PENDING).exists():
                raise BusinessRuleViolationError(
                    "Ordem sem operações pendentes",
                    order_id=locked.pk,
                )

            issued = []
            if _consumption_mode() == 'on_start':
                issued = MaterialReservations.allocate_all(locked, user=user)

            locked.status = target
            locked.actual_start_date = timezone.now()
            return cls._commit(
                locked, 'started', previous, 'actual_start_date',
                issued=len(issued),
            )

    @classmethod
    def pause_order(cls, order, user=None, expected_version=None) -> ManufacturingOrder:
        return cls._transition(order, 'pause', 'paused', expected_version)

    @classmethod
    def resume_order(cls, order, user=None, expected_version=None) -> ManufacturingOrder:
        return cls._transition(order, 'resume', 'resumed', expected_version)

    @classmethod
    def complete_order(cls, order, actual_quantity=None, user=None,
                       expected_version=None) -> ManufacturingOrder:
        """
        in_progress → completed.

        1. Every work order must be terminal, at least one completed
        2. Still-reserved quantities are allocated (production_issue)
        3. production_receipt for the produced quantity (order quantity
           unless actual_quantity is given; nothing written for 0)
        4. Reservations are released

        Raises:
            ValidationError: actual_quantity negative
            InvalidStatusTransitionError: order not in_progress
            BusinessRuleViolationError: work orders still open, or none completed
        """
        produced = None
        if actual_quantity is not None:
            produced = to_decimal(actual_quantity, 'actual_quantity').quantize(
                LEDGER_EXPONENT, rounding=ROUND_HALF_UP,
            )
            if produced < 0:
                raise ValidationError(
                    "Quantidade produzida não pode ser negativa",
                    field='actual_quantity',
                    requested=produced,
                )

        with transaction.atomic():
            locked = cls._lock_order(order, expected_version)
            previous = locked.status
            target = next_order_status(previous, 'complete')

            statuses = list(locked.work_orders.values_list('status', flat=True))
            open_count = sum(1 for s in statuses if s not in TERMINAL_WORK_ORDER_STATUSES)
            if open_count or WorkOrderStatus.COMPLETED not in statuses:
                raise BusinessRuleViolationError(
                    "Operações pendentes impedem a conclusão",
                    order_id=locked.pk,
                    open_work_orders=open_count,
                )

            MaterialReservations.allocate_all(locked, user=user)

            if produced is None:
                produced = locked.quantity
            receipt = None
            if produced > 0:
                receipt = StockLedger.append(LedgerEntryDraft(
                    product=locked.product_id,
                    quantity=produced,
                    transaction_type=TransactionType.PRODUCTION_RECEIPT,
                    warehouse=locked.warehouse_id,
                    reference_type=locked._meta.model_name,
                    reference_id=str(locked.pk),
                    notes=f"Produção {locked.reference}",
                    user=user,
                ))

            MaterialReservations.release(locked, user=user, reason='Ordem concluída')

            locked.status = target
            locked.produced_quantity = produced
            locked.actual_end_date = timezone.now()
            return cls._commit(
                locked, 'completed', previous, 'produced_quantity', 'actual_end_date',
                produced=str(produced),
                receipt_id=receipt.pk if receipt else None,
            )

    @classmethod
    def cancel_order(cls, order, reason, user=None, expected_version=None) -> ManufacturingOrder:
        """
        Cancel from any non-terminal stage.

        Releases every active reservation and cancels open work orders.
        Writes no ledger entries: material already issued stays consumed.

        Raises:
            ValidationError: reason empty
            InvalidStatusTransitionError: order completed or already cancelled
        """
        reason = (reason or '').strip()
        if not reason:
            raise ValidationError("Motivo do cancelamento é obrigatório", field='reason')

        with transaction.atomic():
            locked = cls._lock_order(order, expected_version)
            previous = locked.status
            target = next_order_status(previous, 'cancel')

            released = MaterialReservations.release(
                locked, user=user, reason=f"Cancelamento: {reason}",
            )
            open_work_orders = locked.work_orders.select_for_update().exclude(
                status__in=TERMINAL_WORK_ORDER_STATUSES,
            )
            cancelled = 0
            for work_order in open_work_orders:
                work_order.status = WorkOrderStatus.CANCELLED
                work_order.version += 1
                work_order.save(update_fields=['status', 'version', 'updated_at'])
                cancelled += 1

            locked.status = target
            locked.cancel_reason = reason
            return cls._commit(
                locked, 'cancelled', previous, 'cancel_reason',
                released=released,
                work_orders_cancelled=cancelled,
                reason=reason,
            )
