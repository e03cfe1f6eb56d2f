"""
Material reservations — soft holds of component stock for orders.

available_to_reserve = ledger balance - active reservations of other orders

reserve() is all-or-nothing across the requirement set: the whole call
runs in one transaction, so the first shortfall rolls back every
reservation tentatively written before it.
"""

import logging
from datetime import timedelta
from decimal import Decimal

from django.db import transaction
from django.db.models import Sum
from django.db.models.functions import Coalesce
from django.utils import timezone

from forgeman.conf import forgeman_settings
from forgeman.exceptions import (
    BusinessRuleViolationError,
    EntityNotFoundError,
    InsufficientStockError,
    ValidationError,
)
from forgeman.models.enums import TransactionType
from forgeman.models.order import ManufacturingOrder
from forgeman.models.reservation import MaterialReservation
from forgeman.services._utils import pk_of, positive_quantity
from forgeman.services.explosion import _merge
from forgeman.services.ledger import StockLedger
from forgeman.values import LedgerEntryDraft, Requirement, ReservationResult

logger = logging.getLogger('forgeman')


def _as_requirement(item) -> Requirement:
    if isinstance(item, Requirement):
        return item
    try:
        return Requirement.of(item['product_id'], item['quantity'], item['unit'])
    except (KeyError, TypeError):
        raise ValidationError(
            "Requisito deve ter product_id, quantity e unit",
            item=repr(item),
        ) from None


def _lock_order(order):
    order_id = pk_of(order)
    try:
        return ManufacturingOrder.objects.select_for_update().get(pk=order_id)
    except ManufacturingOrder.DoesNotExist:
        raise EntityNotFoundError('ManufacturingOrder', order_id) from None


EXPIRED_REASON = 'Expirada automaticamente'


def _default_expiry():
    ttl = forgeman_settings.RESERVATION_TTL_MINUTES
    if not ttl:
        return None
    return timezone.now() + timedelta(minutes=ttl)


class MaterialReservations:
    """Reservation lifecycle methods."""

    # ══════════════════════════════════════════════════════════════
    # QUERIES
    # ══════════════════════════════════════════════════════════════

    @classmethod
    def active_reservations(cls, order):
        """Active, non-expired reservations of an order."""
        return MaterialReservation.objects.for_order(pk_of(order)).active().select_related('product')

    @classmethod
    def reserved_quantity(cls, product, warehouse=None, exclude_order=None) -> Decimal:
        """Sum of active reserved_quantity on a stream."""
        qs = MaterialReservation.objects.filter(
            product=pk_of(product),
            warehouse=pk_of(warehouse),
        ).active()
        if exclude_order is not None:
            qs = qs.exclude(order=pk_of(exclude_order))
        return qs.aggregate(
            t=Coalesce(Sum('reserved_quantity'), Decimal('0'))
        )['t']

    @classmethod
    def available_to_reserve(cls, product, warehouse=None) -> Decimal:
        return StockLedger.current_balance(product, warehouse) - cls.reserved_quantity(product, warehouse)

    # ══════════════════════════════════════════════════════════════
    # RESERVE / ALLOCATE / RELEASE
    # ══════════════════════════════════════════════════════════════

    @classmethod
    def reserve(cls, order, requirements, user=None, expires_at=None) -> ReservationResult:
        """
        Reserve every requirement for the order, or none of them.

        Re-reserving a (order, product) pair updates the existing active
        reservation instead of stacking a new one, so the call is
        idempotent. requirement.quantity is the total need; whatever was
        already allocated is subtracted from the new reserved amount.

        Raises:
            ValidationError: empty or malformed requirement list
            BusinessRuleViolationError: order already completed/cancelled
            InsufficientStockError: some requirement exceeds availability
                (data: product_id, requested, available)

        Concurrency:
            - Runs under transaction.atomic()
            - Locks every stream involved, in ascending product id order
        """
        reqs = _merge([_as_requirement(item) for item in requirements])
        if not reqs:
            raise ValidationError("Lista de requisitos vazia", order_id=pk_of(order))

        expires_at = expires_at or _default_expiry()
        reservations = []

        with transaction.atomic():
            order = _lock_order(order)
            if order.is_terminal:
                raise BusinessRuleViolationError(
                    "Ordem encerrada não pode reservar materiais",
                    order_id=order.pk,
                    status=order.status,
                )
            warehouse_id = order.warehouse_id

            for product_id in sorted(req.product_id for req in reqs):
                StockLedger.lock_stream(product_id, warehouse_id)

            for req in reqs:
                existing = MaterialReservation.objects.select_for_update().filter(
                    order=order, product=req.product_id, is_active=True,
                ).first()
                allocated = existing.allocated_quantity if existing else Decimal('0')
                to_reserve = max(req.quantity - allocated, Decimal('0'))

                balance = StockLedger.current_balance(req.product_id, warehouse_id)
                others = cls.reserved_quantity(req.product_id, warehouse_id, exclude_order=order)
                available = balance - others

                if to_reserve > available:
                    logger.info(
                        "reservation.shortfall",
                        extra={
                            "order_id": order.pk,
                            "product_id": req.product_id,
                            "requested": str(to_reserve),
                            "available": str(available),
                        },
                    )
                    raise InsufficientStockError(
                        req.product_id,
                        requested=to_reserve,
                        available=available,
                        order_id=order.pk,
                    )

                if existing:
                    existing.required_quantity = req.quantity
                    existing.reserved_quantity = to_reserve
                    existing.unit = req.unit
                    existing.expires_at = expires_at
                    existing.save(update_fields=[
                        'required_quantity', 'reserved_quantity', 'unit',
                        'expires_at', 'updated_at',
                    ])
                    reservation = existing
                else:
                    reservation = MaterialReservation.objects.create(
                        order=order,
                        product_id=req.product_id,
                        warehouse_id=warehouse_id,
                        unit=req.unit,
                        required_quantity=req.quantity,
                        reserved_quantity=to_reserve,
                        reserved_by=user,
                        expires_at=expires_at,
                    )
                reservations.append(reservation)

            logger.info(
                "reservation.reserved",
                extra={
                    "order_id": order.pk,
                    "items": len(reservations),
                },
            )
            return ReservationResult(order.pk, tuple(reservations))

    @classmethod
    def allocate(cls, order, product, quantity, user=None):
        """
        Consume reserved stock: reserved → allocated + production_issue entry.

        Returns:
            The production_issue StockLedgerEntry

        A reservation past expires_at but not yet swept is still honoured,
        as long as the issue leaves other orders' holds covered.

        Raises:
            EntityNotFoundError: unknown order, or no active reservation
                for (order, product)
            ValidationError: quantity > remaining reserved quantity
            InsufficientStockError: ledger cannot cover the issue
        """
        quantity = positive_quantity(quantity)
        product_id = pk_of(product)

        with transaction.atomic():
            order = _lock_order(order)
            balance = StockLedger.lock_stream(product_id, order.warehouse_id)
            reservation = MaterialReservation.objects.select_for_update().filter(
                order=order, product=product_id, is_active=True,
            ).first()

            if reservation is None:
                raise EntityNotFoundError(
                    'MaterialReservation',
                    f"{order.pk}:{product_id}",
                    order_id=order.pk,
                    product_id=product_id,
                )

            if quantity > reservation.reserved_quantity:
                raise ValidationError(
                    "Quantidade excede o saldo reservado",
                    order_id=order.pk,
                    product_id=product_id,
                    requested=quantity,
                    available=reservation.reserved_quantity,
                )

            # Re-validate: the issue must not eat into other orders' holds
            others = cls.reserved_quantity(product_id, order.warehouse_id, exclude_order=order)
            if balance.quantity - quantity < others:
                raise InsufficientStockError(
                    product_id,
                    requested=quantity,
                    available=max(balance.quantity - others, Decimal('0')),
                    order_id=order.pk,
                )

            entry = StockLedger.append(LedgerEntryDraft(
                product=product_id,
                quantity=quantity,
                transaction_type=TransactionType.PRODUCTION_ISSUE,
                warehouse=order.warehouse_id,
                reference_type=order._meta.model_name,
                reference_id=str(order.pk),
                notes=f"Consumo {order.reference}",
                user=user,
            ))

            reservation.reserved_quantity -= quantity
            reservation.allocated_quantity += quantity
            reservation.save(update_fields=['reserved_quantity', 'allocated_quantity', 'updated_at'])

            logger.info(
                "reservation.allocated",
                extra={
                    "order_id": order.pk,
                    "product_id": product_id,
                    "qty": str(quantity),
                    "entry_id": entry.pk,
                },
            )
            return entry

    @classmethod
    def allocate_all(cls, order, user=None) -> list:
        """
        Allocate every still-reserved quantity of the order, expired or not.

        Raises:
            BusinessRuleViolationError: release_expired() already dropped a
                hold that was never consumed and nothing replaced it
            InsufficientStockError: an expired hold is no longer covered
        """
        entries = []
        with transaction.atomic():
            order = _lock_order(order)
            reservations = MaterialReservation.objects.for_order(order.pk)

            held = reservations.filter(is_active=True).values('product_id')
            lost = list(
                reservations.filter(
                    is_active=False,
                    release_reason=EXPIRED_REASON,
                    reserved_quantity__gt=0,
                )
                .exclude(product_id__in=held)
                .values_list('product__sku', flat=True)
                .distinct()
            )
            if lost:
                raise BusinessRuleViolationError(
                    "Reservas expiradas precisam ser refeitas",
                    order_id=order.pk,
                    expired_products=sorted(lost),
                )

            pending = reservations.filter(is_active=True, reserved_quantity__gt=0).order_by('product_id')
            for reservation in pending:
                entries.append(cls.allocate(order, reservation.product_id,
                                            reservation.reserved_quantity, user=user))
        return entries

    @classmethod
    def release(cls, order, product=None, user=None, reason='Liberado') -> int:
        """
        Deactivate the order's reservations (all, or one product's).

        Never touches the ledger: reserved stock was never issued.

        Returns:
            Number of reservations released
        """
        now = timezone.now()
        with transaction.atomic():
            qs = MaterialReservation.objects.select_for_update().filter(
                order=pk_of(order), is_active=True,
            )
            if product is not None:
                qs = qs.filter(product=pk_of(product))

            count = 0
            for reservation in qs:
                reservation.is_active = False
                reservation.released_by = user
                reservation.released_at = now
                reservation.release_reason = reason
                reservation.save(update_fields=[
                    'is_active', 'released_by', 'released_at',
                    'release_reason', 'updated_at',
                ])
                count += 1

        if count:
            logger.info(
                "reservation.released",
                extra={"order_id": pk_of(order), "released": count, "reason": reason},
            )
        return count

    @classmethod
    def release_expired(cls) -> int:
        """
        Release all expired reservations in batches.

        Returns:
            Number of reservations released

        Concurrency:
            - Each batch runs under its own transaction.atomic()
            - Uses select_for_update() with SKIP LOCKED
            - Safe for multiple instances
        """
        now = timezone.now()
        total = 0
        batch_size = forgeman_settings.EXPIRED_BATCH_SIZE

        while True:
            with transaction.atomic():
                batch_ids = list(
                    MaterialReservation.objects.select_for_update(skip_locked=True)
                    .expired()
                    .values_list('pk', flat=True)[:batch_size]
                )

                if not batch_ids:
                    break

                MaterialReservation.objects.filter(pk__in=batch_ids).update(
                    is_active=False,
                    released_at=now,
                    release_reason=EXPIRED_REASON,
                    updated_at=now,
                )
                total += len(batch_ids)

        if total:
            logger.info(
                "reservation.expired_released",
                extra={"released": total},
            )
        return total
