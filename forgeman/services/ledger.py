"""
Stock ledger — append-only log of stock changes per (product, warehouse).

The only consistency gate is the non-negative running balance. History is
never rewritten: corrections are compensating entries (reverse()).

All writes run under transaction.atomic() with the stream's StockBalance
row locked (select_for_update), so appends to the same stream are applied
one at a time while other products proceed in parallel.
"""

import logging
from decimal import ROUND_HALF_UP, Decimal

from django.db import transaction
from django.db.models import Sum
from django.db.models.functions import Coalesce

from forgeman.exceptions import InsufficientStockError, ValidationError
from forgeman.models.enums import TransactionType
from forgeman.models.ledger import StockBalance, StockLedgerEntry
from forgeman.services._utils import LEDGER_EXPONENT, pk_of, positive_quantity, reference_of
from forgeman.values import LedgerEntryDraft, to_decimal

logger = logging.getLogger('forgeman')


class StockLedger:
    """Ledger append, balance and history methods."""

    # ══════════════════════════════════════════════════════════════
    # QUERIES
    # ══════════════════════════════════════════════════════════════

    @classmethod
    def current_balance(cls, product, warehouse=None) -> Decimal:
        """
        On-hand quantity of a stream.

        Reflects every append committed before the read began. No locking:
        reads never block appends.

        Args:
            product: Product (or pk)
            warehouse: Warehouse (or pk). None = unscoped stream.
        """
        balance = StockBalance.objects.stream(
            pk_of(product), pk_of(warehouse)
        ).values_list('_quantity', flat=True).first()
        return balance if balance is not None else Decimal('0')

    @classmethod
    def total_balance(cls, product) -> Decimal:
        """On-hand quantity across every stream of the product."""
        return StockBalance.objects.for_product(pk_of(product)).aggregate(
            t=Coalesce(Sum('_quantity'), Decimal('0'))
        )['t']

    @classmethod
    def history(cls, product, start=None, end=None, warehouse=None):
        """
        Entries of a product in append order.

        Returns a lazy QuerySet: nothing is fetched until iterated, and it
        can be iterated again (restartable).

        Args:
            start/end: Optional datetime bounds (inclusive)
            warehouse: Restrict to one warehouse stream (None = all streams)
        """
        qs = StockLedgerEntry.objects.filter(product=pk_of(product))
        if warehouse is not None:
            qs = qs.filter(warehouse=pk_of(warehouse))
        return qs.between(start, end).order_by('id')

    @classmethod
    def replay(cls, product, warehouse=None) -> list[dict]:
        """
        Recompute every running_balance of a stream from scratch.

        Returns:
            List of mismatches (empty = ledger is consistent). The last
            item compares the replayed total with the StockBalance cache.
        """
        product_id, warehouse_id = pk_of(product), pk_of(warehouse)
        running = Decimal('0')
        mismatches = []

        entries = StockLedgerEntry.objects.stream(product_id, warehouse_id).order_by('id')
        for entry in entries.iterator():
            running += entry.quantity
            if running != entry.running_balance:
                mismatches.append({
                    'entry_id': entry.pk,
                    'expected': running,
                    'stored': entry.running_balance,
                })

        cached = cls.current_balance(product_id, warehouse_id)
        if cached != running:
            mismatches.append({'entry_id': None, 'expected': running, 'stored': cached})

        if mismatches:
            logger.warning(
                "ledger.replay.mismatch",
                extra={
                    "product_id": product_id,
                    "warehouse_id": warehouse_id,
                    "mismatches": len(mismatches),
                },
            )
        return mismatches

    @classmethod
    def streams(cls, product=None):
        """(product_id, warehouse_id) pairs that have a balance row."""
        qs = StockBalance.objects.all()
        if product is not None:
            qs = qs.for_product(pk_of(product))
        return list(qs.order_by('product_id', 'warehouse_id').values_list('product_id', 'warehouse_id'))

    # ══════════════════════════════════════════════════════════════
    # APPEND
    # ══════════════════════════════════════════════════════════════

    @classmethod
    def lock_stream(cls, product, warehouse=None) -> StockBalance:
        """
        Get (or create) and lock the balance row of a stream.

        Must be called inside transaction.atomic().
        """
        balance, _ = StockBalance.objects.get_or_create(
            product_id=pk_of(product),
            warehouse_id=pk_of(warehouse),
        )
        return StockBalance.objects.select_for_update().get(pk=balance.pk)

    @classmethod
    def append(cls, draft: LedgerEntryDraft) -> StockLedgerEntry:
        """
        Append an entry to the ledger.

        running_balance = previous balance of the stream + signed quantity,
        where the sign comes from the transaction type.

        Raises:
            ValidationError: quantity <= 0, unknown transaction type
            InsufficientStockError: outbound entry would make the balance negative

        Concurrency:
            - Runs under transaction.atomic()
            - Locks the stream's StockBalance row before reading the previous balance
        """
        if draft.product is None:
            raise ValidationError("Produto é obrigatório")
        if draft.transaction_type not in TransactionType.values:
            raise ValidationError(
                "Tipo de lançamento inválido",
                transaction_type=draft.transaction_type,
            )
        quantity = positive_quantity(draft.quantity)
        product_id, warehouse_id = pk_of(draft.product), pk_of(draft.warehouse)
        signed = quantity * TransactionType.sign(draft.transaction_type)

        with transaction.atomic():
            cls.lock_stream(product_id, warehouse_id)

            last = StockLedgerEntry.objects.stream(product_id, warehouse_id).order_by(
                '-id'
            ).values_list('running_balance', flat=True).first()
            previous = last if last is not None else Decimal('0')
            running = previous + signed

            if running < 0:
                raise InsufficientStockError(
                    product_id,
                    requested=quantity,
                    available=previous,
                    warehouse_id=warehouse_id,
                )

            entry = StockLedgerEntry.objects.create(
                product_id=product_id,
                warehouse_id=warehouse_id,
                transaction_type=draft.transaction_type,
                quantity=signed,
                running_balance=running,
                reference_type=draft.reference_type,
                reference_id=str(draft.reference_id or ''),
                notes=draft.notes,
                metadata=draft.metadata,
                user=draft.user,
            )
            logger.info(
                "ledger.append",
                extra={
                    "entry_id": entry.pk,
                    "product_id": product_id,
                    "warehouse_id": warehouse_id,
                    "type": draft.transaction_type,
                    "qty": str(signed),
                    "balance": str(running),
                },
            )
            return entry

    # ══════════════════════════════════════════════════════════════
    # MOVEMENTS
    # ══════════════════════════════════════════════════════════════

    @classmethod
    def receive(cls, quantity, product, warehouse=None, reference=None,
                user=None, notes='Recebimento', **metadata) -> StockLedgerEntry:
        """Stock entry (receipt)."""
        reference_type, reference_id = reference_of(reference)
        return cls.append(LedgerEntryDraft(
            product=product,
            quantity=quantity,
            transaction_type=TransactionType.RECEIPT,
            warehouse=warehouse,
            reference_type=reference_type,
            reference_id=reference_id,
            notes=notes,
            user=user,
            metadata=metadata,
        ))

    @classmethod
    def issue(cls, quantity, product, warehouse=None, reference=None,
              user=None, notes='Saída') -> StockLedgerEntry:
        """
        Stock exit outside production.

        Stock reserved for manufacturing orders is protected: only
        balance - reserved can be issued.

        Raises:
            InsufficientStockError: quantity > available
        """
        quantity = positive_quantity(quantity)
        reference_type, reference_id = reference_of(reference)

        with transaction.atomic():
            balance = cls.lock_stream(product, warehouse)
            available = balance.available
            if available < quantity:
                raise InsufficientStockError(
                    pk_of(product),
                    requested=quantity,
                    available=available,
                    warehouse_id=pk_of(warehouse),
                )
            return cls.append(LedgerEntryDraft(
                product=product,
                quantity=quantity,
                transaction_type=TransactionType.ISSUE,
                warehouse=warehouse,
                reference_type=reference_type,
                reference_id=reference_id,
                notes=notes,
                user=user,
            ))

    @classmethod
    def adjust(cls, product, new_quantity, reason, warehouse=None,
               user=None) -> StockLedgerEntry | None:
        """
        Inventory adjustment (physical count).

        Calculates delta automatically: new_quantity - current balance.
        Cannot adjust below what is reserved for manufacturing orders.

        Returns:
            The adjustment entry, or None when nothing changed.

        Raises:
            ValidationError: reason empty or new_quantity negative
            InsufficientStockError: new_quantity below reserved stock
        """
        if not reason:
            raise ValidationError("Motivo é obrigatório", field='reason')
        target = to_decimal(new_quantity).quantize(LEDGER_EXPONENT, rounding=ROUND_HALF_UP)
        if target < 0:
            raise ValidationError("Quantidade não pode ser negativa", requested=target)

        with transaction.atomic():
            balance = cls.lock_stream(product, warehouse)
            delta = target - balance.quantity

            if delta == 0:
                return None

            if delta < 0:
                reserved = balance.reserved
                if target < reserved:
                    raise InsufficientStockError(
                        pk_of(product),
                        requested=-delta,
                        available=balance.quantity - reserved,
                        warehouse_id=pk_of(warehouse),
                    )

            entry = cls.append(LedgerEntryDraft(
                product=product,
                quantity=abs(delta),
                transaction_type=(
                    TransactionType.ADJUSTMENT_IN if delta > 0
                    else TransactionType.ADJUSTMENT_OUT
                ),
                warehouse=warehouse,
                notes=f"Ajuste: {reason}",
                user=user,
            ))
            logger.info(
                "ledger.adjust",
                extra={"entry_id": entry.pk, "delta": str(delta), "reason": reason},
            )
            return entry

    @classmethod
    def reverse(cls, entry: StockLedgerEntry, reason: str, user=None) -> StockLedgerEntry:
        """
        Compensate an entry with a new one of the inverse type.

        The original entry stays untouched.

        Raises:
            ValidationError: reason empty
            InsufficientStockError: reversing a receipt whose stock is gone
        """
        if not reason:
            raise ValidationError("Motivo é obrigatório", field='reason')

        return cls.append(LedgerEntryDraft(
            product=entry.product_id,
            quantity=entry.magnitude,
            transaction_type=TransactionType.inverse(entry.transaction_type),
            warehouse=entry.warehouse_id,
            reference_type=entry._meta.model_name,
            reference_id=str(entry.pk),
            notes=f"Estorno #{entry.pk}: {reason}",
            user=user,
        ))
