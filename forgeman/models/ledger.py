"""
Ledger models — StockBalance (cache) and StockLedgerEntry (immutable log).
"""

import logging
from decimal import Decimal

from django.conf import settings
from django.db import models, transaction
from django.db.models import Sum
from django.db.models.functions import Coalesce
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from forgeman.models.enums import TransactionType

logger = logging.getLogger('forgeman')


class StockBalanceQuerySet(models.QuerySet):
    """Helpers for balance stream lookups."""

    def for_product(self, product):
        return self.filter(product=product)

    def stream(self, product, warehouse=None):
        """The (product, warehouse) stream. warehouse=None is the unscoped stream."""
        return self.filter(product=product, warehouse=warehouse)


class StockBalance(models.Model):
    """
    Running balance of one ledger stream: (product, warehouse).

    Performance:
    - _quantity mirrors the running_balance of the stream's last entry
    - Read is O(1), not O(N)
    - Use recalculate() for audit/correction

    The row doubles as the stream's lock: appends and reservations run
    under select_for_update() on it.
    """

    product = models.ForeignKey(
        'forgeman.Product',
        on_delete=models.PROTECT,
        related_name='balances',
        verbose_name=_('Produto'),
    )
    warehouse = models.ForeignKey(
        'forgeman.Warehouse',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='balances',
        verbose_name=_('Depósito'),
    )
    _quantity = models.DecimalField(
        max_digits=12,
        decimal_places=3,
        default=Decimal('0'),
        verbose_name=_('Saldo'),
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = StockBalanceQuerySet.as_manager()

    class Meta:
        verbose_name = _('Saldo')
        verbose_name_plural = _('Saldos')
        constraints = [
            models.UniqueConstraint(
                fields=['product', 'warehouse'],
                name='forgeman_unique_balance_stream',
            ),
            models.UniqueConstraint(
                fields=['product'],
                condition=models.Q(warehouse__isnull=True),
                name='forgeman_unique_unscoped_balance',
            ),
        ]

    @property
    def quantity(self) -> Decimal:
        """On-hand quantity — O(1) cache read."""
        return self._quantity

    @property
    def reserved(self) -> Decimal:
        """Soft-held quantity of active, non-expired reservations on this stream."""
        from forgeman.models.reservation import MaterialReservation

        return MaterialReservation.objects.filter(
            product_id=self.product_id,
            warehouse_id=self.warehouse_id,
        ).active().aggregate(
            total=Coalesce(Sum('reserved_quantity'), Decimal('0'))
        )['total']

    @property
    def available(self) -> Decimal:
        """Available to reserve."""
        return self._quantity - self.reserved

    def recalculate(self) -> Decimal:
        """
        Recalculate balance from the ledger.

        Use for:
        - Integrity audit
        - Correction after detected inconsistency

        Returns:
            New calculated quantity
        """
        total = StockLedgerEntry.objects.stream(
            self.product_id, self.warehouse_id
        ).aggregate(
            t=Coalesce(Sum('quantity'), Decimal('0'))
        )['t']

        if total != self._quantity:
            old = self._quantity
            self._quantity = total
            self.save(update_fields=['_quantity', 'updated_at'])
            logger.warning(
                "ledger.balance.recalculated",
                extra={
                    "balance_id": self.pk,
                    "old": str(old),
                    "new": str(total),
                    "diff": str(total - old),
                },
            )

        return total

    def __str__(self) -> str:
        where = self.warehouse.code if self.warehouse else '*'
        return f"{self.product} [{where}]: {self._quantity}"


class StockLedgerEntryQuerySet(models.QuerySet):
    """Ledger queries. Ordering by pk is append order."""

    def stream(self, product, warehouse=None):
        return self.filter(product=product, warehouse=warehouse)

    def between(self, start=None, end=None):
        qs = self
        if start is not None:
            qs = qs.filter(created_at__gte=start)
        if end is not None:
            qs = qs.filter(created_at__lte=end)
        return qs

    def for_reference(self, reference_type: str, reference_id):
        return self.filter(reference_type=reference_type, reference_id=str(reference_id))


class StockLedgerEntry(models.Model):
    """
    Immutable record of a stock change.

    Rules:
    - NEVER update() or delete()
    - Corrections are new entries with the inverse transaction type
    - running_balance = previous running_balance of the stream + quantity
    - Updates StockBalance._quantity atomically on save()

    This is the ONLY model that changes on-hand quantity.
    """

    product = models.ForeignKey(
        'forgeman.Product',
        on_delete=models.PROTECT,
        related_name='ledger_entries',
        verbose_name=_('Produto'),
    )
    warehouse = models.ForeignKey(
        'forgeman.Warehouse',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='ledger_entries',
        verbose_name=_('Depósito'),
    )
    transaction_type = models.CharField(
        max_length=20,
        choices=TransactionType.choices,
        verbose_name=_('Tipo'),
    )
    quantity = models.DecimalField(
        max_digits=12,
        decimal_places=3,
        verbose_name=_('Quantidade'),
        help_text=_('Positivo = entrada, Negativo = saída'),
    )
    running_balance = models.DecimalField(
        max_digits=12,
        decimal_places=3,
        verbose_name=_('Saldo após lançamento'),
    )

    # External reference (manufacturing order, purchase order, ...)
    reference_type = models.CharField(max_length=50, blank=True, default='',
                                      verbose_name=_('Tipo de Referência'))
    reference_id = models.CharField(max_length=64, blank=True, default='',
                                    verbose_name=_('ID da Referência'))

    notes = models.CharField(max_length=255, blank=True, default='', verbose_name=_('Observação'))
    metadata = models.JSONField(default=dict, blank=True, verbose_name=_('Metadados'))

    created_at = models.DateTimeField(default=timezone.now, db_index=True, verbose_name=_('Data/Hora'))
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+',
        verbose_name=_('Usuário'),
    )

    objects = StockLedgerEntryQuerySet.as_manager()

    class Meta:
        verbose_name = _('Lançamento')
        verbose_name_plural = _('Razão de estoque')
        ordering = ['id']
        indexes = [
            models.Index(fields=['product', 'warehouse', 'id'], name='forgeman_ledger_stream_idx'),
            models.Index(fields=['reference_type', 'reference_id'], name='forgeman_ledger_ref_idx'),
        ]

    def save(self, *args, **kwargs):
        """Save entry and update the stream balance atomically."""
        if self.pk:
            raise ValueError(
                "Lançamentos são imutáveis. "
                "Para corrigir, crie um novo lançamento de estorno."
            )

        if not self.quantity:
            raise ValueError("Quantidade do lançamento não pode ser zero")

        if self.running_balance is None or self.running_balance < 0:
            raise ValueError("Saldo após lançamento não pode ser negativo")

        with transaction.atomic():
            super().save(*args, **kwargs)
            StockBalance.objects.filter(
                product_id=self.product_id,
                warehouse_id=self.warehouse_id,
            ).update(
                _quantity=self.running_balance,
                updated_at=timezone.now(),
            )

    def delete(self, *args, **kwargs):
        """Prevent deletion — entries are immutable."""
        raise ValueError(
            "Lançamentos são imutáveis. "
            "Para estornar, crie um novo lançamento de estorno."
        )

    @property
    def magnitude(self) -> Decimal:
        return abs(self.quantity)

    def __str__(self) -> str:
        signal = '+' if self.quantity > 0 else ''
        return f"{signal}{self.quantity} {self.get_transaction_type_display()} → {self.running_balance}"
