"""
MaterialReservation model — soft hold of component stock for an order.
"""

from decimal import Decimal

from django.conf import settings
from django.db import models
from django.db.models import Q
from django.utils import timezone
from django.utils.translation import gettext_lazy as _


class MaterialReservationQuerySet(models.QuerySet):
    """Custom QuerySet for reservations."""

    def active(self):
        """
        Active AND not expired.

        Expired reservations stop counting immediately, regardless of
        when release_expired() runs.
        """
        return self.filter(is_active=True).filter(
            Q(expires_at__isnull=True) | Q(expires_at__gte=timezone.now())
        )

    def expired(self):
        """Still flagged active but past expires_at (candidates for release)."""
        return self.filter(is_active=True, expires_at__lt=timezone.now())

    def for_order(self, order):
        return self.filter(order=order)


class MaterialReservation(models.Model):
    """
    Stock held for a manufacturing order.

    LIFECYCLE:

        reserve()          allocate()               release()
      ───────────► ACTIVE ───────────► (reserved → allocated) ──► INACTIVE
                    │                                              ▲
                    └──────────────────── release() ───────────────┘

    Quantities:
    - required_quantity:  BOM explosion result for the order (ceiling)
    - reserved_quantity:  soft-held, not yet consumed
    - allocated_quantity: issued to production (mirrored by ledger entries)

    Invariant: reserved + allocated <= required. Reserved only shrinks,
    except through an idempotent re-reservation for the same (order, product).
    """

    order = models.ForeignKey(
        'forgeman.ManufacturingOrder',
        on_delete=models.CASCADE,
        related_name='reservations',
        verbose_name=_('Ordem de produção'),
    )
    product = models.ForeignKey(
        'forgeman.Product',
        on_delete=models.PROTECT,
        related_name='reservations',
        verbose_name=_('Componente'),
    )
    warehouse = models.ForeignKey(
        'forgeman.Warehouse',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='reservations',
        verbose_name=_('Depósito'),
    )
    unit = models.CharField(max_length=10, verbose_name=_('Unidade'))
    required_quantity = models.DecimalField(
        max_digits=12, decimal_places=3,
        verbose_name=_('Quantidade requerida'),
    )
    reserved_quantity = models.DecimalField(
        max_digits=12, decimal_places=3, default=Decimal('0'),
        verbose_name=_('Quantidade reservada'),
    )
    allocated_quantity = models.DecimalField(
        max_digits=12, decimal_places=3, default=Decimal('0'),
        verbose_name=_('Quantidade consumida'),
    )
    is_active = models.BooleanField(default=True, db_index=True, verbose_name=_('Ativa'))

    reserved_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+',
        verbose_name=_('Reservado por'),
    )
    reserved_at = models.DateTimeField(default=timezone.now, verbose_name=_('Reservado em'))
    expires_at = models.DateTimeField(
        null=True,
        blank=True,
        db_index=True,
        verbose_name=_('Expira em'),
        help_text=_('Se não consumida até esta data, será liberada automaticamente'),
    )
    released_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+',
        verbose_name=_('Liberado por'),
    )
    released_at = models.DateTimeField(null=True, blank=True, verbose_name=_('Liberado em'))
    release_reason = models.CharField(max_length=255, blank=True, default='')
    updated_at = models.DateTimeField(auto_now=True)

    objects = MaterialReservationQuerySet.as_manager()

    class Meta:
        verbose_name = _('Reserva de material')
        verbose_name_plural = _('Reservas de material')
        ordering = ['order', 'product']
        constraints = [
            models.UniqueConstraint(
                fields=['order', 'product'],
                condition=Q(is_active=True),
                name='forgeman_single_active_reservation',
            ),
            models.CheckConstraint(
                condition=Q(reserved_quantity__gte=0) & Q(allocated_quantity__gte=0),
                name='forgeman_reservation_non_negative',
            ),
        ]
        indexes = [
            models.Index(fields=['product', 'warehouse', 'is_active'], name='forgeman_resv_stream_idx'),
        ]

    @property
    def is_expired(self) -> bool:
        if self.expires_at is None:
            return False
        return timezone.now() > self.expires_at

    @property
    def remaining(self) -> Decimal:
        """Headroom under the BOM requirement."""
        return self.required_quantity - self.reserved_quantity - self.allocated_quantity

    def __str__(self) -> str:
        state = '🔒' if self.is_active else '↩'
        return (f"{state} {self.product}: reservado {self.reserved_quantity}, "
                f"consumido {self.allocated_quantity} {self.unit}")
