"""
Catalog models — Product, Warehouse, WorkCenter.

Stable entities created during setup. Identity never changes; catalog
attributes (levels, costs, names) may.
"""

from decimal import Decimal

from django.db import models
from django.utils.translation import gettext_lazy as _

from forgeman.models.enums import ProductType
from forgeman.values import Money


class Product(models.Model):
    """
    Anything that is stocked, consumed or produced.

    Examples:
        Product.objects.create(sku='ACO-1020', name='Aço 1020', unit='kg',
                               product_type=ProductType.RAW_MATERIAL)
    """

    sku = models.SlugField(
        unique=True,
        max_length=50,
        verbose_name=_('SKU'),
    )
    name = models.CharField(max_length=200, verbose_name=_('Nome'))
    product_type = models.CharField(
        max_length=20,
        choices=ProductType.choices,
        default=ProductType.RAW_MATERIAL,
        verbose_name=_('Tipo'),
    )
    unit = models.CharField(
        max_length=10,
        default='un',
        verbose_name=_('Unidade'),
        help_text=_('Unidade de medida (ex: un, kg, m)'),
    )
    min_stock_level = models.DecimalField(
        max_digits=12, decimal_places=3, default=Decimal('0'),
        verbose_name=_('Estoque mínimo'),
    )
    max_stock_level = models.DecimalField(
        max_digits=12, decimal_places=3, default=Decimal('0'),
        verbose_name=_('Estoque máximo'),
        help_text=_('0 = sem limite'),
    )
    reorder_point = models.DecimalField(
        max_digits=12, decimal_places=3, default=Decimal('0'),
        verbose_name=_('Ponto de reposição'),
    )
    cost_price = models.DecimalField(
        max_digits=12, decimal_places=2, default=Decimal('0'),
        verbose_name=_('Custo unitário'),
    )
    currency = models.CharField(max_length=3, default='BRL', verbose_name=_('Moeda'))
    is_active = models.BooleanField(default=True, verbose_name=_('Ativo'))
    metadata = models.JSONField(default=dict, blank=True, verbose_name=_('Metadados'))

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = _('Produto')
        verbose_name_plural = _('Produtos')
        ordering = ['sku']
        constraints = [
            models.CheckConstraint(
                condition=models.Q(min_stock_level__gte=0) & models.Q(reorder_point__gte=0),
                name='forgeman_product_levels_non_negative',
            ),
        ]

    @property
    def cost(self) -> Money:
        return Money.of(self.cost_price, self.currency)

    @property
    def is_raw_material(self) -> bool:
        return self.product_type == ProductType.RAW_MATERIAL

    def __str__(self) -> str:
        return f"{self.sku} — {self.name}"


class Warehouse(models.Model):
    """Where stock exists. Ledger streams may be scoped by warehouse."""

    code = models.SlugField(unique=True, max_length=50, verbose_name=_('Código'))
    name = models.CharField(max_length=100, verbose_name=_('Nome'))
    is_default = models.BooleanField(
        default=False,
        verbose_name=_('Depósito padrão'),
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = _('Depósito')
        verbose_name_plural = _('Depósitos')
        ordering = ['code']

    def __str__(self) -> str:
        return self.name


class WorkCenter(models.Model):
    """A machine or line against which work orders are scheduled."""

    code = models.SlugField(unique=True, max_length=50, verbose_name=_('Código'))
    name = models.CharField(max_length=100, verbose_name=_('Nome'))
    capacity_per_hour = models.DecimalField(
        max_digits=12, decimal_places=3, default=Decimal('0'),
        verbose_name=_('Capacidade por hora'),
    )
    is_active = models.BooleanField(default=True, verbose_name=_('Ativo'))
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = _('Centro de trabalho')
        verbose_name_plural = _('Centros de trabalho')
        ordering = ['code']

    def __str__(self) -> str:
        return self.name
