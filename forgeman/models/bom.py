"""
Bill of Materials models — BillOfMaterials, BOMComponent, BOMOperation.

A BOM is the recipe to produce one unit of its product: the components
consumed (with scrap factor) and the operations performed at work centers.
"""

from decimal import Decimal

from django.conf import settings
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models, transaction
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from forgeman.exceptions import BusinessRuleViolationError, ValidationError


class BillOfMaterialsQuerySet(models.QuerySet):
    """Custom QuerySet for BOMs with convenience filters."""

    def active(self):
        return self.filter(is_active=True)

    def for_product(self, product):
        return self.filter(product=product)

    def default(self):
        """The default+active BOM (at most one per product)."""
        return self.filter(is_active=True, is_default=True)


class BillOfMaterials(models.Model):
    """
    Versioned recipe for one product.

    Invariant: at most one BOM per product is default AND active at any
    time. Enforced by make_default() and a partial unique constraint.
    """

    product = models.ForeignKey(
        'forgeman.Product',
        on_delete=models.PROTECT,
        related_name='boms',
        verbose_name=_('Produto'),
    )
    name = models.CharField(max_length=200, verbose_name=_('Nome'))
    version = models.CharField(max_length=20, verbose_name=_('Versão'))
    description = models.TextField(blank=True, default='', verbose_name=_('Descrição'))
    is_active = models.BooleanField(default=True, verbose_name=_('Ativa'))
    is_default = models.BooleanField(default=False, verbose_name=_('Padrão'))

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+',
        verbose_name=_('Criado por'),
    )
    approved_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+',
        verbose_name=_('Aprovado por'),
    )
    approved_at = models.DateTimeField(null=True, blank=True, verbose_name=_('Aprovado em'))

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = BillOfMaterialsQuerySet.as_manager()

    class Meta:
        verbose_name = _('Lista de materiais')
        verbose_name_plural = _('Listas de materiais')
        ordering = ['product', '-created_at']
        constraints = [
            models.UniqueConstraint(
                fields=['product', 'version'],
                name='forgeman_unique_bom_version',
            ),
            models.UniqueConstraint(
                fields=['product'],
                condition=models.Q(is_default=True, is_active=True),
                name='forgeman_single_default_bom',
            ),
        ]

    def approve(self, user):
        """Mark as approved. A BOM is approved once."""
        if self.approved_at is not None:
            raise ValidationError("Lista de materiais já aprovada", bom_id=self.pk)
        self.approved_by = user
        self.approved_at = timezone.now()
        self.save(update_fields=['approved_by', 'approved_at', 'updated_at'])
        return self

    def make_default(self):
        """Make this the product's default BOM, clearing any previous default."""
        if not self.is_active:
            raise BusinessRuleViolationError(
                "Lista de materiais inativa não pode ser padrão",
                bom_id=self.pk,
            )
        with transaction.atomic():
            BillOfMaterials.objects.select_for_update().filter(
                product_id=self.product_id, is_default=True,
            ).exclude(pk=self.pk).update(is_default=False, updated_at=timezone.now())
            self.is_default = True
            self.save(update_fields=['is_default', 'updated_at'])
        return self

    def deactivate(self):
        self.is_active = False
        self.is_default = False
        self.save(update_fields=['is_active', 'is_default', 'updated_at'])
        return self

    def __str__(self) -> str:
        return f"{self.name} v{self.version}"


class BOMComponent(models.Model):
    """Component consumed per unit of output."""

    bom = models.ForeignKey(
        BillOfMaterials,
        on_delete=models.CASCADE,
        related_name='components',
        verbose_name=_('Lista de materiais'),
    )
    component = models.ForeignKey(
        'forgeman.Product',
        on_delete=models.PROTECT,
        related_name='used_in',
        verbose_name=_('Componente'),
    )
    quantity = models.DecimalField(
        max_digits=12,
        decimal_places=4,
        validators=[MinValueValidator(Decimal('0.0001'))],
        verbose_name=_('Quantidade por unidade'),
    )
    unit = models.CharField(max_length=10, verbose_name=_('Unidade'))
    scrap_factor = models.DecimalField(
        max_digits=5,
        decimal_places=4,
        default=Decimal('0'),
        validators=[MinValueValidator(Decimal('0')), MaxValueValidator(Decimal('1'))],
        verbose_name=_('Fator de perda'),
        help_text=_('Entre 0 e 1. Ex: 0.04 = 4% de perda'),
    )
    sequence = models.PositiveIntegerField(verbose_name=_('Sequência'))
    notes = models.CharField(max_length=255, blank=True, default='')

    class Meta:
        verbose_name = _('Componente')
        verbose_name_plural = _('Componentes')
        ordering = ['bom', 'sequence']
        constraints = [
            models.UniqueConstraint(
                fields=['bom', 'sequence'],
                name='forgeman_unique_component_sequence',
            ),
            models.CheckConstraint(
                condition=models.Q(scrap_factor__gte=0) & models.Q(scrap_factor__lte=1),
                name='forgeman_scrap_factor_range',
            ),
            models.CheckConstraint(
                condition=models.Q(quantity__gt=0),
                name='forgeman_component_quantity_positive',
            ),
        ]

    def save(self, *args, **kwargs):
        if self.component_id and self.component_id == self.bom.product_id:
            raise ValidationError(
                "Produto não pode ser componente da própria lista de materiais",
                bom_id=self.bom_id,
            )
        super().save(*args, **kwargs)

    def __str__(self) -> str:
        return f"{self.sequence}. {self.quantity} {self.unit} {self.component}"


class BOMOperation(models.Model):
    """Operation performed at a work center, in sequence."""

    bom = models.ForeignKey(
        BillOfMaterials,
        on_delete=models.CASCADE,
        related_name='operations',
        verbose_name=_('Lista de materiais'),
    )
    work_center = models.ForeignKey(
        'forgeman.WorkCenter',
        on_delete=models.PROTECT,
        related_name='operations',
        verbose_name=_('Centro de trabalho'),
    )
    name = models.CharField(max_length=100, verbose_name=_('Operação'))
    duration_minutes = models.PositiveIntegerField(default=0, verbose_name=_('Duração (min)'))
    sequence = models.PositiveIntegerField(verbose_name=_('Sequência'))

    class Meta:
        verbose_name = _('Operação')
        verbose_name_plural = _('Operações')
        ordering = ['bom', 'sequence']
        constraints = [
            models.UniqueConstraint(
                fields=['bom', 'sequence'],
                name='forgeman_unique_operation_sequence',
            ),
        ]

    def __str__(self) -> str:
        return f"{self.sequence}. {self.name} @ {self.work_center}"
