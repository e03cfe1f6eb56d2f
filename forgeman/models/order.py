"""
ManufacturingOrder and WorkOrder models.

Status only changes through forgeman.services (orders / work_orders),
which guard transitions with forgeman.transitions and lock the row.
"""

from django.conf import settings
from django.db import models
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from forgeman.models.enums import OrderStatus, Priority, WorkOrderStatus


TERMINAL_ORDER_STATUSES = (OrderStatus.COMPLETED, OrderStatus.CANCELLED)
TERMINAL_WORK_ORDER_STATUSES = (WorkOrderStatus.COMPLETED, WorkOrderStatus.CANCELLED)


class ManufacturingOrderQuerySet(models.QuerySet):

    def open(self):
        return self.exclude(status__in=TERMINAL_ORDER_STATUSES)

    def overdue(self):
        return self.open().filter(planned_end_date__lt=timezone.now())


class ManufacturingOrder(models.Model):
    """
    Order to produce a quantity of a product.

    LIFECYCLE:

        draft → confirmed → planned → released → in_progress ⇄ paused → completed
          └──────────┴──────────┴─────────┴────────────┴──────────┴──► cancelled

    The BOM is bound once (at the latest on confirm) and never changes
    afterwards, so later BOM edits do not affect an in-flight order.
    """

    reference = models.CharField(
        max_length=50,
        unique=True,
        verbose_name=_('Número'),
    )
    product = models.ForeignKey(
        'forgeman.Product',
        on_delete=models.PROTECT,
        related_name='manufacturing_orders',
        verbose_name=_('Produto'),
    )
    bom = models.ForeignKey(
        'forgeman.BillOfMaterials',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='manufacturing_orders',
        verbose_name=_('Lista de materiais'),
    )
    warehouse = models.ForeignKey(
        'forgeman.Warehouse',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='manufacturing_orders',
        verbose_name=_('Depósito'),
        help_text=_('Origem dos materiais e destino do produto. Vazio = estoque geral.'),
    )
    quantity = models.DecimalField(
        max_digits=12, decimal_places=3,
        verbose_name=_('Quantidade'),
    )
    unit = models.CharField(max_length=10, verbose_name=_('Unidade'))
    produced_quantity = models.DecimalField(
        max_digits=12, decimal_places=3,
        null=True, blank=True,
        verbose_name=_('Quantidade produzida'),
    )
    status = models.CharField(
        max_length=20,
        choices=OrderStatus.choices,
        default=OrderStatus.DRAFT,
        db_index=True,
        verbose_name=_('Status'),
    )
    priority = models.CharField(
        max_length=10,
        choices=Priority.choices,
        default=Priority.NORMAL,
        verbose_name=_('Prioridade'),
    )

    planned_start_date = models.DateTimeField(null=True, blank=True, verbose_name=_('Início planejado'))
    planned_end_date = models.DateTimeField(null=True, blank=True, verbose_name=_('Fim planejado'))
    actual_start_date = models.DateTimeField(null=True, blank=True, verbose_name=_('Início real'))
    actual_end_date = models.DateTimeField(null=True, blank=True, verbose_name=_('Fim real'))

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+',
        verbose_name=_('Criado por'),
    )
    assigned_to = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+',
        verbose_name=_('Responsável'),
    )
    notes = models.TextField(max_length=1000, blank=True, default='', verbose_name=_('Observações'))
    cancel_reason = models.CharField(max_length=255, blank=True, default='', verbose_name=_('Motivo do cancelamento'))
    metadata = models.JSONField(default=dict, blank=True)

    # Optimistic concurrency token, incremented on every transition
    version = models.PositiveIntegerField(default=1)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = ManufacturingOrderQuerySet.as_manager()

    class Meta:
        verbose_name = _('Ordem de produção')
        verbose_name_plural = _('Ordens de produção')
        ordering = ['-created_at']
        constraints = [
            models.CheckConstraint(
                condition=models.Q(quantity__gt=0),
                name='forgeman_order_quantity_positive',
            ),
        ]

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_ORDER_STATUSES

    @property
    def is_overdue(self) -> bool:
        if self.planned_end_date is None or self.is_terminal:
            return False
        return timezone.now() > self.planned_end_date

    @property
    def duration(self):
        """Actual duration (timedelta) or None while not finished."""
        if self.actual_start_date is None or self.actual_end_date is None:
            return None
        return self.actual_end_date - self.actual_start_date

    @property
    def planned_duration(self):
        if self.planned_start_date is None or self.planned_end_date is None:
            return None
        return self.planned_end_date - self.planned_start_date

    def __str__(self) -> str:
        return f"{self.reference} — {self.quantity} {self.unit} {self.product.sku} ({self.status})"


class WorkOrder(models.Model):
    """
    One operation of a manufacturing order, run at a work center.

    LIFECYCLE:

        pending → in_progress ⇄ paused → completed
           └───────────┴──────────┴──────► cancelled

    dependencies must all be completed before start. It is an ordering
    guard only: independent branches may run at the same time.
    """

    reference = models.CharField(max_length=60, unique=True, verbose_name=_('Número'))
    order = models.ForeignKey(
        ManufacturingOrder,
        on_delete=models.CASCADE,
        related_name='work_orders',
        verbose_name=_('Ordem de produção'),
    )
    work_center = models.ForeignKey(
        'forgeman.WorkCenter',
        on_delete=models.PROTECT,
        related_name='work_orders',
        verbose_name=_('Centro de trabalho'),
    )
    sequence = models.PositiveIntegerField(verbose_name=_('Sequência'))
    name = models.CharField(max_length=100, verbose_name=_('Operação'))
    status = models.CharField(
        max_length=20,
        choices=WorkOrderStatus.choices,
        default=WorkOrderStatus.PENDING,
        db_index=True,
        verbose_name=_('Status'),
    )
    dependencies = models.ManyToManyField(
        'self',
        symmetrical=False,
        blank=True,
        related_name='dependents',
        verbose_name=_('Depende de'),
    )
    estimated_duration = models.PositiveIntegerField(default=0, verbose_name=_('Duração estimada (min)'))
    actual_duration = models.PositiveIntegerField(null=True, blank=True, verbose_name=_('Duração real (min)'))
    assigned_to = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+',
        verbose_name=_('Responsável'),
    )
    actual_start_date = models.DateTimeField(null=True, blank=True)
    actual_end_date = models.DateTimeField(null=True, blank=True)
    notes = models.TextField(blank=True, default='')

    version = models.PositiveIntegerField(default=1)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = _('Ordem de trabalho')
        verbose_name_plural = _('Ordens de trabalho')
        ordering = ['order', 'sequence']
        constraints = [
            models.UniqueConstraint(
                fields=['order', 'sequence'],
                name='forgeman_unique_work_order_sequence',
            ),
        ]

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_WORK_ORDER_STATUSES

    def __str__(self) -> str:
        return f"{self.reference} {self.name} ({self.status})"
