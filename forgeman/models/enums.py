"""
Enums for Forgeman models.
"""

from django.db import models
from django.utils.translation import gettext_lazy as _


class ProductType(models.TextChoices):
    """What a product is in the production chain."""
    RAW_MATERIAL = 'raw_material', _('Matéria-prima')
    MANUFACTURED = 'manufactured', _('Semiacabado')
    FINISHED_GOOD = 'finished_good', _('Produto acabado')


class TransactionType(models.TextChoices):
    """
    Ledger transaction type. The sign of the entry comes from here.

    Inbound (+): RECEIPT, ADJUSTMENT_IN, PRODUCTION_RECEIPT
    Outbound (-): ISSUE, ADJUSTMENT_OUT, PRODUCTION_ISSUE
    """
    RECEIPT = 'receipt', _('Recebimento')
    ISSUE = 'issue', _('Saída')
    ADJUSTMENT_IN = 'adjustment_in', _('Ajuste (entrada)')
    ADJUSTMENT_OUT = 'adjustment_out', _('Ajuste (saída)')
    PRODUCTION_RECEIPT = 'production_receipt', _('Entrada de produção')
    PRODUCTION_ISSUE = 'production_issue', _('Consumo de produção')

    @classmethod
    def inbound(cls) -> tuple:
        return (cls.RECEIPT, cls.ADJUSTMENT_IN, cls.PRODUCTION_RECEIPT)

    @classmethod
    def sign(cls, value) -> int:
        """+1 for inbound types, -1 for outbound."""
        return 1 if value in cls.inbound() else -1

    @classmethod
    def inverse(cls, value) -> 'TransactionType':
        """Compensating type used by reversals."""
        return {
            cls.RECEIPT: cls.ISSUE,
            cls.ISSUE: cls.RECEIPT,
            cls.ADJUSTMENT_IN: cls.ADJUSTMENT_OUT,
            cls.ADJUSTMENT_OUT: cls.ADJUSTMENT_IN,
            cls.PRODUCTION_RECEIPT: cls.PRODUCTION_ISSUE,
            cls.PRODUCTION_ISSUE: cls.PRODUCTION_RECEIPT,
        }[cls(value)]


class OrderStatus(models.TextChoices):
    """Manufacturing order lifecycle status."""
    DRAFT = 'draft', _('Rascunho')
    CONFIRMED = 'confirmed', _('Confirmada')
    PLANNED = 'planned', _('Planejada')
    RELEASED = 'released', _('Liberada')
    IN_PROGRESS = 'in_progress', _('Em produção')
    PAUSED = 'paused', _('Pausada')
    COMPLETED = 'completed', _('Concluída')
    CANCELLED = 'cancelled', _('Cancelada')


class WorkOrderStatus(models.TextChoices):
    """Work order (single operation) lifecycle status."""
    PENDING = 'pending', _('Pendente')
    IN_PROGRESS = 'in_progress', _('Em execução')
    PAUSED = 'paused', _('Pausada')
    COMPLETED = 'completed', _('Concluída')
    CANCELLED = 'cancelled', _('Cancelada')


class Priority(models.TextChoices):
    LOW = 'low', _('Baixa')
    NORMAL = 'normal', _('Normal')
    HIGH = 'high', _('Alta')
    URGENT = 'urgent', _('Urgente')
