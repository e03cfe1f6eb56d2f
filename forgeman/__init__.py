"""
Django Forgeman — Manufacturing execution engine.

Orders, work orders, BOM explosion, material reservations and an
append-only stock ledger.

Uso:
    from forgeman import mes, ForgemanError

    mes.receive(Decimal('100'), aco, user=operador)
    order = mes.create_order(bicicleta, Decimal('10'), user=planejador)
    mes.confirm_order(order, user=planejador)    # explode BOM + reserva
    mes.start_order(order, user=operador)
    mes.complete_order(order, user=operador)     # entrada de produção
"""


def __getattr__(name):
    """Lazy import to avoid AppRegistryNotReady errors."""
    if name in ('mes', 'MES'):
        from forgeman.service import MES
        return MES
    if name in ('ForgemanError', 'ValidationError', 'EntityNotFoundError',
                'BusinessRuleViolationError', 'InvalidStatusTransitionError',
                'InsufficientStockError', 'ConcurrencyError', 'DuplicateEntityError'):
        from forgeman import exceptions
        return getattr(exceptions, name)
    if name in ('Quantity', 'Money', 'Requirement', 'LedgerEntryDraft'):
        from forgeman import values
        return getattr(values, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    'mes',
    'MES',
    'ForgemanError',
    'ValidationError',
    'EntityNotFoundError',
    'BusinessRuleViolationError',
    'InvalidStatusTransitionError',
    'InsufficientStockError',
    'ConcurrencyError',
    'DuplicateEntityError',
    'Quantity',
    'Money',
    'Requirement',
    'LedgerEntryDraft',
]

__version__ = '0.1.0'
