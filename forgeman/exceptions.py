"""
Exceptions for Forgeman.

Every error is a ForgemanError with a stable code and structured data
for programmatic handling. None of them is fatal: callers render them or
decide whether to retry.
"""

from decimal import Decimal
from typing import Any


class ForgemanError(Exception):
    """
    Structured exception for manufacturing operations.

    Usage:
        try:
            mes.confirm_order(order, user=user)
        except InsufficientStockError as e:
            print(f"Só tem {e.available} de {e.data['product_id']}")

    Attributes:
        code: Error code for programmatic handling
        message: Human-readable message
        data: Additional context data (ids, quantities)
    """

    code = 'FORGEMAN_ERROR'

    _default_messages = {
        'FORGEMAN_ERROR': 'Erro na execução da produção',
        'VALIDATION_ERROR': 'Dados inválidos',
        'ENTITY_NOT_FOUND': 'Registro não encontrado',
        'BUSINESS_RULE_VIOLATION': 'Regra de negócio violada',
        'INVALID_STATUS_TRANSITION': 'Transição de status inválida',
        'INSUFFICIENT_STOCK': 'Estoque insuficiente',
        'CONCURRENCY_ERROR': 'Modificação concorrente detectada',
        'DUPLICATE_ENTITY': 'Registro duplicado',
    }

    def __init__(self, message: str | None = None, **data):
        self.message = message or self._default_messages.get(self.code, self.code)
        self.data = data
        super().__init__(self.message)

    @property
    def available(self) -> Decimal:
        """Shortcut for data['available']."""
        return self.data.get('available', Decimal('0'))

    @property
    def requested(self) -> Decimal:
        """Shortcut for data['requested']."""
        return self.data.get('requested', Decimal('0'))

    def as_dict(self) -> dict[str, Any]:
        """Serialize to dict (useful for APIs)."""
        return {
            'code': self.code,
            'message': self.message,
            'data': {
                k: str(v) if isinstance(v, Decimal) else v
                for k, v in self.data.items()
            }
        }

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.code!r}, {self.message!r})"


class ValidationError(ForgemanError):
    """Malformed or missing input, detected before any mutation."""

    code = 'VALIDATION_ERROR'


class EntityNotFoundError(ForgemanError):
    """Referenced id does not exist."""

    code = 'ENTITY_NOT_FOUND'

    def __init__(self, entity_type: str, entity_id: Any, **data):
        super().__init__(
            f"{entity_type} {entity_id} não encontrado",
            entity_type=entity_type,
            entity_id=entity_id,
            **data,
        )


class BusinessRuleViolationError(ForgemanError):
    """State-dependent rule broken (e.g. dependency not completed)."""

    code = 'BUSINESS_RULE_VIOLATION'


class InvalidStatusTransitionError(ForgemanError):
    """Illegal state machine edge. Raised before anything is mutated."""

    code = 'INVALID_STATUS_TRANSITION'

    def __init__(self, entity_type: str, current_status: str, target_status: str):
        super().__init__(
            f"{entity_type}: transição {current_status} → {target_status} não permitida",
            entity_type=entity_type,
            current_status=str(current_status),
            target_status=str(target_status),
        )

    @property
    def current_status(self) -> str:
        return self.data['current_status']

    @property
    def target_status(self) -> str:
        return self.data['target_status']


class InsufficientStockError(ForgemanError):
    """Ledger or reservation shortfall."""

    code = 'INSUFFICIENT_STOCK'

    def __init__(self, product_id: Any, requested: Decimal, available: Decimal, **data):
        super().__init__(
            f"Estoque insuficiente para o produto {product_id}: "
            f"solicitado {requested}, disponível {available}",
            product_id=product_id,
            requested=requested,
            available=available,
            **data,
        )


class ConcurrencyError(ForgemanError):
    """Conflicting concurrent mutation (optimistic version mismatch)."""

    code = 'CONCURRENCY_ERROR'


class DuplicateEntityError(ForgemanError):
    """Unique business key already taken."""

    code = 'DUPLICATE_ENTITY'
