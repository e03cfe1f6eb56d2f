"""Small helpers shared by the services."""

from decimal import ROUND_HALF_UP, Decimal

from forgeman.conf import MAX_PRECISION
from forgeman.exceptions import ValidationError
from forgeman.values import to_decimal


LEDGER_EXPONENT = Decimal(1).scaleb(-MAX_PRECISION)


def pk_of(obj):
    """Accept a model instance or a raw primary key."""
    if obj is None:
        return None
    return getattr(obj, 'pk', obj)


def reference_of(obj) -> tuple[str, str]:
    """(reference_type, reference_id) for a model instance."""
    if obj is None:
        return '', ''
    return obj._meta.model_name, str(obj.pk)


def positive_quantity(value, name: str = 'quantity') -> Decimal:
    """Coerce to a ledger-scale Decimal that must be > 0."""
    quantity = to_decimal(value, name).quantize(LEDGER_EXPONENT, rounding=ROUND_HALF_UP)
    if quantity <= 0:
        raise ValidationError("Quantidade deve ser positiva", field=name, requested=quantity)
    return quantity
