"""
Value objects — immutable quantities, money and operation records.

All of them are frozen dataclasses built through validating factories;
arithmetic returns new instances.

Rounding policy (single, documented):
    round-half-up to the precision declared for the unit
    (FORGEMAN["UNIT_PRECISION"], fallback DEFAULT_PRECISION, max 3).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from forgeman.conf import MAX_PRECISION, forgeman_settings
from forgeman.exceptions import ValidationError


ZERO = Decimal('0')


def to_decimal(value: Any, name: str = 'quantity') -> Decimal:
    """Coerce int/str/float/Decimal to a finite Decimal."""
    if isinstance(value, bool):
        raise ValidationError(f"{name} inválido", field=name, value=value)
    try:
        result = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"{name} inválido", field=name, value=str(value)) from None
    if not result.is_finite():
        raise ValidationError(f"{name} inválido", field=name, value=str(value))
    return result


def unit_precision(unit: str) -> int:
    """Decimal places declared for a unit of measure."""
    places = forgeman_settings.UNIT_PRECISION.get(
        (unit or '').strip().lower(),
        forgeman_settings.DEFAULT_PRECISION,
    )
    return max(0, min(int(places), MAX_PRECISION))


def round_quantity(value: Decimal, unit: str) -> Decimal:
    """Round half-up to the unit's declared precision."""
    exponent = Decimal(1).scaleb(-unit_precision(unit))
    return to_decimal(value).quantize(exponent, rounding=ROUND_HALF_UP)


# ══════════════════════════════════════════════════════════════
# QUANTITY / MONEY
# ══════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class Quantity:
    """Non-negative amount tagged with a unit of measure."""

    value: Decimal
    unit: str

    @classmethod
    def of(cls, value: Any, unit: str) -> Quantity:
        amount = to_decimal(value)
        if amount < 0:
            raise ValidationError("Quantidade não pode ser negativa", value=amount)
        if not isinstance(unit, str) or not unit.strip():
            raise ValidationError("Unidade é obrigatória")
        unit = unit.strip().lower()
        if len(unit) > 10:
            raise ValidationError("Unidade excede 10 caracteres", unit=unit)
        return cls(amount, unit)

    @classmethod
    def zero(cls, unit: str) -> Quantity:
        return cls.of(ZERO, unit)

    def _check_unit(self, other: Quantity) -> None:
        if not isinstance(other, Quantity):
            raise ValidationError("Operação exige Quantity", other=repr(other))
        if self.unit != other.unit:
            raise ValidationError(
                f"Unidades incompatíveis: {self.unit} e {other.unit}",
                left=self.unit,
                right=other.unit,
            )

    def __add__(self, other: Quantity) -> Quantity:
        self._check_unit(other)
        return Quantity(self.value + other.value, self.unit)

    def __sub__(self, other: Quantity) -> Quantity:
        self._check_unit(other)
        result = self.value - other.value
        if result < 0:
            raise ValidationError("Subtração resultaria em quantidade negativa",
                                  left=self.value, right=other.value)
        return Quantity(result, self.unit)

    def __mul__(self, factor: Any) -> Quantity:
        factor = to_decimal(factor, 'factor')
        if factor < 0:
            raise ValidationError("Fator não pode ser negativo", factor=factor)
        return Quantity(self.value * factor, self.unit)

    def __lt__(self, other: Quantity) -> bool:
        self._check_unit(other)
        return self.value < other.value

    def __le__(self, other: Quantity) -> bool:
        self._check_unit(other)
        return self.value <= other.value

    def __gt__(self, other: Quantity) -> bool:
        self._check_unit(other)
        return self.value > other.value

    def __ge__(self, other: Quantity) -> bool:
        self._check_unit(other)
        return self.value >= other.value

    @property
    def is_zero(self) -> bool:
        return self.value == 0

    def quantize(self) -> Quantity:
        return Quantity(round_quantity(self.value, self.unit), self.unit)

    def __str__(self) -> str:
        return f"{self.value} {self.unit}"


@dataclass(frozen=True)
class Money:
    """Amount in a 3-letter ISO currency, two decimal places."""

    amount: Decimal
    currency: str

    CENTS = Decimal('0.01')

    @classmethod
    def of(cls, amount: Any, currency: str = 'BRL') -> Money:
        value = to_decimal(amount, 'amount')
        if value < 0:
            raise ValidationError("Valor não pode ser negativo", amount=value)
        code = (currency or '').strip().upper()
        if len(code) != 3 or not code.isalpha():
            raise ValidationError("Moeda deve ser um código ISO de 3 letras", currency=currency)
        return cls(value.quantize(cls.CENTS, rounding=ROUND_HALF_UP), code)

    @classmethod
    def zero(cls, currency: str = 'BRL') -> Money:
        return cls.of(ZERO, currency)

    def _check_currency(self, other: Money) -> None:
        if self.currency != other.currency:
            raise ValidationError(
                f"Moedas incompatíveis: {self.currency} e {other.currency}",
                left=self.currency,
                right=other.currency,
            )

    def __add__(self, other: Money) -> Money:
        self._check_currency(other)
        return Money.of(self.amount + other.amount, self.currency)

    def __sub__(self, other: Money) -> Money:
        self._check_currency(other)
        if other.amount > self.amount:
            raise ValidationError("Subtração resultaria em valor negativo")
        return Money.of(self.amount - other.amount, self.currency)

    def __mul__(self, factor: Any) -> Money:
        factor = to_decimal(factor, 'factor')
        if factor < 0:
            raise ValidationError("Fator não pode ser negativo", factor=factor)
        return Money.of(self.amount * factor, self.currency)

    def __str__(self) -> str:
        return f"{self.amount:.2f} {self.currency}"


# ══════════════════════════════════════════════════════════════
# OPERATION RECORDS
# ══════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class Requirement:
    """Required quantity of one component (output of BOM explosion)."""

    product_id: int
    quantity: Decimal
    unit: str

    @classmethod
    def of(cls, product_id: int, quantity: Any, unit: str) -> Requirement:
        q = Quantity.of(quantity, unit)
        if q.is_zero:
            raise ValidationError("Quantidade requerida deve ser positiva",
                                  product_id=product_id)
        return cls(product_id, q.value, q.unit)


@dataclass(frozen=True)
class ReservationResult:
    """Outcome of a successful all-or-nothing reservation."""

    order_id: int
    reservations: tuple = ()

    @property
    def total_reserved(self) -> Decimal:
        return sum((r.reserved_quantity for r in self.reservations), ZERO)


@dataclass(frozen=True)
class LedgerEntryDraft:
    """
    Input for StockLedger.append().

    quantity is the magnitude (> 0); the sign comes from transaction_type.
    """

    product: Any
    quantity: Decimal
    transaction_type: str
    warehouse: Any = None
    reference_type: str = ''
    reference_id: str = ''
    notes: str = ''
    user: Any = None
    metadata: dict = field(default_factory=dict, compare=False)
