"""
MES Service — The single public interface for manufacturing operations.

Usage:
    from forgeman import mes, ForgemanError

    mes.receive(Decimal('500'), aco, warehouse=central)
    order = mes.create_order(bicicleta, 10, user=planejador)
    mes.confirm_order(order, user=planejador)
    mes.current_balance(aco, central)
"""

from forgeman.services import (
    ManufacturingOrders,
    MaterialReservations,
    StockLedger,
    WorkOrders,
)
from forgeman.services import alerts, explosion


class MES(StockLedger, MaterialReservations, ManufacturingOrders, WorkOrders):
    """
    Single interface for all manufacturing operations.

    Parameter convention: (entity, quantity, ..., user=None)

    IMPORTANT: All state-changing methods use atomic transactions
    with appropriate locking. See each method's docstring.
    """

    # ══════════════════════════════════════════════════════════════
    # BOM
    # ══════════════════════════════════════════════════════════════

    explode = staticmethod(explosion.explode)
    explode_nested = staticmethod(explosion.explode_nested)
    default_bom = staticmethod(explosion.default_bom)

    # ══════════════════════════════════════════════════════════════
    # ALERTS
    # ══════════════════════════════════════════════════════════════

    check_reorder = staticmethod(alerts.check_reorder)

    # ══════════════════════════════════════════════════════════════
    # ALIASES
    # ══════════════════════════════════════════════════════════════

    @classmethod
    def ledger_history(cls, product, start=None, end=None, warehouse=None):
        return cls.history(product, start=start, end=end, warehouse=warehouse)
