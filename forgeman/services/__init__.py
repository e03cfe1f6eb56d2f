"""
Manufacturing services — modular organization of core operations.

    from forgeman.services import (
        StockLedger, MaterialReservations, ManufacturingOrders, WorkOrders,
    )
"""

from forgeman.services.ledger import StockLedger
from forgeman.services.orders import ManufacturingOrders
from forgeman.services.reservations import MaterialReservations
from forgeman.services.work_orders import WorkOrders

__all__ = [
    'StockLedger',
    'MaterialReservations',
    'ManufacturingOrders',
    'WorkOrders',
]
