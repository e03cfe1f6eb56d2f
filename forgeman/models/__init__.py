"""
Forgeman Models.

Core models for manufacturing execution:
- Product, Warehouse, WorkCenter: catalog
- BillOfMaterials, BOMComponent, BOMOperation: recipes
- StockLedgerEntry: immutable ledger of stock changes
- StockBalance: running balance cache per (product, warehouse)
- MaterialReservation: soft holds of components for an order
- ManufacturingOrder, WorkOrder: production lifecycle
"""

from forgeman.models.bom import BillOfMaterials, BOMComponent, BOMOperation
from forgeman.models.catalog import Product, Warehouse, WorkCenter
from forgeman.models.enums import (
    OrderStatus,
    Priority,
    ProductType,
    TransactionType,
    WorkOrderStatus,
)
from forgeman.models.ledger import StockBalance, StockLedgerEntry
from forgeman.models.order import ManufacturingOrder, WorkOrder
from forgeman.models.reservation import MaterialReservation

__all__ = [
    'ProductType',
    'TransactionType',
    'OrderStatus',
    'WorkOrderStatus',
    'Priority',
    'Product',
    'Warehouse',
    'WorkCenter',
    'BillOfMaterials',
    'BOMComponent',
    'BOMOperation',
    'StockBalance',
    'StockLedgerEntry',
    'MaterialReservation',
    'ManufacturingOrder',
    'WorkOrder',
]
