from .tenancy import Company
from .catalog import Product, Supplier
from .purchasing import PurchaseOrder, PurchaseOrderItem, DocumentSequence
from .stock import StockMovement

__all__ = [
    'Company',
    'Product', 'Supplier',
    'PurchaseOrder', 'PurchaseOrderItem', 'DocumentSequence',
    'StockMovement',
]
