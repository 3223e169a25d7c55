from .inventory import InventoryRecord, InventoryTransaction
from .shifts import Shift
from .sales import PaymentMethod, Sale, SaleItem, SalePayment
from .documents import DocumentSequence, ParkedCart

__all__ = [
    'InventoryRecord', 'InventoryTransaction',
    'Shift',
    'PaymentMethod', 'Sale', 'SaleItem', 'SalePayment',
    'DocumentSequence', 'ParkedCart',
]
