from .inventory import InventoryItem, StockAdjustment
from .vehicles import Vehicle, VehicleStockEntry, UnitBreakdown
from .transfers import StockTransfer, StockTransferLine, DocumentSequence

__all__ = [
    'InventoryItem', 'StockAdjustment',
    'Vehicle', 'VehicleStockEntry', 'UnitBreakdown',
    'StockTransfer', 'StockTransferLine', 'DocumentSequence',
]
