from .service import InventoryAdjuster

__all__ = ["InventoryAdjuster"]
