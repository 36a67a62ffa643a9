from .entity import Product, StockLevel
from .repository import ProductRepository

__all__ = ["Product", "StockLevel", "ProductRepository"]
