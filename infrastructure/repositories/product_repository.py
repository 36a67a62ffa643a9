"""
Product repository - SQLAlchemy implementation with conditional stock updates
"""
from datetime import datetime, timezone
from typing import Dict, Iterable, Optional

from sqlalchemy import case, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from core.logging_config import get_logger
from domain.catalog.entity import Product, StockLevel
from domain.catalog.repository import ProductRepository
from infrastructure.models.product import ProductModel


logger = get_logger(__name__)


class SQLAlchemyProductRepository(ProductRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: ProductModel) -> Product:
        return Product(
            id=model.id,
            name=model.name,
            price=model.price,
            discount=model.discount,
            stock=StockLevel(
                quantity=model.stock_quantity,
                reserved=model.stock_reserved,
                sold=model.stock_sold,
            ),
            status=model.status,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    def _select(self):
        return select(ProductModel).execution_options(populate_existing=True)

    async def create(self, product: Product) -> Product:
        db_product = ProductModel(
            id=product.id,
            name=product.name,
            price=product.price,
            discount=product.discount,
            stock_quantity=product.stock.quantity,
            stock_reserved=product.stock.reserved,
            stock_sold=product.stock.sold,
            status=product.status,
        )
        self.session.add(db_product)
        await self.session.flush()
        await self.session.refresh(db_product)
        return self._to_entity(db_product)

    async def get_by_id(self, product_id: int) -> Optional[Product]:
        result = await self.session.execute(self._select().where(ProductModel.id == product_id))
        db_product = result.scalar_one_or_none()
        return self._to_entity(db_product) if db_product else None

    async def get_many(self, product_ids: Iterable[int]) -> Dict[int, Product]:
        ids = list(product_ids)
        if not ids:
            return {}
        result = await self.session.execute(self._select().where(ProductModel.id.in_(ids)))
        return {p.id: self._to_entity(p) for p in result.scalars().all()}

    async def try_decrement_stock(self, product_id: int, quantity: int) -> bool:
        result = await self.session.execute(
            update(ProductModel)
            .where(ProductModel.id == product_id, ProductModel.stock_quantity >= quantity)
            .values(
                stock_quantity=ProductModel.stock_quantity - quantity,
                stock_sold=ProductModel.stock_sold + quantity,
                updated_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.info("stock_decrement_rejected", product_id=product_id, quantity=quantity)
            return False
        return True

    async def increment_stock(self, product_id: int, quantity: int) -> None:
        await self.session.execute(
            update(ProductModel)
            .where(ProductModel.id == product_id)
            .values(
                stock_quantity=ProductModel.stock_quantity + quantity,
                stock_sold=case(
                    (ProductModel.stock_sold >= quantity, ProductModel.stock_sold - quantity),
                    else_=0,
                ),
                updated_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session=False)
        )
