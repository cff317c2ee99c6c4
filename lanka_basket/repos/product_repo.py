# lanka_basket/repos/product_repo.py
from sqlalchemy import case, select, update
from sqlalchemy.orm import Session

from lanka_basket.data.models.product import ProductModel


class ProductRepo:
    def __init__(self, db: Session):
        self.db = db

    def get_products(self, product_ids) -> dict[int, ProductModel]:
        rows = self.db.execute(
            select(ProductModel).where(ProductModel.id.in_(list(product_ids)))
        ).scalars().all()
        return {p.id: p for p in rows}

    def decrement_stock(self, product_id: int, quantity: int) -> int:
        # UPDATE products SET stock = stock - q WHERE id = ? AND stock >= q
        result = self.db.execute(
            update(ProductModel)
            .where(ProductModel.id == product_id, ProductModel.stock >= quantity)
            .values(stock=ProductModel.stock - quantity)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def decrement_stock_clamped(self, product_id: int, quantity: int) -> int:
        result = self.db.execute(
            update(ProductModel)
            .where(ProductModel.id == product_id)
            .values(
                stock=case(
                    (ProductModel.stock >= quantity, ProductModel.stock - quantity),
                    else_=0,
                )
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount
