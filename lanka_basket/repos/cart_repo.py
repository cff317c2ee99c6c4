# lanka_basket/repos/cart_repo.py
from sqlalchemy import delete
from sqlalchemy.orm import Session

from lanka_basket.data.models.cart_item import CartItemModel


class CartRepo:
    def __init__(self, db: Session):
        self.db = db

    def remove_products(self, user_id: int, product_ids) -> int:
        result = self.db.execute(
            delete(CartItemModel)
            .where(
                CartItemModel.user_id == user_id,
                CartItemModel.product_id.in_(list(product_ids)),
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount
