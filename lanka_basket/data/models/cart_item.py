from sqlalchemy import Column, ForeignKey, Integer, UniqueConstraint

from lanka_basket.data.database import Base


class CartItemModel(Base):
    __tablename__ = "cart_items"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)

    quantity = Column(Integer, nullable=False, default=1)

    __table_args__ = (UniqueConstraint("user_id", "product_id", name="u_cart_user_product"),)
