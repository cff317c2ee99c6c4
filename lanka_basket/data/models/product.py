from sqlalchemy import Boolean, Column, Integer, Numeric, String

from lanka_basket.data.database import Base


class ProductModel(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)

    price = Column(Numeric(10, 2), nullable=False)
    discount = Column(Integer, nullable=False, default=0)  # procent
    stock = Column(Integer, nullable=False, default=0)
    publish = Column(Boolean, nullable=False, default=True)
