# lanka_basket/data/seed.py
from decimal import Decimal

from lanka_basket.data.database import Base, SessionLocal, engine
from lanka_basket.data.models import (
    AddressModel,
    CartItemModel,
    ProductModel,
    UserModel,
)
from lanka_basket.utils.logging import get_logger

logger = get_logger(__name__)


def seed():
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        # tylko pusta baza
        if db.query(UserModel).first():
            logger.info("Database already seeded")
            return

        customer = UserModel(name="Demo Customer", email="customer@lankabasket.lk", role="USER")
        admin = UserModel(name="Store Admin", email="admin@lankabasket.lk", role="ADMIN")
        db.add_all([customer, admin])
        db.flush()

        products = [
            ProductModel(name="Ceylon Tea 200g", price=Decimal("5.99"), discount=0, stock=100),
            ProductModel(name="Coconut Oil 1L", price=Decimal("2.00"), discount=0, stock=50),
            ProductModel(name="Basmati Rice 5kg", price=Decimal("12.50"), discount=10, stock=20),
        ]
        db.add_all(products)
        db.flush()

        db.add(
            AddressModel(
                user_id=customer.id,
                address_line="12 Galle Road",
                city="Colombo",
                state="Western",
                pincode="00300",
                country="Sri Lanka",
                mobile="+94770000000",
            )
        )
        db.add_all(
            [
                CartItemModel(user_id=customer.id, product_id=products[0].id, quantity=2),
                CartItemModel(user_id=customer.id, product_id=products[1].id, quantity=1),
            ]
        )
        db.commit()
        logger.info(f"Seeded users {customer.id}, {admin.id} and {len(products)} products")
    finally:
        db.close()


if __name__ == "__main__":
    seed()
