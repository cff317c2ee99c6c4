# lanka_basket/repos/order_repo.py
from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from lanka_basket.data.models.order import OrderModel


class OrderRepo:
    def __init__(self, db: Session):
        self.db = db

    def add_order(self, order: OrderModel) -> OrderModel:
        # bez commita, transakcja nalezy do serwisu
        self.db.add(order)
        self.db.flush()
        return order

    def get_order(self, order_id: str) -> OrderModel | None:
        return self.db.execute(
            select(OrderModel)
            .options(selectinload(OrderModel.items))
            .where(OrderModel.order_id == order_id)
        ).scalar_one_or_none()

    def get_by_session_id(self, session_id: str) -> OrderModel | None:
        return self.db.execute(
            select(OrderModel).where(OrderModel.checkout_session_id == session_id)
        ).scalar_one_or_none()

    def list_for_user(self, user_id: int) -> list[OrderModel]:
        return list(
            self.db.execute(
                select(OrderModel)
                .options(selectinload(OrderModel.items))
                .where(OrderModel.user_id == user_id)
                .order_by(OrderModel.created_at.desc(), OrderModel.id.desc())
            ).scalars().all()
        )

    def list_all(self) -> list[OrderModel]:
        return list(
            self.db.execute(
                select(OrderModel)
                .options(selectinload(OrderModel.items))
                .order_by(OrderModel.created_at.desc(), OrderModel.id.desc())
            ).scalars().all()
        )

    def commit(self):
        self.db.commit()

    def rollback(self):
        self.db.rollback()
