from sqlalchemy.orm import Session
from lanka_basket.data.models.address import AddressModel


class AddressRepo:
    def __init__(self, db: Session):
        self.db = db

    def get_address(self, address_id: int) -> AddressModel | None:
        return self.db.get(AddressModel, address_id)
