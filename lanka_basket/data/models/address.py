from sqlalchemy import Boolean, Column, ForeignKey, Integer, String

from lanka_basket.data.database import Base


class AddressModel(Base):
    __tablename__ = "addresses"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    address_line = Column(String, nullable=False)
    city = Column(String, nullable=False)
    state = Column(String, nullable=False)
    pincode = Column(String, nullable=False)
    country = Column(String, nullable=False)
    mobile = Column(String, nullable=True)

    # wylaczony adres traktujemy jak nieistniejacy
    status = Column(Boolean, nullable=False, default=True)

    def snapshot(self) -> dict:
        return {
            "id": self.id,
            "address_line": self.address_line,
            "city": self.city,
            "state": self.state,
            "pincode": self.pincode,
            "country": self.country,
            "mobile": self.mobile,
        }
