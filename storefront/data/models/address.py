# storefront/data/models/address.py
from sqlalchemy import Column, Integer, ForeignKey, String, Float, DateTime
from sqlalchemy.orm import relationship

from storefront.data.database import Base


class AddressModel(Base):
    __tablename__ = "addresses"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    label = Column(String, nullable=True)
    street = Column(String, nullable=False)
    city = Column(String, nullable=False)
    state = Column(String, nullable=True)
    postal_code = Column(String, nullable=True)
    country = Column(String, nullable=False)
    lat = Column(Float, nullable=True)
    lon = Column(Float, nullable=True)
    mobile = Column(String, nullable=True)

    deleted_at = Column(DateTime(timezone=True), nullable=True)

    user = relationship("UserModel", back_populates="addresses")

    def snapshot(self) -> dict:
        """Niezmienny zrzut adresu zapisywany w zamowieniu."""
        return {
            "id": self.id,
            "label": self.label,
            "street": self.street,
            "city": self.city,
            "state": self.state,
            "postal_code": self.postal_code,
            "country": self.country,
            "lat": self.lat,
            "lon": self.lon,
            "mobile": self.mobile,
        }
