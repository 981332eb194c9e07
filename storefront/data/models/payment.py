from datetime import datetime, timezone

from sqlalchemy import Column, Integer, ForeignKey, String, DateTime, Numeric

from storefront.data.database import Base
from storefront.data.models.order import JsonType


class PaymentModel(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, unique=True)

    amount = Column(Numeric(10, 2), nullable=False, default=0)
    method = Column(String, nullable=False, default="stripe")
    status = Column(String, nullable=False)
    currency = Column(String(3), nullable=True)

    gateway_session_id = Column(String, nullable=True)
    gateway_payment_intent_id = Column(String, nullable=True)
    provider_response = Column(JsonType, nullable=True)

    paid_at = Column(DateTime(timezone=True), nullable=True, default=lambda: datetime.now(timezone.utc))
