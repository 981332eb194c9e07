from datetime import datetime, timezone

from sqlalchemy import Column, Integer, ForeignKey, String, DateTime, Numeric, JSON
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship

from storefront.data.database import Base

JsonType = JSON().with_variant(JSONB(), "postgresql")

PAYMENT_STATUSES = ("pending", "paid", "failed", "refund_initiated", "refund_completed")
ORDER_STATUSES = ("created", "pending", "processing", "shipped", "delivered", "cancelled")


class OrderModel(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True)
    order_no = Column(String(32), nullable=False, unique=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    total_amount = Column(Numeric(10, 2), nullable=False)  # suma pozycji
    discount_amount = Column(Numeric(10, 2), nullable=False, default=0)
    shipping_cost = Column(Numeric(10, 2), nullable=False, default=0)

    payment_status = Column(String, nullable=False, default="pending")
    order_status = Column(String, nullable=False, default="created")

    shipping_address = Column(JsonType, nullable=False)
    billing_address = Column(JsonType, nullable=True)

    coupon_id = Column(Integer, nullable=True)
    coupon_code = Column(String, nullable=True)

    gateway_session_id = Column(String, nullable=True, index=True)
    payment_reference = Column(String, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    items = relationship("OrderItemModel", back_populates="order", order_by="OrderItemModel.id")
