from datetime import datetime, timezone

from sqlalchemy import Column, Integer, ForeignKey, String, DateTime

from storefront.data.database import Base

REASON_ORDER_PAID = "order_paid"
REASON_ORDER_CANCELLED = "order_cancelled"


class InventoryTransactionModel(Base):
    """Ksiega zmian stanu, tylko INSERT (nigdy update/delete)."""

    __tablename__ = "inventory_transactions"

    id = Column(Integer, primary_key=True)
    variant_id = Column(Integer, ForeignKey("product_variants.id"), nullable=False, index=True)
    change = Column(Integer, nullable=False)  # < 0 zuzycie, > 0 zwrot na stan
    reason = Column(String, nullable=False)
    reference_id = Column(Integer, ForeignKey("orders.id"), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
