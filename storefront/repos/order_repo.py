# storefront/repos/order_repo.py
from datetime import datetime
from typing import List, Tuple

from sqlalchemy import select, func
from sqlalchemy.orm import Session, selectinload

from storefront.data.models.order import OrderModel
from storefront.data.models.order_item import OrderItemModel
from storefront.data.models.payment import PaymentModel
from storefront.data.models.audit_log import AuditLogModel


class OrderRepo:
    def __init__(self, db: Session):
        self.db = db

    def create_order(self, order: OrderModel) -> OrderModel:
        self.db.add(order)
        self.db.flush()
        return order

    def add_order_item(self, item: OrderItemModel) -> OrderItemModel:
        self.db.add(item)
        return item

    def order_no_exists(self, order_no: str) -> bool:
        return self.db.execute(
            select(OrderModel.id).where(OrderModel.order_no == order_no)
        ).first() is not None

    def get_order(self, order_id: int) -> OrderModel | None:
        return self.db.execute(
            select(OrderModel).where(
                OrderModel.id == order_id,
                OrderModel.deleted_at.is_(None),
            )
        ).scalar_one_or_none()

    def lock_order(self, order_id: int, include_deleted: bool = False) -> OrderModel | None:
        #jedyny punkt serializacji przejsc statusu zamowienia
        stmt = select(OrderModel).where(OrderModel.id == order_id)
        if not include_deleted:
            stmt = stmt.where(OrderModel.deleted_at.is_(None))
        return self.db.execute(stmt.with_for_update()).scalar_one_or_none()

    def get_order_items(self, order_id: int) -> List[OrderItemModel]:
        return list(
            self.db.execute(
                select(OrderItemModel)
                .where(
                    OrderItemModel.order_id == order_id,
                    OrderItemModel.deleted_at.is_(None),
                )
                .order_by(OrderItemModel.id)
            ).scalars()
        )

    def get_user_order(self, order_id: int, user_id: int) -> OrderModel | None:
        return self.db.execute(
            select(OrderModel)
            .options(selectinload(OrderModel.items))
            .where(
                OrderModel.id == order_id,
                OrderModel.user_id == user_id,
                OrderModel.deleted_at.is_(None),
            )
        ).scalar_one_or_none()

    def list_user_orders(
        self,
        user_id: int,
        payment_status: str | None = None,
        from_date: datetime | None = None,
        to_date: datetime | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> Tuple[int, List[OrderModel]]:
        filters = [OrderModel.user_id == user_id, OrderModel.deleted_at.is_(None)]
        if payment_status:
            filters.append(OrderModel.payment_status == payment_status)
        if from_date:
            filters.append(OrderModel.created_at >= from_date)
        if to_date:
            filters.append(OrderModel.created_at <= to_date)

        total = self.db.execute(
            select(func.count(OrderModel.id)).where(*filters)
        ).scalar_one()
        if total == 0:
            return 0, []

        orders = list(
            self.db.execute(
                select(OrderModel)
                .options(selectinload(OrderModel.items))
                .where(*filters)
                .order_by(OrderModel.created_at.desc(), OrderModel.id.desc())
                .limit(limit)
                .offset(offset)
            ).scalars()
        )
        return total, orders

    def upsert_payment(self, order_id: int, **fields) -> PaymentModel:
        payment = self.db.execute(
            select(PaymentModel).where(PaymentModel.order_id == order_id)
        ).scalar_one_or_none()
        if payment is None:
            payment = PaymentModel(order_id=order_id)
            self.db.add(payment)
        for key, value in fields.items():
            setattr(payment, key, value)
        self.db.flush()
        return payment

    def add_audit_log(self, table_name: str, record_id: int, action: str, payload: dict) -> AuditLogModel:
        entry = AuditLogModel(
            table_name=table_name,
            record_id=record_id,
            action=action,
            payload=payload,
        )
        self.db.add(entry)
        self.db.flush()
        return entry
