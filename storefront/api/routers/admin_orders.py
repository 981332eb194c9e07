# storefront/api/routers/admin_orders.py
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from storefront.api.deps import get_notifier
from storefront.data.database import get_db, transaction
from storefront.domain.errors import ShopError
from storefront.domain.schemas import (
    CancelOrderIn,
    CancelOrderOut,
    OrderOut,
    OrderStatusIn,
    RefundStatusIn,
)
from storefront.services.notification_service import ORDER_CANCELLED, ORDER_STATUS_CHANGED
from storefront.services.order_service import OrderService

router = APIRouter(prefix="/admin/orders", tags=["admin"])


@router.post("/{order_id}/cancel", response_model=CancelOrderOut)
def cancel_order(
    order_id: int,
    payload: CancelOrderIn | None = None,
    db: Session = Depends(get_db),
    notifier=Depends(get_notifier),
):
    """
    Anulowanie zamowienia ze zwrotem stanu.
    Powiadomienie idzie dopiero po commicie.
    """
    svc = OrderService(db)
    reason = payload.reason if payload else None
    try:
        with transaction(db):
            result = svc.cancel_order(order_id, reason=reason)
    except ShopError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)

    notifier.enqueue(
        ORDER_CANCELLED,
        {
            "order_id": result.order_id,
            "order_no": result.order_no,
            "user_id": result.user_id,
            "reason": reason,
        },
    )
    return CancelOrderOut(
        order_id=result.order_id,
        order_status="cancelled",
        restored_items=result.restored_items,
    )


@router.post("/{order_id}/payment-status", response_model=OrderOut)
def update_payment_status(
    order_id: int,
    payload: RefundStatusIn,
    db: Session = Depends(get_db),
):
    svc = OrderService(db)
    try:
        with transaction(db):
            order = svc.update_payment_status_after_cancel(order_id, payload.payment_status)
        return order
    except ShopError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.patch("/{order_id}/status", response_model=OrderOut)
def update_order_status(
    order_id: int,
    payload: OrderStatusIn,
    db: Session = Depends(get_db),
    notifier=Depends(get_notifier),
):
    svc = OrderService(db)
    try:
        with transaction(db):
            order = svc.update_order_status(order_id, payload.order_status, note=payload.note)
    except ShopError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)

    notifier.enqueue(
        ORDER_STATUS_CHANGED,
        {
            "order_id": order.id,
            "order_no": order.order_no,
            "user_id": order.user_id,
            "order_status": order.order_status,
            "note": payload.note,
        },
    )
    return order
