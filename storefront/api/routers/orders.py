# storefront/api/routers/orders.py
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from storefront.data.database import get_db
from storefront.domain.errors import ShopError
from storefront.domain.schemas import OrderListOut, OrderOut
from storefront.services.order_service import OrderService

router = APIRouter(prefix="/orders", tags=["orders"])


@router.get("/", response_model=OrderListOut)
def list_orders(
    user_id: int = Query(...),
    payment_status: Optional[str] = Query("paid"),
    from_date: Optional[datetime] = Query(None),
    to_date: Optional[datetime] = Query(None),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    """
    Historia zamowien uzytkownika, domyslnie tylko oplacone.
    """
    svc = OrderService(db)
    return svc.list_orders(
        user_id,
        payment_status=payment_status or None,
        from_date=from_date,
        to_date=to_date,
        limit=limit,
        offset=offset,
    )


@router.get("/{order_id}", response_model=OrderOut)
def get_order(
    order_id: int,
    user_id: int = Query(...),
    db: Session = Depends(get_db),
):
    """
    Pobiera szczegoly zamowienia.
    """
    svc = OrderService(db)
    try:
        return svc.get_order(order_id, user_id)
    except ShopError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
