# storefront/api/routers/carts.py
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from storefront.data.database import get_db, transaction
from storefront.domain.errors import ShopError
from storefront.domain.schemas import CartOut, ItemIn, SyncCartIn, UpdateItemIn
from storefront.services.cart_service import CartService

router = APIRouter(prefix="/cart", tags=["cart"])


@router.get("/", response_model=CartOut)
def get_cart(
    user_id: int = Query(...),
    db: Session = Depends(get_db),
):
    svc = CartService(db)
    # pierwszy odczyt moze zalozyc pusty koszyk
    with transaction(db):
        return svc.get_cart(user_id)


@router.post("/items", response_model=CartOut)
def add_item(
    payload: ItemIn,
    user_id: int = Query(...),
    db: Session = Depends(get_db),
):
    svc = CartService(db)
    try:
        with transaction(db):
            return svc.add_item(user_id, payload.variant_id, payload.quantity)
    except ShopError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.patch("/items/{item_id}", response_model=CartOut)
def update_item(
    item_id: int,
    payload: UpdateItemIn,
    user_id: int = Query(...),
    db: Session = Depends(get_db),
):
    svc = CartService(db)
    try:
        with transaction(db):
            return svc.update_item(user_id, item_id, payload.quantity)
    except ShopError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.delete("/items/{item_id}", response_model=CartOut)
def remove_item(
    item_id: int,
    user_id: int = Query(...),
    db: Session = Depends(get_db),
):
    svc = CartService(db)
    with transaction(db):
        return svc.remove_item(user_id, item_id)


@router.delete("/", response_model=CartOut)
def clear_cart(
    user_id: int = Query(...),
    db: Session = Depends(get_db),
):
    svc = CartService(db)
    with transaction(db):
        svc.clear_cart(user_id)
        return svc.get_cart(user_id)


@router.post("/sync", response_model=CartOut)
def sync_cart(
    payload: SyncCartIn,
    user_id: int = Query(...),
    db: Session = Depends(get_db),
):
    """
    Scala koszyk goscia (localStorage) z koszykiem uzytkownika po zalogowaniu.
    """
    svc = CartService(db)
    with transaction(db):
        return svc.sync_guest_cart(user_id, [it.model_dump() for it in payload.items])
