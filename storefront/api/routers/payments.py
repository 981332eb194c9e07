# storefront/api/routers/payments.py
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from storefront.api.deps import get_coupon_verifier, get_gateway, get_lock_service, get_notifier
from storefront.data.database import get_db, transaction
from storefront.domain.errors import ShopError
from storefront.domain.schemas import (
    CheckoutSessionIn,
    CheckoutSessionOut,
    VerifyPaymentIn,
    VerifyPaymentOut,
)
from storefront.services.checkout_service import CheckoutService
from storefront.services.payment_service import PaymentService

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("/checkout-session", response_model=CheckoutSessionOut, status_code=201)
def create_checkout_session(
    payload: CheckoutSessionIn,
    user_id: int = Query(...),
    db: Session = Depends(get_db),
    gateway=Depends(get_gateway),
    coupon_verifier=Depends(get_coupon_verifier),
):
    """
    Tworzy zamowienie (pending) i sesje platnosci w bramce.
    Blad bramki albo kuponu cofa cala transakcje.
    """
    svc = CheckoutService(db, gateway=gateway, coupon_verifier=coupon_verifier)
    try:
        with transaction(db):
            return svc.create_checkout_session(
                user_id=user_id,
                shipping_address_id=payload.shipping_address_id,
                mode=payload.mode,
                variant_id=payload.variant_id,
                quantity=payload.quantity,
                coupon_id=payload.coupon_id,
                coupon_code=payload.coupon_code,
                channel=payload.channel,
                shipping_cost=payload.shipping_cost,
            )
    except ShopError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/verify", response_model=VerifyPaymentOut)
def verify_payment(
    payload: VerifyPaymentIn,
    user_id: int = Query(...),
    db: Session = Depends(get_db),
    gateway=Depends(get_gateway),
    notifier=Depends(get_notifier),
):
    """
    Strona sukcesu po powrocie z bramki. Status platnosci pobierany z bramki.
    """
    svc = PaymentService(db, gateway=gateway, notifier=notifier)
    try:
        return svc.verify_payment(
            user_id=user_id,
            order_id=payload.order_id,
            session_id=payload.session_id,
            payment_intent=payload.payment_intent,
        )
    except ShopError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/webhook")
async def payment_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="Stripe-Signature"),
    db: Session = Depends(get_db),
    gateway=Depends(get_gateway),
    notifier=Depends(get_notifier),
    lock_service=Depends(get_lock_service),
):
    # podpis liczony jest z surowego body, nie z przeparsowanego JSON
    payload = await request.body()
    svc = PaymentService(db, gateway=gateway, notifier=notifier, lock_service=lock_service)
    try:
        # obsluga jest synchroniczna (DB, Redis, SDK), poza petla zdarzen
        return await run_in_threadpool(svc.handle_webhook, payload, stripe_signature)
    except ShopError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
