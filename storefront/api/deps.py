# storefront/api/deps.py
"""
Zaleznosci zewnetrzne dla routerow.
Testy podmieniaja je przez app.dependency_overrides.
"""
from storefront.services.coupon_client import CouponClient
from storefront.services.lock_service import LockService
from storefront.services.notification_service import NotificationService
from storefront.services.payment_gateway import PaymentGateway


def get_gateway() -> PaymentGateway:
    return PaymentGateway()


def get_coupon_verifier() -> CouponClient:
    return CouponClient()


def get_notifier() -> NotificationService:
    return NotificationService()


def get_lock_service() -> LockService:
    return LockService()
