# storefront/services/coupon_client.py
from decimal import Decimal
from typing import Any, Dict, List

import requests

from storefront.domain.schemas import CouponVerification
from storefront.utils.retry import http_retry
from storefront.utils.settings import COUPON_SERVICE_URL
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class CouponClient:
    """
    Klient serwisu kuponow.
    Zwraca {success, discount, free_shipping, coupon}, kwota rabatu
    jest dla checkoutu nieprzezroczysta.
    """

    def __init__(self, base_url: str | None = None, timeout: int = 2):
        self.base_url = (base_url or COUPON_SERVICE_URL).rstrip("/")
        self.timeout = timeout

    @http_retry()
    def _post(self, url: str, payload: dict) -> requests.Response:
        resp = requests.post(url, json=payload, timeout=self.timeout)
        # 4xx to odpowiedz biznesowa (kupon odrzucony), nie powtarzamy
        if resp.status_code >= 500:
            resp.raise_for_status()
        return resp

    def verify(
        self,
        code: str | None,
        user_id: int,
        channel: str,
        subtotal: Decimal,
        shipping_cost: Decimal,
        items: List[Dict[str, Any]],
        coupon_id: int | None = None,
    ) -> CouponVerification:
        url = f"{self.base_url}/coupons/verify"
        logger.info(f"CouponClient POST {url} code={code} coupon_id={coupon_id}")

        payload = {
            "code": code,
            "coupon_id": coupon_id,
            "user_id": user_id,
            "channel": channel,
            "subtotal": str(subtotal),
            "shipping_cost": str(shipping_cost),
            "items": [
                {
                    "product_id": it.get("product_id"),
                    "variant_id": it.get("variant_id"),
                    "quantity": it.get("quantity"),
                    "unit_price": str(it.get("sale_price") if it.get("sale_price") is not None else it.get("price")),
                }
                for it in items
            ],
        }

        resp = self._post(url, payload)
        body = resp.json() if resp.content else {}

        if resp.status_code >= 400 or not body.get("success"):
            return CouponVerification(
                success=False,
                message=body.get("message") or "Kupon jest nieprawidlowy",
            )

        data = body.get("data") or {}
        return CouponVerification(
            success=True,
            message=body.get("message"),
            discount=Decimal(str(data.get("discount") or 0)),
            free_shipping=bool(data.get("free_shipping")),
            coupon=data.get("coupon"),
        )
