# storefront/domain/schemas.py
from pydantic import BaseModel, Field, ConfigDict
from typing import Any, Dict, List, Literal, Optional
from decimal import Decimal
from datetime import datetime


# =====================================================
# CART
# =====================================================
class ItemIn(BaseModel):
    """Schema dla dodawania wariantu do koszyka."""

    variant_id: int = Field(..., gt=0, description="ID wariantu (musi być > 0)")
    quantity: int = Field(1, gt=0, description="Ilość (musi być > 0)")


class UpdateItemIn(BaseModel):
    """Schema dla zmiany ilości pozycji, 0 usuwa pozycję."""

    quantity: int = Field(..., ge=0, description="Nowa ilość (>= 0)")


class GuestCartItemIn(BaseModel):
    """Pozycja koszyka gościa. Niepoprawne pozycje są pomijane przy synchronizacji."""

    variant_id: int
    quantity: int = 1


class SyncCartIn(BaseModel):
    items: List[GuestCartItemIn] = Field(default_factory=list)


class VariantRef(BaseModel):
    id: int
    size: Optional[str] = None
    color: Optional[str] = None


class ProductRef(BaseModel):
    id: int
    name: str
    image: Optional[str] = None


class CartLineOut(BaseModel):
    cart_item_id: int
    variant: VariantRef
    sku: Optional[str] = None
    product: ProductRef
    quantity: int
    variant_price: Decimal
    sale_price: Decimal
    discount_percent: Decimal
    line_total: Decimal
    stock: Optional[int] = None
    brand_name: Optional[str] = None


class CartOut(BaseModel):
    """Schema dla koszyka (response), ceny liczone na żywo."""

    cart_id: int
    user_id: int
    items: List[CartLineOut]
    subtotal: Decimal
    discount_total: Decimal
    total_items: int
    total_payable: Decimal


# =====================================================
# USERS
# =====================================================
class UserCreate(BaseModel):
    """Schema dla tworzenia użytkownika."""

    id: int = Field(..., gt=0, description="ID użytkownika (musi być > 0)")
    full_name: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., min_length=3, max_length=255)


class UserRead(BaseModel):
    id: int
    full_name: str
    email: str

    model_config = ConfigDict(from_attributes=True)


class AddressCreate(BaseModel):
    label: Optional[str] = None
    street: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    state: Optional[str] = None
    postal_code: Optional[str] = None
    country: str = Field(..., min_length=2)
    lat: Optional[float] = None
    lon: Optional[float] = None
    mobile: Optional[str] = None


class AddressRead(AddressCreate):
    id: int
    user_id: int

    model_config = ConfigDict(from_attributes=True)


# =====================================================
# ORDERS
# =====================================================
class OrderItemOut(BaseModel):
    id: int
    variant_id: Optional[int] = None
    quantity: int
    price: Decimal
    product_link: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class OrderOut(BaseModel):
    """Schema dla zamówienia (response)."""

    id: int
    order_no: str
    user_id: int
    total_amount: Decimal
    discount_amount: Decimal
    shipping_cost: Decimal
    payment_status: str
    order_status: str
    shipping_address: Dict[str, Any]
    billing_address: Optional[Dict[str, Any]] = None
    coupon_id: Optional[int] = None
    coupon_code: Optional[str] = None
    payment_reference: Optional[str] = None
    created_at: datetime
    items: List[OrderItemOut] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


class OrderListOut(BaseModel):
    total: int
    limit: int
    offset: int
    orders: List[OrderOut]


# =====================================================
# PAYMENTS
# =====================================================
class CheckoutSessionIn(BaseModel):
    """Schema dla utworzenia sesji płatności (koszyk albo "kup teraz")."""

    mode: Literal["cart", "buy_now"] = "cart"
    shipping_address_id: int = Field(..., gt=0)
    variant_id: Optional[int] = Field(None, gt=0)
    quantity: int = Field(1, gt=0)
    coupon_id: Optional[int] = None
    coupon_code: Optional[str] = None
    channel: str = "WEB"
    shipping_cost: Decimal = Field(Decimal("0.00"), ge=0)


class CheckoutSessionOut(BaseModel):
    order_id: int
    order_no: str
    session_id: str
    url: Optional[str] = None
    amount_total: Decimal


class VerifyPaymentIn(BaseModel):
    order_id: int = Field(..., gt=0)
    session_id: Optional[str] = None
    payment_intent: Optional[str] = None


class VerifyPaymentOut(BaseModel):
    order_id: int
    order_no: str
    payment_reference: Optional[str] = None
    status: str
    already_processed: bool


class CouponVerification(BaseModel):
    """Wynik weryfikacji kuponu, dla Order Buildera to tylko liczba."""

    success: bool
    message: Optional[str] = None
    discount: Decimal = Decimal("0.00")
    free_shipping: bool = False
    coupon: Optional[Dict[str, Any]] = None


# =====================================================
# ADMIN
# =====================================================
class CancelOrderIn(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class CancelOrderOut(BaseModel):
    order_id: int
    order_status: str
    restored_items: int


class RefundStatusIn(BaseModel):
    payment_status: str = Field(..., description="refund_initiated albo refund_completed")


class OrderStatusIn(BaseModel):
    order_status: str
    note: Optional[str] = Field(None, max_length=500)
