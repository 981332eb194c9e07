# storefront/domain/pricing.py
"""
Arytmetyka cen: rabat procentowy, zaokraglenia i rozdzial rabatu kuponu
na pozycje przekazywane do bramki platnosci.

Kwoty walutowe to Decimal z dwoma miejscami po przecinku, rozdzial rabatu
liczony jest w groszach (int), zeby suma pozycji zgadzala sie co do grosza.
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Sequence

from storefront.domain.errors import InvalidRequest

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value) -> Decimal:
    if value is None:
        return ZERO
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def apply_discount(base_price, discount_percent) -> Decimal:
    """base * (1 - pct/100), zaokraglone half-up do 2 miejsc."""
    base = Decimal(str(base_price))
    pct = Decimal(str(discount_percent or 0))
    return to_money(base * (Decimal(1) - pct / Decimal(100)))


def unit_price(line: Dict[str, Any]) -> Decimal:
    """sale_price jesli jest, inaczej price."""
    if line.get("sale_price") is not None:
        return Decimal(str(line["sale_price"]))
    return Decimal(str(line.get("price") or 0))


def line_quantity(line: Dict[str, Any]) -> int:
    """Ilosc pozycji, brak pola to 1. Zero i ujemne sa bledem, nie 1."""
    quantity = line.get("quantity")
    if quantity is None:
        return 1
    quantity = int(quantity)
    if quantity <= 0:
        raise InvalidRequest(f"Niepoprawna ilosc pozycji: {quantity}")
    return quantity


def items_total(items: Sequence[Dict[str, Any]]) -> Decimal:
    # zaokraglenie raz, na koncu
    total = sum((unit_price(it) * line_quantity(it) for it in items), Decimal(0))
    return to_money(total)


def to_cents(amount) -> int:
    return int(to_money(amount) * 100)


def allocate_discount(line_cents: Sequence[int], discount_cents: int) -> List[int]:
    """
    Rozdziela rabat proporcjonalnie do udzialu pozycji w sumie.

    Kazda pozycja poza ostatnia dostaje floor(rabat * udzial), ostatnia
    domyka sume do subtotal - rabat. Zwraca sumy pozycji po rabacie.
    """
    if not line_cents:
        return []

    subtotal = sum(line_cents)
    discount_cents = max(0, min(discount_cents, subtotal))
    target = subtotal - discount_cents

    adjusted = []
    for cents in line_cents[:-1]:
        share = (discount_cents * cents) // subtotal if subtotal > 0 else 0
        adjusted.append(cents - share)

    last = target - sum(adjusted)
    if last < 0:
        # oddaj niedobor z wczesniejszych pozycji, od konca
        deficit = -last
        last = 0
        for idx in range(len(adjusted) - 1, -1, -1):
            take = min(deficit, adjusted[idx])
            adjusted[idx] -= take
            deficit -= take
            if deficit == 0:
                break
    adjusted.append(last)
    return adjusted


def split_line(total_cents: int, quantity: int) -> List[Dict[str, int]]:
    """
    Rozbija sume pozycji na max dwie linie (cena jednostkowa * ilosc)
    tak, zeby suma unit_amount * quantity == total_cents.
    """
    quantity = max(1, quantity)
    unit, rest = divmod(total_cents, quantity)
    if rest == 0:
        return [{"unit_amount": unit, "quantity": quantity}]
    return [
        {"unit_amount": unit + 1, "quantity": rest},
        {"unit_amount": unit, "quantity": quantity - rest},
    ]


def prorate_line_items(
    items: Sequence[Dict[str, Any]],
    discount,
    shipping_cost,
    currency: str,
) -> List[Dict[str, Any]]:
    """
    Buduje pozycje dla bramki platnosci z rozdzielonym rabatem kuponu.
    Wysylka (jesli > 0) idzie jako osobna pozycja bez rabatu.
    """
    line_cents = [to_cents(unit_price(it)) * line_quantity(it) for it in items]
    adjusted = allocate_discount(line_cents, to_cents(discount))

    line_items = []
    for it, total_cents in zip(items, adjusted):
        product = it.get("product") or {}
        name = product.get("name") or it.get("name") or "Product"
        image = product.get("image")
        for part in split_line(total_cents, line_quantity(it)):
            line_items.append(
                {
                    "name": name,
                    "image": image,
                    "currency": currency,
                    "unit_amount": part["unit_amount"],
                    "quantity": part["quantity"],
                }
            )

    shipping_cents = to_cents(shipping_cost)
    if shipping_cents > 0:
        line_items.append(
            {
                "name": "Shipping",
                "image": None,
                "currency": currency,
                "unit_amount": shipping_cents,
                "quantity": 1,
            }
        )
    return line_items


def line_items_total(line_items: Sequence[Dict[str, Any]]) -> int:
    return sum(li["unit_amount"] * li["quantity"] for li in line_items)
