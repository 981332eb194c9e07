# storefront/domain/errors.py
"""
Bledy domenowe.
Kazdy blad niesie kod HTTP, routery tlumacza je na HTTPException,
wszystko inne konczy sie ogolnym 500.
"""


class ShopError(Exception):
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidRequest(ShopError):
    status_code = 400


class NotFound(ShopError):
    status_code = 404


class InsufficientStock(ShopError):
    status_code = 409


class AlreadyCancelled(ShopError):
    status_code = 409


class InvalidTransition(ShopError):
    status_code = 409


class PaymentNotConfirmed(ShopError):
    status_code = 402


class Conflict(ShopError):
    status_code = 409
