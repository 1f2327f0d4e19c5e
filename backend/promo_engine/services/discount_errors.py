"""
Failure kinds of the discount engine.

Every error carries a stable `kind` (shown to checkout so it can explain why a
code was refused), a human-readable message and the HTTP status the API
answers with. evaluate() turns them into values; redeem() and the authoring
service raise them.
"""
from typing import Optional
from fastapi import status


class DiscountError(Exception):
    kind = "DiscountError"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Discount code cannot be applied."
    transient = False

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"kind": self.kind, "message": self.message}


class CodeNotFound(DiscountError):
    kind = "CodeNotFound"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Invalid discount code."


class CodeInactive(DiscountError):
    kind = "CodeInactive"
    status_code = status.HTTP_409_CONFLICT
    default_message = "This discount code is not active."


class CodeNotYetActive(DiscountError):
    kind = "CodeNotYetActive"
    status_code = status.HTTP_409_CONFLICT
    default_message = "This discount code is not yet valid."


class CodeExpired(DiscountError):
    kind = "CodeExpired"
    status_code = status.HTTP_409_CONFLICT
    default_message = "This discount code has expired."


class ScopeMismatch(DiscountError):
    kind = "ScopeMismatch"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_message = "This discount code is not applicable to this cart."


class BelowMinimumAmount(DiscountError):
    kind = "BelowMinimumAmount"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY

    def __init__(self, minimum_amount: int, message: Optional[str] = None):
        self.minimum_amount = minimum_amount
        super().__init__(message or f"A minimum purchase of {minimum_amount} is required for this discount code.")

    def to_dict(self) -> dict:
        return {**super().to_dict(), "minimum_amount": self.minimum_amount}


class UsageLimitExceeded(DiscountError):
    kind = "UsageLimitExceeded"
    status_code = status.HTTP_409_CONFLICT
    default_message = "This discount code has reached its maximum uses."


class AlreadyUsedByUser(DiscountError):
    kind = "AlreadyUsedByUser"
    status_code = status.HTTP_409_CONFLICT
    default_message = "You have already used this discount code."


class DailyLimitExceeded(DiscountError):
    kind = "DailyLimitExceeded"
    status_code = status.HTTP_409_CONFLICT
    default_message = "This discount code has reached its limit for today."


class Unauthorized(DiscountError):
    kind = "Unauthorized"
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "You are not allowed to manage this discount code."


class ServerBusy(DiscountError):
    kind = "ServerBusy"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = "The server is busy. Please try again."
    transient = True


class InvalidDiscountCode(DiscountError):
    kind = "InvalidDiscountCode"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid discount code data."


class DuplicateDiscountCode(DiscountError):
    kind = "DuplicateDiscountCode"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, code: str):
        self.code = code
        super().__init__(f"Discount code '{code}' already exists.")


class DiscountCodeMissing(DiscountError):
    """Authoring lookup by id found nothing."""
    kind = "DiscountCodeMissing"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Discount code not found."
