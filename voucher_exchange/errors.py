"""Error hierarchy for the voucher exchange.

Every error carries a code and an HTTP status so the API layer can map it to
a uniform JSON envelope. Messages never include stored record contents.
"""

from typing import Optional


class VoucherError(Exception):
    """Base exception for all voucher exchange failures."""

    def __init__(self, message: str, code: str, http_status: int = 500):
        super().__init__(message)
        self.message = message
        self.code = code
        self.http_status = http_status

    def to_response(self) -> dict:
        return {
            "success": False,
            "error": {
                "code": self.code,
                "message": self.message,
            },
        }


# ---------------------------
# Identity
# ---------------------------

class Unauthenticated(VoucherError):
    def __init__(self, message: str = "Authentication required"):
        super().__init__(message, "UNAUTHENTICATED", 401)


class Unauthorized(VoucherError):
    def __init__(self, email: str):
        super().__init__("User not authorized", "UNAUTHORIZED", 401)
        self.email = email


class ConfigurationError(VoucherError):
    def __init__(self, message: str):
        super().__init__(message, "CONFIGURATION_ERROR", 500)


# ---------------------------
# Voucher lifecycle
# ---------------------------

class VoucherNotFound(VoucherError):
    def __init__(self, voucher_id: str):
        super().__init__(
            f"Voucher '{voucher_id}' not found", "VOUCHER_NOT_FOUND", 404,
        )
        self.voucher_id = voucher_id


class Forbidden(VoucherError):
    def __init__(self, voucher_id: str):
        super().__init__(
            "This voucher was not issued to you", "VOUCHER_FORBIDDEN", 403,
        )
        self.voucher_id = voucher_id


class AlreadyUsed(VoucherError):
    def __init__(self, voucher_id: str):
        super().__init__(
            "This voucher has already been redeemed", "VOUCHER_ALREADY_USED", 400,
        )
        self.voucher_id = voucher_id


# ---------------------------
# Storage
# ---------------------------

class StoreError(VoucherError):
    def __init__(self, message: str, operation: str, key: Optional[str] = None):
        super().__init__(
            f"Store {operation} failed: {message}", "STORE_ERROR", 503,
        )
        self.operation = operation
        self.key = key
