from datetime import datetime
from enum import Enum
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


class VoucherStatus(str, Enum):
    UNUSED = "unused"
    USED = "used"


class VoucherBase(BaseModel):
    # unknown stored fields survive a redeem write-back
    model_config = ConfigDict(extra="allow")

    id: str
    issuer: str
    recipient: str
    issuedAt: datetime
    redeemedAt: Optional[datetime] = None
    status: VoucherStatus = VoucherStatus.UNUSED

    @property
    def is_legacy(self) -> bool:
        return self.format == "legacy"

    @property
    def is_used(self) -> bool:
        return self.status == VoucherStatus.USED

    def to_record(self) -> dict:
        """Flat persisted shape; the format tag is derived, never stored."""
        record = self.model_dump(mode="json", exclude={"format"})
        if record.get("redeemedAt") is None:
            record.pop("redeemedAt", None)
        return record


class NewFormatVoucher(VoucherBase):
    format: Literal["email"] = "email"


class LegacyVoucher(VoucherBase):
    # issuer/recipient are free-text display names from before email identities
    format: Literal["legacy"] = "legacy"


Voucher = Union[NewFormatVoucher, LegacyVoucher]


def _tag_format(data: dict) -> dict:
    issuer = data.get("issuer") or ""
    if not isinstance(issuer, str):
        raise ValueError("voucher issuer must be a string")
    tagged = dict(data)
    tagged["format"] = "email" if "@" in issuer else "legacy"
    return tagged


def load_voucher(data: dict) -> Voucher:
    """Resolve a stored record into its tagged variant.

    A record is legacy format iff its issuer has no '@'.
    """
    if not isinstance(data, dict):
        raise ValueError("voucher record must be a JSON object")
    tagged = _tag_format(data)
    if tagged["format"] == "email":
        return NewFormatVoucher.model_validate(tagged)
    return LegacyVoucher.model_validate(tagged)


# ---------------------------
# Identity
# ---------------------------

class Principal(BaseModel):
    email: str
    name: Optional[str] = None


# ---------------------------
# API payloads
# ---------------------------

class RedeemRequest(BaseModel):
    token: str = Field(min_length=1)


class VoucherOut(BaseModel):
    id: str
    issuer: str
    recipient: str
    issuedAt: datetime
    redeemedAt: Optional[datetime] = None
    status: VoucherStatus

    @model_validator(mode="before")
    @classmethod
    def from_voucher(cls, value):
        if isinstance(value, VoucherBase):
            return value.model_dump(exclude={"format"})
        return value


class IssueResponse(BaseModel):
    success: bool = True
    voucher: VoucherOut
    voucherUrl: str
    issuerName: str
    recipientName: str


class VoucherResponse(BaseModel):
    success: bool = True
    voucher: VoucherOut


class VoucherStats(BaseModel):
    total: int
    unused: int
    used: int
    vouchers: List[VoucherOut]
    issuedVouchers: List[VoucherOut]
    receivedVouchers: List[VoucherOut]
