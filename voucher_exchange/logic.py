import logging
import uuid
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from .errors import AlreadyUsed, Forbidden, VoucherNotFound
from .identity import IdentityResolver
from .models import (
    NewFormatVoucher,
    Principal,
    Voucher,
    VoucherOut,
    VoucherStats,
    VoucherStatus,
)
from .storage import VoucherStore

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_voucher_id() -> str:
    return str(uuid.uuid4())


def build_voucher_url(base_url: str, voucher_id: str) -> str:
    return f"{base_url.rstrip('/')}/voucher/{voucher_id}"


def extract_token(raw: str) -> str:
    """Accept a bare voucher id or a scanned redemption URL."""
    value = raw.strip()
    if "voucher/" not in value:
        return value
    token = value.split("voucher/", 1)[1]
    return token.split("?", 1)[0].split("#", 1)[0].strip("/")


# ---------------------------
# Issue
# ---------------------------

def issue_voucher(
    store: VoucherStore,
    identity: IdentityResolver,
    principal: Principal,
    now: Optional[datetime] = None,
) -> Voucher:
    allowed = identity.allowed_principals()
    recipient = identity.counterparty(principal, allowed)

    voucher = NewFormatVoucher(
        id=new_voucher_id(),
        issuer=principal.email,
        recipient=recipient,
        issuedAt=now or utcnow(),
        status=VoucherStatus.UNUSED,
    )
    store.put(voucher.id, voucher)
    logger.info(
        "Issued voucher", extra={"voucher_id": voucher.id, "principal": principal.email},
    )
    return voucher


# ---------------------------
# Redeem
# ---------------------------

def get_voucher(store: VoucherStore, token: str) -> Voucher:
    voucher = store.get(token)
    if voucher is None:
        raise VoucherNotFound(token)
    return voucher


def can_redeem(voucher: Voucher, principal: Principal) -> bool:
    # legacy vouchers predate email identities; any caller may redeem them
    if voucher.is_legacy:
        return True
    return voucher.recipient == principal.email


def redeem_voucher(
    store: VoucherStore,
    principal: Principal,
    token: str,
    now: Optional[datetime] = None,
) -> Voucher:
    """Move a voucher from unused to used.

    Checks run in a fixed order: existence, recipient, status. The
    read-check-write sequence is not atomic; two concurrent redemptions of the
    same token can both succeed because the store has no conditional put.
    """
    voucher = get_voucher(store, token)

    if not can_redeem(voucher, principal):
        logger.warning(
            "Refused redemption by non-recipient",
            extra={"voucher_id": token, "principal": principal.email},
        )
        raise Forbidden(token)

    if voucher.is_used:
        logger.warning(
            "Refused redemption of used voucher",
            extra={"voucher_id": token, "principal": principal.email},
        )
        raise AlreadyUsed(token)

    updated = voucher.model_copy(update={
        "status": VoucherStatus.USED,
        "redeemedAt": now or utcnow(),
    })
    store.put(token, updated)
    logger.info(
        "Redeemed voucher", extra={"voucher_id": token, "principal": principal.email},
    )
    return updated


# ---------------------------
# Status
# ---------------------------

def involves(voucher: Voucher, principal: Principal) -> bool:
    if voucher.is_legacy:
        return True
    return principal.email in (voucher.issuer, voucher.recipient)


def issued_by(voucher: Voucher, principal: Principal) -> bool:
    # legacy vouchers count as issued by whoever is looking
    if voucher.is_legacy:
        return True
    return voucher.issuer == principal.email


def received_by(voucher: Voucher, principal: Principal) -> bool:
    if voucher.is_legacy:
        return False
    return voucher.recipient == principal.email


def _issued_at(voucher: Voucher) -> datetime:
    # older records may carry naive timestamps; treat them as UTC
    if voucher.issuedAt.tzinfo is None:
        return voucher.issuedAt.replace(tzinfo=timezone.utc)
    return voucher.issuedAt


def sort_newest_first(vouchers: List[Voucher]) -> List[Voucher]:
    return sorted(vouchers, key=_issued_at, reverse=True)


def partition_vouchers(
    vouchers: List[Voucher], principal: Principal,
) -> Tuple[List[Voucher], List[Voucher], List[Voucher]]:
    relevant = sort_newest_first([v for v in vouchers if involves(v, principal)])
    issued = [v for v in relevant if issued_by(v, principal)]
    received = [v for v in relevant if received_by(v, principal)]
    return relevant, issued, received


def get_status(store: VoucherStore, principal: Principal) -> VoucherStats:
    all_vouchers = [voucher for _, voucher in store.list_all()]
    relevant, issued, received = partition_vouchers(all_vouchers, principal)
    used = sum(1 for v in relevant if v.is_used)

    return VoucherStats(
        total=len(relevant),
        unused=len(relevant) - used,
        used=used,
        vouchers=[VoucherOut.model_validate(v) for v in relevant],
        issuedVouchers=[VoucherOut.model_validate(v) for v in issued],
        receivedVouchers=[VoucherOut.model_validate(v) for v in received],
    )
