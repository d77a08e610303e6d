import logging
from contextlib import asynccontextmanager
from functools import lru_cache

from fastapi import Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, RedirectResponse

from .config import get_settings
from .errors import VoucherError
from .identity import IdentityResolver, display_name
from .logic import (
    build_voucher_url,
    extract_token,
    get_status,
    get_voucher,
    issue_voucher,
    redeem_voucher,
)
from .models import (
    IssueResponse,
    Principal,
    RedeemRequest,
    VoucherOut,
    VoucherResponse,
    VoucherStats,
)
from .observability import setup_logging
from .storage import VOUCHERS_DB, InMemoryVoucherStore, JsonFileVoucherStore, VoucherStore

logger = logging.getLogger(__name__)


# ---------------------------
# Dependencies
# ---------------------------

@lru_cache
def get_store() -> VoucherStore:
    settings = get_settings()
    if settings.store_backend == "file":
        return JsonFileVoucherStore(settings.store_path)
    return InMemoryVoucherStore(VOUCHERS_DB)


def get_identity() -> IdentityResolver:
    return IdentityResolver(get_settings().identity_config())


def current_principal(
    request: Request, identity: IdentityResolver = Depends(get_identity),
) -> Principal:
    return identity.verify(request.headers)


def base_url_for(request: Request) -> str:
    configured = get_settings().public_base_url
    if configured:
        return configured
    return f"{request.url.scheme}://{request.url.netloc}"


# ---------------------------
# FastAPI App & Routes
# ---------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)
    logger.info("Voucher exchange started")
    yield
    logger.info("Voucher exchange shutting down")


app = FastAPI(title="Voucher Exchange Service", lifespan=lifespan)


@app.get("/health")
def health_check():
    return {"status": "ok"}


@app.get("/")
def root():
    return RedirectResponse(url="/api/status")


@app.post("/api/issue", response_model=IssueResponse)
def issue(
    request: Request,
    principal: Principal = Depends(current_principal),
    identity: IdentityResolver = Depends(get_identity),
    store: VoucherStore = Depends(get_store),
):
    voucher = issue_voucher(store, identity, principal)
    return IssueResponse(
        voucher=VoucherOut.model_validate(voucher),
        voucherUrl=build_voucher_url(base_url_for(request), voucher.id),
        issuerName=display_name(principal),
        recipientName=display_name(Principal(email=voucher.recipient)),
    )


@app.post("/api/redeem", response_model=VoucherResponse)
def redeem(
    payload: RedeemRequest,
    principal: Principal = Depends(current_principal),
    store: VoucherStore = Depends(get_store),
):
    voucher = redeem_voucher(store, principal, extract_token(payload.token))
    return VoucherResponse(voucher=VoucherOut.model_validate(voucher))


@app.get("/api/status", response_model=VoucherStats)
def status_overview(
    principal: Principal = Depends(current_principal),
    store: VoucherStore = Depends(get_store),
):
    return get_status(store, principal)


@app.get("/api/vouchers/{token}", response_model=VoucherResponse)
def show_voucher(token: str, store: VoucherStore = Depends(get_store)):
    return VoucherResponse(voucher=VoucherOut.model_validate(get_voucher(store, token)))


# ---------------------------
# Error handlers
# ---------------------------

@app.exception_handler(VoucherError)
async def voucher_error_handler(request: Request, exc: VoucherError):
    log = logger.error if exc.http_status >= 500 else logger.warning
    log(
        f"{type(exc).__name__}: {exc.message}",
        extra={"error_code": exc.code, "path": request.url.path},
    )
    return JSONResponse(status_code=exc.http_status, content=exc.to_response())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    logger.warning(f"Validation error on {request.url.path}: {exc.errors()}")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "success": False,
            "error": {
                "code": "VALIDATION_ERROR",
                "message": "Invalid request data",
                "details": [
                    {
                        "field": ".".join(str(loc) for loc in e["loc"]),
                        "message": e["msg"],
                    }
                    for e in exc.errors()
                ],
            },
        },
    )


@app.exception_handler(Exception)
async def generic_error_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception on {request.url.path}: {exc}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "success": False,
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred",
            },
        },
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "voucher_exchange.main:app",
        host="127.0.0.1",
        port=8000,
        reload=False,
    )
