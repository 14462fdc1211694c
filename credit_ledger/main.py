from __future__ import annotations
import uuid
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from credit_ledger.config import settings
from credit_ledger.errors import LedgerError
from credit_ledger.logging_setup import configure_logging
from credit_ledger.routes.system import router as system_router
from credit_ledger.routes.accounts import router as accounts_router, internal_router as accounts_internal_router
from credit_ledger.routes.credits import router as credits_router, internal_router as credits_internal_router
from credit_ledger.routes.payouts import router as payouts_router, internal_router as payouts_internal_router
from credit_ledger.routes.payout_methods import router as payout_methods_router
from credit_ledger.routes.contributions import router as contributions_router, internal_router as contributions_internal_router
from credit_ledger.routes.stripe_webhooks import router as stripe_router
import structlog

configure_logging()
log = structlog.get_logger()

@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    log.info("startup", env=settings.environment, version=settings.app_version, git_sha=settings.git_sha)
    yield
    # Shutdown
    log.info("shutdown")

app = FastAPI(
    title=f"{settings.app_display_name} API",
    version=settings.app_version,
    lifespan=lifespan,
    description=f"{settings.app_display_name} API: Genesis and Earned Credit balances, transfers and payouts"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.environment == "dev" else settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(system_router)
app.include_router(accounts_router)
app.include_router(credits_router)
app.include_router(payouts_router)
app.include_router(payout_methods_router)
app.include_router(contributions_router)
app.include_router(accounts_internal_router)
app.include_router(credits_internal_router)
app.include_router(payouts_internal_router)
app.include_router(contributions_internal_router)
app.include_router(stripe_router)

@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError):
    if exc.status_code >= 500:
        log.error("ledger_error", code=exc.code, error=exc.message, path=request.url.path)
    else:
        log.info("ledger_error", code=exc.code, error=exc.message, path=request.url.path)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message, "code": exc.code})

@app.middleware("http")
async def add_request_id(request: Request, call_next):
    rid = request.headers.get("x-request-id") or str(uuid.uuid4())
    request.state.request_id = rid
    structlog.contextvars.bind_contextvars(request_id=rid)
    response: Response = await call_next(request)
    response.headers["X-Request-ID"] = rid
    structlog.contextvars.clear_contextvars()
    return response
