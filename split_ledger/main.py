import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from split_ledger.core.config import settings
from split_ledger.core.exceptions import (
    LedgerError, InvalidAmount, NoParticipants, SplitMismatch, NotGroupMember,
    StoreUnavailable, CompensationFailed, Inconsistent
)
from split_ledger.db.database import Base, engine
from split_ledger.api.v1.routes.expenses import router as expenses_router
from split_ledger.api.v1.routes.settlements import router as settlements_router
from split_ledger.rabbitmq.producer import close_rabbitmq_producer

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)

Base.metadata.create_all(bind=engine)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    close_rabbitmq_producer()


app = FastAPI(
    title=f"{settings.APP_NAME} - Ledger & Settlement",
    description="Records group expenses, computes balances and suggests settlements",
    version="1.0.0",
    lifespan=lifespan
)

# (status code, error code, retryable)
ERROR_RESPONSES = {
    InvalidAmount: (400, "invalid_amount", False),
    NoParticipants: (400, "no_participants", False),
    SplitMismatch: (400, "split_mismatch", False),
    NotGroupMember: (403, "not_group_member", False),
    StoreUnavailable: (503, "store_unavailable", True),
    CompensationFailed: (500, "compensation_failed", False),
    Inconsistent: (500, "inconsistent", False),
}


@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError):
    status_code, code, retryable = ERROR_RESPONSES.get(type(exc), (500, "ledger_error", False))
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    content = {"error": code, "detail": exc.message, "retryable": retryable}
    if isinstance(exc, CompensationFailed):
        content["expense_id"] = exc.expense_id
        content["detail"] = f"{exc.message}; manual cleanup required"
    return JSONResponse(status_code=status_code, content=content)


app.include_router(expenses_router)
app.include_router(settlements_router)


@app.get("/")
def read_root():
    return {"message": "Split Ledger API", "version": "1.0.0"}


@app.get("/health")
def health_check():
    return {"status": "healthy"}
