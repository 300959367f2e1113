# backend/stockdb/main.py
import logging
import os
from typing import Dict, List, Tuple, Type

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .errors import (
    ConcurrencyConflictError,
    EngineError,
    InsufficientStockError,
    InvalidStateError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from .apps.catalog.router import router as catalog_router
from .apps.stock.router import router as stock_router
from .apps.requests.router import router as requests_router
from .apps.reconciliation.router import router as reconciliation_router
from .apps.usage.router import router as usage_router

logger = logging.getLogger(__name__)

# Most specific first; the first isinstance match wins.
ERROR_STATUS_CODES: List[Tuple[Type[EngineError], int]] = [
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (InsufficientStockError, status.HTTP_409_CONFLICT),
    (InvalidStateError, status.HTTP_409_CONFLICT),
    (ConcurrencyConflictError, status.HTTP_409_CONFLICT),
    (StorageError, status.HTTP_503_SERVICE_UNAVAILABLE),
]


def _allowed_origins() -> List[str]:
    """
    Parse CORS_ALLOWED_ORIGINS from env.

    Accepts comma-separated origins. If unset, defaults to local dev ports.
    """
    raw = os.getenv("CORS_ALLOWED_ORIGINS", "")
    if raw:
        origins = [origin.strip() for origin in raw.split(",") if origin.strip()]
        if origins:
            return origins
    return [
        "http://127.0.0.1:8081",
        "http://localhost:8081",
        "http://localhost:19006",
    ]


def status_code_for(exc: EngineError) -> int:
    for error_type, code in ERROR_STATUS_CODES:
        if isinstance(exc, error_type):
            return code
    return status.HTTP_400_BAD_REQUEST


app = FastAPI(title="Stock Request API", version="1.0.0")
cors_origins = _allowed_origins()
allow_credentials = "*" not in cors_origins

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=allow_credentials,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(EngineError)
async def engine_error_handler(request: Request, exc: EngineError) -> JSONResponse:
    code = status_code_for(exc)
    if isinstance(exc, StorageError):
        logger.error("Storage error", extra={"path": request.url.path, "error": exc.message})
    body: Dict[str, object] = exc.to_dict()
    body["retryable"] = exc.retryable
    return JSONResponse(status_code=code, content=body)


@app.get("/", tags=["health"])
def read_root():
    return {"status": "ok", "message": "Stock request backend is running"}


@app.get("/health", tags=["health"])
def health():
    return {"status": "ok"}


app.include_router(catalog_router)
app.include_router(stock_router)
app.include_router(requests_router)
app.include_router(reconciliation_router)
app.include_router(usage_router)
