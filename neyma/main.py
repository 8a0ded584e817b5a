# neyma/main.py
from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from neyma.core.config import get_settings
from neyma.core.errors import (
    CartItemNotFound,
    CheckoutFailed,
    ExpiredCredential,
    InvalidQuantity,
    PersistenceError,
    StorefrontError,
    Unauthenticated,
)
from neyma.database import create_db_and_tables

# Import models so SQLModel metadata is populated before create_all()
from neyma.models import user as _user_models  # noqa: F401
from neyma.models import product as _product_models  # noqa: F401
from neyma.models import cart as _cart_models  # noqa: F401
from neyma.models import order as _order_models  # noqa: F401

# Routers
from neyma.routers.cart import router as cart_router
from neyma.routers.orders import router as orders_router
from neyma.routers.notify import router as notify_router

settings = get_settings()

logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger("uvicorn")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Startup:
      - Verify DB connectivity and create tables.
    """
    logger.info("🔄 Startup: Connecting to Supabase Postgres...")
    try:
        create_db_and_tables()
        logger.info("✅ Startup: DB connection OK, tables verified.")
    except Exception as e:
        logger.error(f"❌ Startup: DB connection FAILED: {e}")
        raise
    yield


app = FastAPI(
    title=settings.PROJECT_NAME or "Neyma Storefront API",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Domain errors -> HTTP ---
# Resolved along the exception MRO.
ERROR_STATUS: dict[type[StorefrontError], int] = {
    Unauthenticated: status.HTTP_401_UNAUTHORIZED,
    ExpiredCredential: status.HTTP_401_UNAUTHORIZED,
    InvalidQuantity: status.HTTP_400_BAD_REQUEST,
    CartItemNotFound: status.HTTP_404_NOT_FOUND,
    PersistenceError: status.HTTP_502_BAD_GATEWAY,
    CheckoutFailed: status.HTTP_502_BAD_GATEWAY,
}


@app.exception_handler(StorefrontError)
async def storefront_error_handler(request: Request, exc: StorefrontError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    for cls in type(exc).__mro__:
        if cls in ERROR_STATUS:
            status_code = ERROR_STATUS[cls]
            break
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder({"detail": exc.message, "alerts": exc.alerts}),
    )


# Versioned API prefix, e.g. /api/v1
app.include_router(cart_router, prefix=settings.API_V1_STR)
app.include_router(orders_router, prefix=settings.API_V1_STR)
app.include_router(notify_router)


@app.get("/")
def root():
    """Health check endpoint."""
    return {"status": "ok", "service": "neyma-storefront"}
