import asyncio
import logging
import os
from dotenv import load_dotenv  # load .env variables

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware

from sqlalchemy.exc import DBAPIError, OperationalError

import registration_api.database as database
from registration_api.responses import install_error_handlers
from registration_api.services.payment_gateway import get_gateway_setup

# ----- Load environment variables -----
load_dotenv()

# ----- Logging -----
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s"
)

# ----- Routers -----
from registration_api.routes.health import router as health_router
from registration_api.routes.payments import router as payments_router
from registration_api.routes.registration import router as registration_router

# ----- FastAPI app -----
app = FastAPI(
    title="Event Registration Backend",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)

install_error_handlers(app)

# ----- CORS (enabled only if ALLOWED_ORIGINS or FRONTEND_URL is set) -----
raw_origins = os.getenv("ALLOWED_ORIGINS", "").strip() or os.getenv("FRONTEND_URL", "").strip()
if raw_origins:
    allowed_origins = [o.strip() for o in raw_origins.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
        max_age=86400,
    )

app.add_middleware(GZipMiddleware, minimum_size=1024)

_SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "no-referrer",
    "Cross-Origin-Resource-Policy": "same-origin",
}


@app.middleware("http")
async def security_headers(request: Request, call_next):
    response = await call_next(request)
    for header, value in _SECURITY_HEADERS.items():
        response.headers.setdefault(header, value)
    return response


# ----- Include routers -----
app.include_router(health_router)
app.include_router(registration_router)
app.include_router(payments_router)


@app.on_event("startup")
async def on_startup():
    """Ensure database connectivity with simple retry logic."""

    max_attempts = int(os.getenv("DB_INIT_MAX_ATTEMPTS", "10"))
    base_delay = float(os.getenv("DB_INIT_RETRY_SECONDS", "1.0"))

    attempt = 0
    while True:
        attempt += 1
        try:
            await database.init_models()
        except (OperationalError, DBAPIError, OSError) as exc:  # pragma: no cover - depends on timing
            if attempt >= max_attempts:
                logging.exception("Database not reachable after %s attempts", attempt)
                raise

            wait_time = base_delay * min(2 ** (attempt - 1), 8)
            logging.warning(
                "Database not ready (attempt %s/%s): %s. Retrying in %.1f seconds...",
                attempt,
                max_attempts,
                exc,
                wait_time,
            )
            await asyncio.sleep(wait_time)
        else:
            logging.info("Registration API started and database tables ensured.")
            break

    # Surfaces a missing gateway configuration in the logs at boot
    get_gateway_setup()


# Log presence of secrets, never their values
if os.getenv("DATABASE_URL") or os.getenv("SUPABASE_DB_URL"):
    logging.info("Database URL loaded.")
if os.getenv("RAZORPAY_SECRET") or os.getenv("RAZORPAY_KEY_SECRET"):
    logging.info("Razorpay secret loaded.")
