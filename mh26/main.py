import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from mh26.core.config import CORS_ORIGINS
from mh26.core.exceptions import BookingError
from mh26.core.logging import configure_logging
from mh26.db.init_db import init_db
from mh26.api.routes import auth
from mh26.api.routes import admin as admin_router
from mh26.api.routes import bookings as bookings_router
from mh26.api.routes import catalog as catalog_router
from mh26.api.routes import notifications as notifications_router
from mh26.api.routes import payments as payments_router
from mh26.api.routes import providers as providers_router
from mh26.api.routes import reports as reports_router
from mh26.api.routes import reviews as reviews_router

configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="MH26 Services")

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
def startup():
    init_db()


@app.exception_handler(BookingError)
async def booking_error_handler(request: Request, exc: BookingError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.detail)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "error": type(exc).__name__, "retryable": exc.retryable},
    )


@app.get("/")
def root():
    return {"message": "MH26 Services API running"}


@app.get("/health")
def health():
    return {"status": "healthy"}


app.include_router(auth.router, prefix="/api/auth")
app.include_router(admin_router.router)
app.include_router(catalog_router.router)
app.include_router(providers_router.router)
app.include_router(bookings_router.router)
app.include_router(payments_router.router)
app.include_router(reviews_router.router)
app.include_router(reports_router.router)
app.include_router(notifications_router.router)
