import logging
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from routers import appointments, calls, experts, slots
from app.config import settings
from app.db import init_db
from app.exceptions import BookingAPIError, booking_error_handler

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(title=settings.PROJECT_NAME, version="0.1.0")

if settings.BACKEND_CORS_ORIGINS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[str(origin).rstrip("/") for origin in settings.BACKEND_CORS_ORIGINS],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

app.add_exception_handler(BookingAPIError, booking_error_handler)

app.include_router(experts.router, prefix="/experts", tags=["experts"])
app.include_router(slots.router, prefix="/slots", tags=["slots"])
app.include_router(appointments.router, prefix="/appointments", tags=["appointments"])
app.include_router(calls.router, prefix="/calls", tags=["calls"])

@app.on_event("startup")
def on_startup():
    if settings.SKIP_DB_INIT:
        return
    init_db()

@app.get("/")
def root():
    return {"ok": True, "service": "consultation-booking-api"}
