import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .core.config import get_settings
from .core.db import Base, engine
from .core.responses import ErrorCodes, error_response
from .errors import BookingError, InvalidRequest
from .routes_appointments import router as appointments_router
from .routes_calendar import router as calendar_router
from .routes_packages import router as packages_router
from .scheduler import start_expiry_scheduler, stop_expiry_scheduler


settings = get_settings()
app = FastAPI(title="Floatbook Booking Backend")
logger = logging.getLogger(__name__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins_list or ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(appointments_router)
app.include_router(calendar_router)
app.include_router(packages_router)


@app.exception_handler(BookingError)
async def booking_error_handler(request: Request, exc: BookingError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.code} {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content=error_response(exc.code, exc.message, exc.details),
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    fields = [
        {
            "field": ".".join(str(part) for part in error.get("loc", ())[1:]),
            "message": error.get("msg", ""),
        }
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_response(ErrorCodes.INVALID_REQUEST, InvalidRequest.default_message, {"fields": fields}),
    )


@app.on_event("startup")
async def on_startup():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    if settings.expiry_sweep_enabled:
        start_expiry_scheduler()


@app.on_event("shutdown")
async def on_shutdown():
    await stop_expiry_scheduler()


@app.get("/health")
async def health():
    return {"ok": True}
