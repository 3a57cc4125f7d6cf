# --- fleetly/main.py --------------------------------------------------------
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .settings import settings
from .database import Base, engine
from . import models  # ensure models are loaded before create_all
from .errors import (
    ActionNotPermitted, FleetlyError, IllegalTransition, InsufficientQuoteInput, NotFound, QuoteConflict,
)
from .schemas import TierOut
from .tiers import TIERS

logging.basicConfig(
    level=settings.FLEETLY_LOG_LEVEL.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Fleetly Marketplace API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.FLEETLY_FRONTEND_ORIGIN, "http://localhost:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Create DB tables on boot (dev convenience)
Base.metadata.create_all(bind=engine)

ERROR_STATUS = {
    NotFound: 404,
    ActionNotPermitted: 403,
    IllegalTransition: 409,
    QuoteConflict: 409,
    InsufficientQuoteInput: 422,
}

@app.exception_handler(FleetlyError)
async def fleetly_error_handler(request: Request, exc: FleetlyError):
    code = next((c for cls, c in ERROR_STATUS.items() if isinstance(exc, cls)), 400)
    logger.warning("%s %s rejected (%s): %s", request.method, request.url.path, type(exc).__name__, exc)
    return JSONResponse(status_code=code, content={"detail": str(exc), "error": type(exc).__name__})

@app.get("/health")
def health():
    return {"ok": True, "env": settings.APP_ENV}

@app.get("/tiers", response_model=list[TierOut])
def list_tiers():
    return [TierOut(tier=tier.value, **info) for tier, info in TIERS.items()]

# Routers
from .routes.auth_routes_jwt import router as auth_router
from .routes.operators_routes import router as operators_router
from .routes.requests_routes import router as requests_router
from .routes.notifications_routes import router as notifications_router

app.include_router(auth_router)
app.include_router(operators_router)
app.include_router(requests_router)
app.include_router(notifications_router)
