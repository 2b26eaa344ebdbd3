"""
Facility portal backend entry point.

Architecture:
- One Python process, one asyncio event loop
- Two peer services running concurrently:
  1. FastAPI (HTTP server for the staff and member frontends)
  2. APScheduler (lesson reminder jobs)

We use FastAPI's lifespan to manage startup/shutdown. Providers (Twilio,
Google Calendar) are chosen once here from Settings and injected into
the channels, so nothing downstream reads the environment.

Run with: python main.py [--port PORT] [--dev]
"""

import logging
import os
import sys
from contextlib import asynccontextmanager
from pathlib import Path

# Set up import paths before any local imports
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from dotenv import load_dotenv

# Load .env.local first (if exists), then .env as fallback
# .env.local is gitignored and used for local dev overrides
load_dotenv(project_root / ".env.local")  # Local overrides (gitignored)
load_dotenv()  # Fallback to .env

import sentry_sdk
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from facility.bookings import set_calendar_event_id
from facility.checkins import CheckInLedger
from facility.config import (
    check_required_env_vars,
    get_api_port,
    is_production,
    load_settings,
)
from facility.database import close_engine
from facility.notifications.channels.calendar import CalendarChannel
from facility.notifications.channels.sms import SMSChannel
from facility.notifications.dispatcher import NotificationDispatcher
from facility.notifications.scheduler import init_scheduler, shutdown_scheduler

# Import routes using full paths
from web_api.routes.bookings import router as bookings_router
from web_api.routes.checkins import router as checkins_router

logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

SENTRY_DSN = os.environ.get("SENTRY_DSN")
if SENTRY_DSN:
    sentry_sdk.init(
        dsn=SENTRY_DSN,
        environment="production" if is_production() else "development",
        traces_sample_rate=0.1,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    FastAPI lifespan context manager.

    Builds the ledger and notification channels, then starts the reminder
    scheduler alongside FastAPI in the same event loop.
    """
    ok, warnings = check_required_env_vars()
    for warning in warnings:
        logger.warning(warning)
    if not ok:
        raise RuntimeError("Missing required environment variables")

    settings = load_settings()
    dispatcher = NotificationDispatcher(
        SMSChannel.from_settings(settings),
        CalendarChannel.from_settings(settings),
        set_calendar_event_id,
        organizer_email=settings.organizer_email,
        facility_name=settings.facility_name,
        ics_uid_domain=settings.ics_uid_domain,
    )

    app.state.settings = settings
    app.state.dispatcher = dispatcher
    app.state.ledger = CheckInLedger(
        staff_auto_approve=settings.staff_checkins_auto_approve
    )

    init_scheduler(dispatcher)

    yield  # FastAPI runs here, scheduler runs alongside it

    logger.info("Shutting down peer services...")
    shutdown_scheduler()
    await close_engine()  # Close database connections


# Create FastAPI app with lifespan
app = FastAPI(
    title="Facility Portal API",
    lifespan=lifespan,
)

# CORS configuration
FRONTEND_URL = os.environ.get("FRONTEND_URL", "http://localhost:5173")

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        FRONTEND_URL,
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(checkins_router)
app.include_router(bookings_router)


@app.get("/health")
async def health():
    """Health check endpoint with notification channel status."""
    settings = getattr(app.state, "settings", None)
    return {
        "status": "healthy",
        "sms_configured": settings.sms_configured if settings else False,
        "calendar_configured": (
            app.state.dispatcher.calendar.is_configured if settings else False
        ),
    }


if __name__ == "__main__":
    import argparse
    import uvicorn

    parser = argparse.ArgumentParser(description="Facility Portal Server")
    parser.add_argument(
        "--port",
        type=int,
        default=get_api_port(),
        help="Port to run the server on (default: API_PORT or 8000)",
    )
    parser.add_argument(
        "--dev",
        action="store_true",
        help="Development mode (relaxed env var checks)",
    )
    args = parser.parse_args()

    # Set env var so it persists across uvicorn reloads
    if args.dev:
        os.environ["DEV_MODE"] = "true"

    # Pass app object directly (not string) to avoid module reimport issues
    # Client IPs (used by the self check-in rate limit) come from
    # X-Forwarded-For only when the peer is a trusted proxy
    uvicorn.run(
        app,
        host="0.0.0.0",
        port=args.port,
        proxy_headers=True,
        forwarded_allow_ips=os.environ.get("FORWARDED_ALLOW_IPS", "127.0.0.1"),
    )
