from devcoin.routes import devcoin_router
from login_guard.routes import login_guard_router
from services.scheduler_setup import setup_scheduler
from utils.environment import get_environment
from fastapi import FastAPI, APIRouter
from dotenv import load_dotenv
from starlette.middleware.cors import CORSMiddleware
import os
import logging
from pathlib import Path
from datetime import datetime, timezone
from apscheduler.schedulers.asyncio import AsyncIOScheduler

ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

# Create the main app
app = FastAPI(title="DevCoin Engine - Community Ledger and Login Guard")

api_router = APIRouter(prefix="/api")


@api_router.get("/health")
async def health():
    return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}


# DevCoin: question posting, balance, ledger history
api_router.include_router(devcoin_router)
# Login Guard: rate limit check + attempt recording
api_router.include_router(login_guard_router)

app.include_router(api_router)

app.add_middleware(
    CORSMiddleware,
    allow_credentials=True,
    allow_origins=[origin.strip() for origin in os.environ.get(
        'CORS_ORIGINS', 'http://localhost:3000').split(',')],
    allow_methods=["*"],
    allow_headers=["*"],
)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

scheduler = AsyncIOScheduler()


def scheduler_enabled() -> bool:
    return os.environ.get("SCHEDULER_ENABLED", "true").lower() not in ("0", "false", "no")


@app.on_event("startup")
async def startup():
    from database import create_store, check_store_connection

    # A store may be injected before startup (tests, embedding)
    if getattr(app.state, "store", None) is None:
        app.state.store = create_store()

    # Check store connection first - fail fast if database is unavailable
    db_ok, db_error = await check_store_connection(app.state.store)
    if not db_ok:
        logger.critical(f"Database connection failed on startup: {db_error}")
        raise RuntimeError(
            f"Cannot start application - database connection failed: {db_error}")

    logger.info(f"Environment: {get_environment()} | Store: {type(app.state.store).__name__}")

    if scheduler_enabled():
        setup_scheduler(scheduler, app.state.store)
        scheduler.start()
        logger.info("Maintenance scheduler started")


@app.on_event("shutdown")
async def shutdown_store_client():
    # Shutdown scheduler
    if scheduler.running:
        scheduler.shutdown()
        logger.info("Maintenance scheduler shut down")

    store = getattr(app.state, "store", None)
    if store is not None:
        await store.close()
