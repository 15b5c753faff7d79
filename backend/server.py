"""
SmartList API Server - FastAPI application with PostgreSQL and WebSocket support
"""
from fastapi import FastAPI, APIRouter, HTTPException, WebSocket, WebSocketDisconnect
from starlette.middleware.cors import CORSMiddleware
from starlette.middleware.gzip import GZipMiddleware
from contextlib import asynccontextmanager
import logging
import sys
import httpx
from config import settings
from database.connection import init_db, close_db
from database.repositories.shopping_list_repository import shopping_list_repository
from database.websocket_manager import ws_manager, EventType
from services.ingestion import IngestionEngine
from services.list_store import ListStore
from services.normalization import NormalizationClient
from services.smart_add import SmartAddParser
from utils.debug import Loggers, log_ws_event, get_debug_info, setup_debug_logging

# Initialize debug logging early for Docker visibility
setup_debug_logging()

from routers import shopping_lists, ingestion

# Configure root logger to output to stdout/stderr
log_level = getattr(logging, settings.log_level.upper(), logging.INFO)

log_formatter = logging.Formatter(
    '%(asctime)s | %(levelname)-8s | %(name)-20s | %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)

root_logger = logging.getLogger()
root_logger.setLevel(log_level)
root_logger.handlers = []

# stdout for INFO and below
stdout_handler = logging.StreamHandler(sys.stdout)
stdout_handler.setLevel(logging.DEBUG)
stdout_handler.addFilter(lambda record: record.levelno < logging.WARNING)
stdout_handler.setFormatter(log_formatter)
root_logger.addHandler(stdout_handler)

# stderr for WARNING and above
stderr_handler = logging.StreamHandler(sys.stderr)
stderr_handler.setLevel(logging.WARNING)
stderr_handler.setFormatter(log_formatter)
root_logger.addHandler(stderr_handler)

logger = logging.getLogger(__name__)


class StartupState:
    """Track server startup state for health check responses"""
    def __init__(self):
        self.is_ready = False
        self.database_ready = False
        self.database_error: str | None = None
        self.redis_ready = False

    def mark_ready(self):
        self.is_ready = True

    def mark_database_ready(self):
        self.database_ready = True
        self.database_error = None

    def mark_database_failed(self, error: str):
        self.database_error = error

startup_state = StartupState()
logger.info(f"Logging configured with level: {settings.log_level}")
logger.info(f"Debug mode: {settings.debug_mode}")


async def broadcast_ingestion_event(event: EventType, list_id: str, payload: dict):
    """Forward engine notifications to the clients watching the list"""
    await ws_manager.broadcast_to_list(list_id, event, payload)


def build_engine(http_client: httpx.AsyncClient, store: ListStore) -> IngestionEngine:
    normalizer = NormalizationClient(http_client, timeout=settings.normalization_timeout)
    return IngestionEngine(store, normalizer, notifier=broadcast_ingestion_event)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("=" * 60)
    logger.info("SMARTLIST API SERVER STARTING")
    logger.info("=" * 60)
    logger.info(f"Version: {settings.version}")
    logger.info(f"LLM Provider: {settings.llm_provider}")

    app.state.http_client = httpx.AsyncClient()
    Loggers.api.info("HTTP client initialized")

    # Initialize PostgreSQL database (non-blocking for health checks)
    try:
        Loggers.db.info("Initializing PostgreSQL database connection...")
        await init_db()
        Loggers.db.info("PostgreSQL database initialized successfully")
        startup_state.mark_database_ready()
    except Exception as e:
        Loggers.db.error(f"Failed to initialize database: {e}", exc_info=True)
        startup_state.mark_database_failed(str(e))
        # Don't raise - allow server to start for health checks

    if settings.redis_pubsub_enabled:
        try:
            Loggers.ws.info("Initializing Redis Pub/Sub...", redis_url=settings.redis_url)
            await ws_manager.initialize_redis(settings.redis_url)
            await ws_manager.start_redis_listener()
            startup_state.redis_ready = True
        except Exception as e:
            Loggers.ws.error(f"Failed to initialize Redis Pub/Sub: {e}", exc_info=True)
            logger.warning("Continuing in single-instance mode")
            try:
                await ws_manager.shutdown()
            except Exception as e:
                logger.debug(f"Non-critical error during Redis shutdown: {e}")
    else:
        Loggers.ws.info("Redis Pub/Sub disabled - running in single-instance mode")

    app.state.list_store = ListStore(shopping_list_repository)
    app.state.engine = build_engine(app.state.http_client, app.state.list_store)
    app.state.smart_add_parser = SmartAddParser(app.state.http_client, timeout=settings.normalization_timeout)
    Loggers.ingestion.info("Ingestion engine ready")

    logger.info("=" * 60)
    logger.info("SMARTLIST API SERVER READY")
    logger.info("=" * 60)
    startup_state.mark_ready()

    yield

    # Shutdown
    logger.info("SMARTLIST API SERVER SHUTTING DOWN")

    Loggers.ingestion.info("Stopping ingestion engine...")
    await app.state.engine.shutdown()

    Loggers.api.info("Closing HTTP client...")
    await app.state.http_client.aclose()

    Loggers.ws.info("Shutting down WebSocket manager...")
    await ws_manager.shutdown()

    Loggers.db.info("Closing database connections...")
    await close_db()

    logger.info("Shutdown complete")


app = FastAPI(lifespan=lifespan, title="SmartList API")

app.add_middleware(GZipMiddleware, minimum_size=500, compresslevel=6)

# CORS - must be added before routes
app.add_middleware(
    CORSMiddleware,
    allow_credentials=True,
    allow_origins=settings.cors_origins.split(','),
    allow_methods=["*"],
    allow_headers=["*"],
)

api_router = APIRouter(prefix="/api")
api_router.include_router(shopping_lists.router)
api_router.include_router(ingestion.router)


@api_router.get("/health")
async def health_check():
    Loggers.api.debug("Health check requested")

    if not startup_state.is_ready:
        status = "starting"
    elif not startup_state.database_ready:
        status = "degraded"
    else:
        status = "healthy"

    response = {
        "status": status,
        "app": "SmartList",
        "version": settings.version,
        "database": {
            "type": "postgresql",
            "ready": startup_state.database_ready,
        },
        "llm_provider": settings.llm_provider,
        "websocket": ws_manager.get_stats(),
        "debug_mode": settings.debug_mode,
    }

    if startup_state.database_error:
        response["database"]["error"] = startup_state.database_error

    return response


@api_router.get("/debug")
async def debug_info():
    if not settings.debug_mode:
        raise HTTPException(status_code=403, detail="Debug mode is not enabled")
    return {**get_debug_info(), "config": settings.get_debug_config()}


# WebSocket endpoint for live refresh of one list
@app.websocket("/ws/shopping-lists/{list_id}")
async def websocket_endpoint(websocket: WebSocket, list_id: str):
    """
    Clients receive list updates, merge proposals and dropped-entry notices
    for the list they subscribe to. Send {"type": "ping"} to keep alive.
    """
    client_ip = websocket.client.host if websocket.client else "unknown"
    log_ws_event("CONNECT_ATTEMPT", list_id=list_id, data={"ip": client_ip})

    connection_id = await ws_manager.connect(websocket, list_id)

    try:
        while True:
            data = await websocket.receive_json()
            log_ws_event("MESSAGE_RECEIVED", connection_id=connection_id, list_id=list_id, data=data)
            if isinstance(data, dict) and data.get("type") == EventType.PING.value:
                await ws_manager.send_to_connection(connection_id, EventType.PONG, {})
    except WebSocketDisconnect:
        log_ws_event("DISCONNECTED", connection_id=connection_id, list_id=list_id)
    except Exception as e:
        log_ws_event("MESSAGE_ERROR", connection_id=connection_id, list_id=list_id, error=str(e))
        logger.error(f"WebSocket message error: {e}")
    finally:
        await ws_manager.disconnect(connection_id)


app.include_router(api_router)
