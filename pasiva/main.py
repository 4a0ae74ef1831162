# pasiva/main.py
# Start backend using uvicorn pasiva.main:app --reload --host 0.0.0.0
import logging
import logging.handlers
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.routing import APIRoute, APIWebSocketRoute

from pasiva.api import rooms as rooms_router
from pasiva.api import websockets as websocket_router
from pasiva.core.config import settings
from pasiva.core.logging_utils import configure_logging
from pasiva.db.base import Base # For table creation of the SQL room store
from pasiva.db.session import engine
from pasiva.models.errors import RoomError

# Configure logging when the module is loaded. Listener is started/stopped by lifespan.
_queue_handler_instance: Optional[logging.handlers.QueueHandler] = configure_logging(
    settings.LOG_CONFIG_FILE, settings.LOG_DIR
)
logger = logging.getLogger("pasiva.main") # Logger for this module

def create_tables():
    Base.metadata.create_all(bind=engine)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application startup sequence initiated...")
    if _queue_handler_instance and getattr(_queue_handler_instance, "listener", None):
        try:
            _queue_handler_instance.listener.start()
            logger.info("Logging QueueListener started successfully via lifespan.")
        except RuntimeError as e:
            # Already running, e.g. a second TestClient on the same app
            logger.debug(f"QueueListener not started: {e}")
    else:
        logger.warning("QueueHandler or its listener not found during startup; off-thread logging might not be active.")

    if settings.ROOM_STORE_BACKEND == "sql":
        create_tables()
        logger.info("Room document table checked/created.")

    yield  # This is where the application will run

    logger.info("Application shutdown sequence initiated...")
    if _queue_handler_instance and getattr(_queue_handler_instance, "listener", None):
        try:
            _queue_handler_instance.listener.stop()
        except AttributeError as e:
            logger.error(f"Failed to stop QueueListener gracefully in lifespan: {e}", exc_info=True)

app = FastAPI(
    title=settings.PROJECT_NAME,
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    lifespan=lifespan,
)
app.add_exception_handler(RoomError, rooms_router.room_error_handler)

# Include Routers
app.include_router(rooms_router.router, prefix=settings.API_V1_STR, tags=["Rooms"])
app.include_router(websocket_router.router, tags=["Game Sockets"]) # WebSockets usually don't have API prefix

logger.info("--- FastAPI Registered Routes ---")
for route in app.routes:
    if isinstance(route, APIRoute):
        logger.info(f"Path: {route.path}, Methods: {route.methods}, Name: {route.name}")
    elif isinstance(route, APIWebSocketRoute):
        logger.info(f"WebSocket Path: {route.path}, Name: {route.name}")
logger.info("--- End Registered Routes ---")


@app.get(settings.API_V1_STR + "/health", tags=["Health Check"])
async def health_check():
    return {"status": "healthy", "project": settings.PROJECT_NAME, "room_store": settings.ROOM_STORE_BACKEND}
