from contextlib import asynccontextmanager

from fastapi import FastAPI
from loguru import logger
from dotenv import load_dotenv

from devhub.core.errors import register_error_handlers
from devhub.core.init_db import init_db
from devhub.core.logging import setup_logging
from devhub.modules.connections.routes import router as connections_router
from devhub.modules.messaging.routes import router as messaging_router
from devhub.modules.notifications.router import router as notifications_router

load_dotenv()

setup_logging()
logger.info("Starting DevHub backend")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Init DB once per process; the engine/pool is shared by every request
    init_db()
    yield
    logger.info("DevHub backend stopped")


app = FastAPI(
    title="DevHub Backend",
    version="0.1.0",
    lifespan=lifespan,
)

register_error_handlers(app)

# Connections module
app.include_router(connections_router)
# Direct + group messaging
app.include_router(messaging_router)
# Real-time socket channel
app.include_router(notifications_router)


@app.get("/health")
def health():
    logger.debug("Health check hit")
    return {"status": "ok"}
