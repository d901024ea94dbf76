from loguru import logger
from sqlalchemy.engine import Engine

from devhub.core.db import engine as default_engine, Base

# Import all models so SQLAlchemy registers them
from devhub.models.user import User  # noqa: F401
from devhub.modules.connections.models import Connection  # noqa: F401
from devhub.modules.messaging.models import Group, Message  # noqa: F401


def init_db(bind: Engine | None = None) -> None:
    logger.info("Creating database tables")
    Base.metadata.create_all(bind=bind or default_engine)
    logger.info("Database tables created")
