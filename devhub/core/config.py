import os
from dotenv import load_dotenv
from loguru import logger

load_dotenv()

def _get_env(key: str, default: str | None = None) -> str:
    val = os.getenv(key, default)
    if val is None:
        raise RuntimeError(f"Missing required env var: {key}")
    return val

APP_ENV = _get_env("APP_ENV", "local")
DATABASE_URL = _get_env("DATABASE_URL", "sqlite:///./devhub.db")
LOG_LEVEL = _get_env("LOG_LEVEL", "DEBUG")
LOG_FILE = _get_env("LOG_FILE", "logs/app.log")

JWT_SECRET = _get_env("JWT_SECRET", "dev-secret-change-me")
JWT_ALGORITHM = _get_env("JWT_ALGORITHM", "HS256")
AUTH_DEBUG = _get_env("AUTH_DEBUG", "false").lower() in ("1", "true", "yes")

# error details are only exposed to clients in development
DEBUG_ERRORS = APP_ENV == "development"

logger.debug(f"Config loaded: APP_ENV={APP_ENV}, DATABASE_URL={DATABASE_URL}, LOG_LEVEL={LOG_LEVEL}")
