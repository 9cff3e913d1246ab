"""Jokes API - Entry Point"""

import contextlib

from .logging_config import configure_logging, get_logger

# Configure logging at module load (before any other imports that might log)
configure_logging()
logger = get_logger(__name__)


def build_app():
    """Outer app: startup migrations, payload limit, then the REST API."""
    from fastapi import FastAPI
    from starlette.middleware.base import BaseHTTPMiddleware
    from starlette.responses import JSONResponse as StarletteJSONResponse

    from .api import app as api_app  # REST API endpoints
    from .config import get_settings
    from .database import get_db
    from .migrations import initialize_database

    settings = get_settings()

    @contextlib.asynccontextmanager
    async def lifespan(_app: FastAPI):
        # Schema and role tables must exist before the first request
        with get_db() as cursor:
            applied = initialize_database(cursor)
        logger.info("Database ready", extra={"migrations_applied": len(applied)})
        yield

    app = FastAPI(title="Jokes API", lifespan=lifespan)

    max_payload_bytes = settings.max_payload_bytes

    class PayloadSizeLimitMiddleware(BaseHTTPMiddleware):
        async def dispatch(self, request, call_next):
            content_length = request.headers.get('content-length')
            if content_length and content_length.isdigit() and int(content_length) > max_payload_bytes:
                return StarletteJSONResponse(
                    status_code=413,
                    content={
                        "success": False,
                        "message": f"Payload too large. Maximum size is {max_payload_bytes // 1024}KB.",
                        "data": None,
                    }
                )
            return await call_next(request)

    app.add_middleware(PayloadSizeLimitMiddleware)
    app.mount("/", api_app)
    return app


def run_http():
    import uvicorn
    from .config import get_settings

    settings = get_settings()
    logger.info("Starting Jokes API", extra={"host": settings.host, "port": settings.port})
    uvicorn.run(build_app(), host=settings.host, port=settings.port, log_config=None)


if __name__ == "__main__":
    run_http()
