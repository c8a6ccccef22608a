from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from typing import Optional
import logging

from schoolnews.config import Config, load_config
from schoolnews.errors import StoreError, format_error
from schoolnews.routers import admin, auth, comments, posts, reactions
from schoolnews.services import build_store
from schoolnews.services.store import ContentStore
from schoolnews.utils.sanitize import get_sanitizer

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def create_app(config: Optional[Config] = None, store: Optional[ContentStore] = None) -> FastAPI:
    """Build the API. A passed-in store is used as is and left open on shutdown."""
    config = config or load_config()
    configure_logging(config.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = app.state.store is None
        if owned:
            app.state.store = await build_store(config)
            logger.info(f"Using {app.state.store.name} content store")
        yield
        if owned:
            await app.state.store.close()
            app.state.store = None

    app = FastAPI(
        title="St.Josef News API",
        description="School news blog with comments, reactions and moderation",
        version="0.1.0",
        root_path=config.base_path,
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.store = store
    app.state.sanitizer = get_sanitizer(config.sanitizer)

    @app.exception_handler(StoreError)
    async def store_error_handler(request: Request, exc: StoreError):
        status_code = exc.status or 500
        if status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc}")
        return JSONResponse(status_code=status_code, content={"detail": format_error(exc)})

    @app.get("/health")
    async def health_check():
        current = app.state.store
        reachable = current is not None and await current.check_connection()
        return {"status": "healthy", "store": "ok" if reachable else "unreachable"}

    app.include_router(auth.router)
    app.include_router(posts.router)
    app.include_router(comments.router)
    app.include_router(reactions.router)
    app.include_router(admin.settings_router)
    app.include_router(admin.router)
    return app
