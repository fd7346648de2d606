import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request, HTTPException
from fastapi.responses import FileResponse
from fastapi.staticfiles import StaticFiles

from controllers.session_controller import build_session_factory
from routes.ai_route import router as ai_router
from routes.board_route import router as board_router
from routes.realtime_ws import router as realtime_router
from services.openai.clients import AIServices
from services.realtime.session_store import SessionStore
from utils.database_init import AsyncDatabaseInitializer
from utils.logging_config import configure_logging
from utils.settings import Settings

BASE_DIR = Path(__file__).resolve().parent
PUBLIC_DIR = BASE_DIR / "public"

from dotenv import load_dotenv

load_dotenv()  # Load environment variables from .env file if present

LOGGER = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan manager to initialize:
      - settings and logging from the environment
      - the SQLite board database (at DATABASE_DIR/app.db)
      - the AI backend clients and the live session store
    and attach them to `app.state`.
    """
    settings = Settings.from_env()
    configure_logging(settings.log_level)
    app.state.settings = settings

    db_initializer = AsyncDatabaseInitializer()
    await db_initializer.ensure_database()
    app.state.db_initializer = db_initializer

    # Missing keys are reported per request, not at startup.
    ai_services = AIServices.from_settings(settings)
    app.state.ai_services = ai_services

    store = SessionStore(build_session_factory(settings, ai_services, db_initializer))
    app.state.session_store = store

    try:
        yield
    finally:
        try:
            await store.close_all()
        except Exception as exc:
            LOGGER.warning("Failed to close canvas sessions cleanly: %s", exc)
        try:
            await ai_services.aclose()
        except Exception as exc:
            # Ignore shutdown errors to avoid masking more important issues.
            LOGGER.warning("Failed to close AI clients cleanly: %s", exc)


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application instance.
    """
    app = FastAPI(lifespan=lifespan)

    # Serve static assets from the public directory, if it exists.
    if PUBLIC_DIR.exists():
        app.mount("/public", StaticFiles(directory=PUBLIC_DIR), name="public")

    @app.get("/", include_in_schema=False)
    async def serve_index():
        """
        Serve the frontend index page from the public directory.
        """
        index_path = PUBLIC_DIR / "index.html"
        if not index_path.exists():
            raise HTTPException(status_code=404, detail="Frontend not found")
        return FileResponse(index_path)

    @app.get("/health")
    async def health(request: Request):
        """
        Simple health check reporting which backends are configured.
        """
        settings = getattr(request.app.state, "settings", None)
        return {
            "ok": True,
            "db_initialized": hasattr(request.app.state, "db_initializer"),
            "openrouter_configured": bool(settings and settings.openrouter_api_key),
            "mistral_configured": bool(settings and settings.mistral_api_key),
            "realtime_configured": bool(settings and settings.openai_api_key),
        }

    # Register application routers
    app.include_router(board_router)
    app.include_router(ai_router)
    app.include_router(realtime_router)

    return app


app = create_app()
