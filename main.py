import asyncio
import inspect
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from openai import AsyncOpenAI

from routes.message_route import router as message_router
from routes.relay_ws import router as relay_router
from routes.session_route import router as session_router
from routes.translate_route import router as translate_router
from services.realtime.relay_hub import RelayHub
from services.translation.provider import build_provider
from utils.database_cleaner import DatabaseCleaner
from utils.database_init import AsyncDatabaseInitializer
from utils.settings import Settings

LOGGER = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Create and configure the FastAPI application instance.
    """
    settings = settings or Settings.from_env()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Lifespan manager to initialize:
          - the SQLite chat store (at DATABASE_DIR/chat.db)
          - the translation provider (OpenAI or mock)
          - the relay hub and the idle-session cleanup task
        and attach them to `app.state`.
        """
        db_initializer = AsyncDatabaseInitializer(settings.database_dir, reset=settings.database_reset)
        await db_initializer.ensure_database()
        app.state.db_initializer = db_initializer

        openai_client = None
        if settings.translation_provider == "openai":
            try:
                openai_client = AsyncOpenAI()
            except Exception as exc:
                raise RuntimeError("Failed to initialize OpenAI Async client") from exc
        app.state.openai_client = openai_client
        app.state.translation_provider = build_provider(
            settings.translation_provider,
            client=openai_client,
            model=settings.openai_model,
            delay=settings.mock_translation_delay,
        )
        app.state.relay_hub = RelayHub()

        cleaner = DatabaseCleaner(db_initializer, retention_seconds=settings.session_retention_seconds)
        cleanup_task = asyncio.create_task(cleaner.run_periodic_cleanup(settings.cleanup_interval_seconds))
        LOGGER.info("Chat relay started (translation provider: %s)", app.state.translation_provider.name)

        try:
            yield
        finally:
            cleanup_task.cancel()
            try:
                await cleanup_task
            except asyncio.CancelledError:
                pass
            # Gracefully close the OpenAI client if it exposes a close/aclose method.
            client = getattr(app.state, "openai_client", None)
            if client is not None:
                aclose = getattr(client, "aclose", None) or getattr(client, "close", None)
                if aclose is not None:
                    try:
                        result = aclose()
                        if inspect.isawaitable(result):
                            await result
                    except Exception as exc:
                        LOGGER.warning("Error while closing OpenAI client: %s", exc)

    app = FastAPI(title="QR Chat Relay", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    async def health(request: Request):
        """
        Simple health check that reports DB initializer and provider presence.
        """
        has_db = hasattr(request.app.state, "db_initializer")
        provider = getattr(request.app.state, "translation_provider", None)
        return {
            "ok": True,
            "db_initialized": has_db,
            "translation_provider": provider.name if provider else None,
        }

    # Register application routers
    app.include_router(session_router)
    app.include_router(message_router)
    app.include_router(translate_router)
    app.include_router(relay_router)

    return app


app = create_app()
