from contextlib import asynccontextmanager

from aiohttp import ClientSession
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.internal.env_settings import Settings
from app.internal.image_cache import ImageCache
from app.internal.orchestrator import RequestOrchestrator
from app.internal.providers import build_providers
from app.routers.api import images, manga
from app.util.cache import MetadataCache
from app.util.log import logger, setup_logging

settings = Settings()

setup_logging(
    log_level=settings.app.log_level,
    log_format=settings.app.log_format,
    log_file=settings.app.log_file,
    config_dir=settings.app.config_dir,
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    async with ClientSession() as client_session:
        app.state.client_session = client_session
        app.state.orchestrator = RequestOrchestrator(
            providers=build_providers(settings.app),
            cache=MetadataCache(),
            cache_settings=settings.cache,
        )
        app.state.image_cache = ImageCache(
            capacity=settings.cache.image_capacity,
            ttl=settings.cache.image_ttl,
            timeout=settings.app.request_timeout,
            user_agent=settings.app.user_agent,
        )
        logger.info(
            "Manga metadata API started",
            version=settings.app.version,
            default_provider=settings.app.default_provider,
        )
        yield
    logger.info("Manga metadata API stopped")


app = FastAPI(
    title="Manga Metadata API",
    version=settings.app.version,
    debug=settings.app.debug,
    lifespan=lifespan,
)
app.state.settings = settings

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.app.get_allowed_origins(),
    allow_methods=["GET", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(manga.router, prefix="/api/v1")
app.include_router(images.router, prefix="/api/v1")
