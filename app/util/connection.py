from aiohttp import ClientSession
from fastapi import Request

from app.internal.env_settings import Settings
from app.internal.image_cache import ImageCache
from app.internal.orchestrator import RequestOrchestrator


def get_connection(request: Request) -> ClientSession:
    """Shared upstream HTTP session, created once in the app lifespan."""
    return request.app.state.client_session


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_orchestrator(request: Request) -> RequestOrchestrator:
    return request.app.state.orchestrator


def get_image_cache(request: Request) -> ImageCache:
    return request.app.state.image_cache
