"""
Upstream manga providers.

Each provider turns one source's wire format (scraped HTML or JSON API) into
the canonical Work / Chapter / Page records.
"""

from app.internal.env_settings import ApplicationSettings
from .abstract import MangaProvider
from .mangadex import MangaDexProvider
from .mangapill import MangaPillProvider

__all__ = ["MangaProvider", "MangaDexProvider", "MangaPillProvider", "build_providers"]


def build_providers(settings: ApplicationSettings) -> dict[str, MangaProvider]:
    providers: list[MangaProvider] = [
        MangaPillProvider(settings),
        MangaDexProvider(settings),
    ]
    return {provider.id: provider for provider in providers}
