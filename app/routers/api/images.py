from typing import Annotated

from aiohttp import ClientSession
from fastapi import APIRouter, Depends, Query, Response
from fastapi.responses import PlainTextResponse

from app.internal.image_cache import ImageCache, is_image_url
from app.util.connection import get_connection, get_image_cache
from app.util.exceptions import FetchError
from app.util.log import logger

router = APIRouter(tags=["Images"])

CACHE_CONTROL = "public, max-age=86400, stale-while-revalidate=604800"


@router.get("/image")
async def proxy_image(
    client_session: Annotated[ClientSession, Depends(get_connection)],
    image_cache: Annotated[ImageCache, Depends(get_image_cache)],
    url: Annotated[str, Query()] = "",
):
    if not url:
        return PlainTextResponse("Image URL is required", status_code=400)
    if not is_image_url(url):
        return PlainTextResponse("Image URL must be http or https", status_code=400)

    try:
        data, content_type, was_cached = await image_cache.fetch_image(client_session, url)
    except FetchError as e:
        logger.warning("Image proxy failed", url=url, error=e.message)
        return PlainTextResponse(e.message, status_code=e.status or 500)

    return Response(
        content=data,
        media_type=content_type,
        headers={
            "Cache-Control": CACHE_CONTROL,
            "X-Cache": "HIT" if was_cached else "MISS",
        },
    )
