from typing import Annotated, Optional

from aiohttp import ClientSession
from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from app.internal.env_settings import Settings
from app.internal.models import Envelope
from app.internal.orchestrator import Operation, RequestOrchestrator
from app.util.connection import get_connection, get_orchestrator, get_settings

router = APIRouter(tags=["Manga"])

CLIENT_ERRORS = {
    "UnsupportedProviderError",
    "UnsupportedOperationError",
    "InvalidParamsError",
}


def envelope_response(envelope: Envelope) -> JSONResponse:
    if envelope.status == "success":
        status_code = 200
    elif envelope.error_type in CLIENT_ERRORS:
        status_code = 400
    else:
        status_code = 500
    return JSONResponse(envelope.to_json(), status_code=status_code)


def get_default_provider(settings: Annotated[Settings, Depends(get_settings)]) -> str:
    """Provider used when a request does not name one."""
    return settings.app.default_provider


ProviderQuery = Annotated[Optional[str], Query()]
DefaultProvider = Annotated[str, Depends(get_default_provider)]


@router.get("/providers")
async def list_providers(
    orchestrator: Annotated[RequestOrchestrator, Depends(get_orchestrator)],
):
    return {"status": "success", "providers": orchestrator.describe_providers()}


@router.get("/genres")
async def genres(
    client_session: Annotated[ClientSession, Depends(get_connection)],
    orchestrator: Annotated[RequestOrchestrator, Depends(get_orchestrator)],
    default_provider: DefaultProvider,
    provider: ProviderQuery = None,
):
    envelope = await orchestrator.execute(
        client_session, provider or default_provider, Operation.genres
    )
    return envelope_response(envelope)


@router.get("/search/{query}")
async def search(
    query: str,
    client_session: Annotated[ClientSession, Depends(get_connection)],
    orchestrator: Annotated[RequestOrchestrator, Depends(get_orchestrator)],
    default_provider: DefaultProvider,
    page: int = 1,
    provider: ProviderQuery = None,
):
    envelope = await orchestrator.execute(
        client_session,
        provider or default_provider,
        Operation.search,
        {"query": query, "page": page},
    )
    return envelope_response(envelope)


@router.get("/info/{work_id:path}")
async def info(
    work_id: str,
    client_session: Annotated[ClientSession, Depends(get_connection)],
    orchestrator: Annotated[RequestOrchestrator, Depends(get_orchestrator)],
    default_provider: DefaultProvider,
    provider: ProviderQuery = None,
):
    envelope = await orchestrator.execute(
        client_session,
        provider or default_provider,
        Operation.details,
        {"work_id": work_id},
    )
    return envelope_response(envelope)


@router.get("/read/{chapter_id:path}")
async def read(
    chapter_id: str,
    client_session: Annotated[ClientSession, Depends(get_connection)],
    orchestrator: Annotated[RequestOrchestrator, Depends(get_orchestrator)],
    default_provider: DefaultProvider,
    provider: ProviderQuery = None,
):
    envelope = await orchestrator.execute(
        client_session,
        provider or default_provider,
        Operation.pages,
        {"chapter_id": chapter_id},
    )
    return envelope_response(envelope)


@router.get("/advanced-search")
async def advanced_search(
    client_session: Annotated[ClientSession, Depends(get_connection)],
    orchestrator: Annotated[RequestOrchestrator, Depends(get_orchestrator)],
    query: Annotated[str, Query(alias="q")] = "",
    genre: str = "",
    type: str = "",
    status: str = "",
    page: int = 1,
):
    envelope = await orchestrator.execute(
        client_session,
        "mangapill",
        Operation.advanced_search,
        {"query": query, "genre": genre, "type": type, "status": status, "page": page},
    )
    return envelope_response(envelope)


@router.get("/recent")
async def recent_chapters(
    client_session: Annotated[ClientSession, Depends(get_connection)],
    orchestrator: Annotated[RequestOrchestrator, Depends(get_orchestrator)],
    page: int = 1,
):
    envelope = await orchestrator.execute(
        client_session, "mangapill", Operation.recent, {"page": page}
    )
    return envelope_response(envelope)


@router.get("/new")
async def new_works(
    client_session: Annotated[ClientSession, Depends(get_connection)],
    orchestrator: Annotated[RequestOrchestrator, Depends(get_orchestrator)],
    page: int = 1,
):
    envelope = await orchestrator.execute(
        client_session, "mangapill", Operation.new, {"page": page}
    )
    return envelope_response(envelope)


@router.get("/random")
async def random_work(
    client_session: Annotated[ClientSession, Depends(get_connection)],
    orchestrator: Annotated[RequestOrchestrator, Depends(get_orchestrator)],
):
    envelope = await orchestrator.execute(client_session, "mangapill", Operation.random)
    return envelope_response(envelope)


@router.get("/home")
async def home(
    client_session: Annotated[ClientSession, Depends(get_connection)],
    orchestrator: Annotated[RequestOrchestrator, Depends(get_orchestrator)],
):
    envelope = await orchestrator.execute(client_session, "mangapill", Operation.home)
    return envelope_response(envelope)
