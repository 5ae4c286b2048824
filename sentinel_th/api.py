"""FastAPI application exposing the hunting integration over HTTP.

Routes are thin: they pull collaborators off app.state, call the core, and
let the exception handlers turn ValidationError/ParseError into 400 and
RemoteError into 500. Anything else is logged and answered with a generic
500. Every error body is {"error": message}.
"""

import logging
import shutil
import tempfile
from pathlib import Path

from fastapi import APIRouter, Body, Depends, FastAPI, File, Request, UploadFile, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from sentinel_th.config import Settings
from sentinel_th.errors import ParseError, RemoteError, ValidationError
from sentinel_th.graph_client import GraphClient
from sentinel_th.hunting import HuntingService
from sentinel_th.models import parse_timespan
from sentinel_th.purge import purge_sentinel
from sentinel_th.registration import (
    DEFAULT_APP_NAME,
    add_sentinel_permissions,
    register_application,
)
from sentinel_th.sentinel_client import SentinelClient

logger = logging.getLogger(__name__)

KQL_EXTENSION = ".kql"

router = APIRouter(prefix="/api")


# ── Dependencies ──────────────────────────────────────────────────────

def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_sentinel(request: Request) -> SentinelClient:
    return request.app.state.sentinel_client


def get_graph(request: Request) -> GraphClient:
    return request.app.state.graph_client


def get_hunting(request: Request) -> HuntingService:
    return request.app.state.hunting


# ── Error envelope ────────────────────────────────────────────────────

def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


async def _client_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.warning("%s %s: %s", request.method, request.url.path, exc)
    return _error(status.HTTP_400_BAD_REQUEST, str(exc))


async def _request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = "; ".join(
        f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg', '')}"
        for err in exc.errors()
    )
    logger.warning("%s %s: invalid request (%s)", request.method, request.url.path, details)
    return _error(status.HTTP_400_BAD_REQUEST, f"Invalid request: {details}")


async def _remote_error_handler(request: Request, exc: RemoteError) -> JSONResponse:
    logger.error(
        "%s %s: remote call failed (%s, HTTP %s): %s",
        request.method, request.url.path, exc.code, exc.status_code, exc.message,
    )
    return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, exc.message)


async def _unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("%s %s: unhandled error", request.method, request.url.path, exc_info=exc)
    return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "An internal server error occurred.")


# ── Routes ────────────────────────────────────────────────────────────

@router.get("/health", tags=["health"])
def health():
    """Liveness probe."""
    return {"service": "Sentinel TH Integration", "status": "running"}


@router.post("/register-app", status_code=status.HTTP_201_CREATED, tags=["registration"])
def register_app(
    payload: dict | None = Body(None),
    graph: GraphClient = Depends(get_graph),
):
    """Register an Entra ID application and grant it Sentinel (ARM) access."""
    payload = payload or {}
    app_name = payload.get("appName") or DEFAULT_APP_NAME
    redirect_uris = payload.get("redirectUris") or []
    if not isinstance(redirect_uris, list) or not all(isinstance(u, str) for u in redirect_uris):
        raise ValidationError("redirectUris must be a list of strings")

    logger.info("Registering app %r", app_name)
    app = register_application(graph, app_name, redirect_uris)
    add_sentinel_permissions(graph, app["id"])

    return {
        "message": "Application registered and permissions added successfully",
        "appId": app.get("appId"),
        "objectId": app.get("id"),
        "displayName": app.get("displayName"),
    }


@router.get("/app-info", tags=["registration"])
def app_info(
    settings: Settings = Depends(get_settings),
    graph: GraphClient = Depends(get_graph),
):
    if not settings.azure_client_id:
        return _error(status.HTTP_404_NOT_FOUND, "AZURE_CLIENT_ID is not configured")
    app = graph.get_application_by_app_id(settings.azure_client_id)
    if app is None:
        return _error(
            status.HTTP_404_NOT_FOUND,
            f"Application {settings.azure_client_id} not found",
        )
    return app


@router.get("/hunting-queries", tags=["queries"])
def list_hunting_queries(sentinel: SentinelClient = Depends(get_sentinel)):
    return sentinel.list_saved_searches()


@router.post("/hunting-queries", status_code=status.HTTP_201_CREATED, tags=["queries"])
def create_hunting_query(
    payload: dict = Body(...),
    hunting: HuntingService = Depends(get_hunting),
):
    return hunting.create_query_from_input(payload)


@router.post("/hunting-queries/upload", status_code=status.HTTP_201_CREATED, tags=["queries"])
def upload_hunting_query(
    file: UploadFile | None = File(None),
    settings: Settings = Depends(get_settings),
    hunting: HuntingService = Depends(get_hunting),
):
    """Create a saved search from an uploaded .kql file.

    The upload is staged under the uploads directory and removed whether or
    not creation succeeds.
    """
    if file is None or not file.filename:
        raise ValidationError("No file uploaded")
    if Path(file.filename).suffix.lower() != KQL_EXTENSION:
        raise ValidationError(f"Only {KQL_EXTENSION} files are allowed")

    uploads_dir = Path(settings.uploads_dir)
    uploads_dir.mkdir(parents=True, exist_ok=True)
    staged = tempfile.NamedTemporaryFile(dir=uploads_dir, suffix=KQL_EXTENSION, delete=False)
    staged_path = Path(staged.name)
    try:
        with staged:
            shutil.copyfileobj(file.file, staged)
        return hunting.create_query_from_file(staged_path, default_name=Path(file.filename).stem)
    finally:
        staged_path.unlink(missing_ok=True)
        logger.debug("Removed staged upload %s", staged_path)


@router.post("/hunting-queries/run", tags=["queries"])
def run_hunting_query(
    payload: dict = Body(...),
    sentinel: SentinelClient = Depends(get_sentinel),
):
    query = payload.get("query")
    if not isinstance(query, str) or not query.strip():
        raise ValidationError("Query is required")
    timespan = parse_timespan(payload.get("timespan"))
    return sentinel.run_hunting_query(query, timespan)


@router.get("/hunts", tags=["hunts"])
def list_hunts(sentinel: SentinelClient = Depends(get_sentinel)):
    return sentinel.get_hunts()


@router.post("/hunts", status_code=status.HTTP_201_CREATED, tags=["hunts"])
def create_hunt(
    payload: dict = Body(...),
    hunting: HuntingService = Depends(get_hunting),
):
    return hunting.create_hunt(payload)


@router.post("/link-query", status_code=status.HTTP_201_CREATED, tags=["hunts"])
def link_query(
    payload: dict = Body(...),
    hunting: HuntingService = Depends(get_hunting),
):
    return hunting.link_query_to_hunt(payload)


@router.post("/bulk-create-hunt", status_code=status.HTTP_201_CREATED, tags=["hunts"])
def bulk_create_hunt(
    payload: dict = Body(...),
    hunting: HuntingService = Depends(get_hunting),
):
    """Create a query, a hunt, and the relation between them.

    Not atomic: on failure, resources from earlier steps may remain.
    """
    return hunting.create_hunt_with_query(payload)


@router.delete("/purge", tags=["hunts"])
def purge(sentinel: SentinelClient = Depends(get_sentinel)):
    """Delete everything carrying the attribution label. 207 on partial failure."""
    result = purge_sentinel(sentinel)
    status_code = status.HTTP_207_MULTI_STATUS if result.has_errors else status.HTTP_200_OK
    return JSONResponse(status_code=status_code, content=result.to_dict())


# ── Application factory ───────────────────────────────────────────────

def create_app(
    settings: Settings,
    *,
    sentinel_client: SentinelClient | None = None,
    graph_client: GraphClient | None = None,
) -> FastAPI:
    """Build the FastAPI app. Clients may be injected for testing."""
    app = FastAPI(
        title="Microsoft Sentinel Integration API",
        description="Hunts, hunting queries and app registration for Microsoft Sentinel",
        version="1.0.0",
    )

    if sentinel_client is None:
        sentinel_client = SentinelClient(settings)
    if graph_client is None:
        graph_client = GraphClient(settings)

    app.state.settings = settings
    app.state.sentinel_client = sentinel_client
    app.state.graph_client = graph_client
    app.state.hunting = HuntingService(sentinel_client)

    app.add_exception_handler(ValidationError, _client_error_handler)
    app.add_exception_handler(ParseError, _client_error_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
    app.add_exception_handler(RemoteError, _remote_error_handler)
    app.add_exception_handler(Exception, _unhandled_error_handler)

    app.include_router(router)
    return app
