"""
FastAPI server for the Player Finder service.

Exposes:
  - GET /health - Health check
  - POST /run-graph - Execute a search graph (player_search, coach_search, saved_search)
  - PATCH /users/{user_id}/visibility - Toggle whether a user can be found
  - GET/PUT /users/{user_id}/finder-preferences - Standing finder preferences
  - GET /users/{user_id}/nearby-players - Closest players under those preferences
  - POST /users/{user_id}/match-requests/{target_user_id} - Invite a player to a match
  - GET /searches/{searcher_id}/stats - Saved search statistics
  - PATCH /saved-searches/{search_id}/toggle - Activate/deactivate a saved search
  - POST /saved-searches/{search_id}/rerun - Re-run a saved search
  - POST /saved-searches/{search_id}/contacts - Record a contacted match
  - GET /docs - Interactive API documentation (Swagger UI)
"""

from dotenv import load_dotenv
load_dotenv()

from fastapi import Depends, FastAPI, HTTPException, Request, status, Header
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError
from typing import Dict, Any, Optional, Annotated
import sys
import time

# Import configuration (loads .env automatically)
from player_finder.config import config, validate_config

# Import logging setup
from player_finder.utils.logging_config import logger, setup_logging

from player_finder.graphs.matching import (
    NEARBY_PLAYERS_LIMIT,
    find_matches,
    find_nearby_players,
)
from player_finder.graphs.saved_search import rerun_saved_search, save_and_match
from player_finder.interfaces import (
    AbstractNotificationDispatcher,
    AbstractSavedSearchStore,
    AbstractUserDirectory,
)
from player_finder.models import MatchRequest, MatchResult, SavedSearch, parse_criteria
from player_finder.tools.firestore_tools import (
    FirestoreNotificationDispatcher,
    FirestoreSavedSearchStore,
    FirestoreUserDirectory,
)
from player_finder.tools.notification_tools import send_match_request
from player_finder.tools.preference_tools import (
    get_finder_preferences,
    update_finder_preferences,
)
from player_finder.tools.profile_tools import load_searcher, update_visibility
from player_finder.tools.saved_search_tools import (
    get_search_stats,
    record_contact,
    toggle_saved_search,
)
from player_finder.tools.scoring_tools import get_scoring_strategy
from player_finder.utils.errors import (
    DirectoryUnavailableError,
    InvalidInputError,
    NotificationDispatchError,
    SavedSearchNotFoundError,
    SavedSearchStoreError,
    UserNotFoundError,
)

# Setup logging
setup_logging(debug=config.DEBUG)

# ============================================================
# VALIDATE CONFIGURATION AT STARTUP
# ============================================================
try:
    config_status = validate_config()
    logger.info("Configuration validated successfully")
    for key, value in config_status.items():
        logger.info(f"  {key}: {value}")
except ValueError as e:
    logger.error(f"Configuration error: {e}")
    sys.exit(1)

# ============================================================
# FASTAPI APPLICATION
# ============================================================
app = FastAPI(
    title="Player Finder Service",
    description="Proximity matching of players and coaches for federation members",
    version="1.0.0",
)

# ============================================================
# CORS CONFIGURATION
# ============================================================
origins = [
    "http://localhost:5173",  # Vite dev
    "http://localhost:3000",  # React/Next dev
    "http://localhost:5000",  # Federation backend dev origin
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

GRAPH_NAMES = ("player_search", "coach_search", "saved_search")
DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100

# Domain errors and the HTTP status each one maps to.
ERROR_STATUS = {
    InvalidInputError: status.HTTP_400_BAD_REQUEST,
    UserNotFoundError: status.HTTP_404_NOT_FOUND,
    SavedSearchNotFoundError: status.HTTP_404_NOT_FOUND,
    DirectoryUnavailableError: status.HTTP_503_SERVICE_UNAVAILABLE,
    SavedSearchStoreError: status.HTTP_503_SERVICE_UNAVAILABLE,
    NotificationDispatchError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


# ============================================================
# REQUEST/RESPONSE MODELS
# ============================================================
class GraphRequest(BaseModel):
    """
    Request body for /run-graph endpoint.

    Attributes:
        graph (str): Name of graph to execute.
                    Options: 'player_search', 'coach_search', 'saved_search'
        input (dict): Input for the graph.
                     Searches take user_id, criteria, optional latitude/longitude
                     override and page/limit. Saved searches take user_id, mode,
                     criteria, optional search_latitude/search_longitude and auto_notify.
    """
    graph: str
    input: Dict[str, Any]


class GraphResponse(BaseModel):
    """
    Response body for /run-graph endpoint.

    Attributes:
        success (bool): Whether graph executed successfully
        graph (str): Name of the graph that was executed
        data (dict): Output from the graph
        error (Optional[str]): Error message if something went wrong
    """
    success: bool
    graph: str
    data: Dict[str, Any] = {}
    error: Optional[str] = None


class VisibilityRequest(BaseModel):
    """Body for the visibility toggle. Checked as a strict boolean downstream."""
    can_be_found: Any = None


class ContactRequest(BaseModel):
    """Body for recording a contacted match."""
    successful: bool = False


# ============================================================
# DEPENDENCIES
# ============================================================
def get_directory() -> AbstractUserDirectory:
    return FirestoreUserDirectory()


def get_store() -> AbstractSavedSearchStore:
    return FirestoreSavedSearchStore()


def get_dispatcher() -> AbstractNotificationDispatcher:
    return FirestoreNotificationDispatcher()


def verify_token(authorization: Annotated[Optional[str], Header()] = None) -> None:
    """Validate the shared service token if one is configured."""
    if config.SERVICE_TOKEN:
        expected = f"Bearer {config.SERVICE_TOKEN}"
        if authorization != expected:
            logger.warning("Unauthorized request: invalid or missing token")
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Unauthorized",
            )


# ============================================================
# HELPERS
# ============================================================
def _require(inp: Dict[str, Any], key: str) -> Any:
    value = inp.get(key)
    if value in (None, ""):
        raise InvalidInputError(f"{key} is required")
    return value


def _page_params(inp: Dict[str, Any]) -> tuple[int, int]:
    try:
        page = int(inp.get("page", 1))
        limit = int(inp.get("limit", DEFAULT_PAGE_SIZE))
    except (TypeError, ValueError):
        raise InvalidInputError("page and limit must be integers") from None
    if page < 1:
        raise InvalidInputError("page must be at least 1")
    if not 1 <= limit <= MAX_PAGE_SIZE:
        raise InvalidInputError(f"limit must be between 1 and {MAX_PAGE_SIZE}")
    return page, limit


def _serialize_matches(matches: list[MatchResult]) -> list[Dict[str, Any]]:
    return [match.to_response() for match in matches]


def _run_search(
    mode: str, inp: Dict[str, Any], directory: AbstractUserDirectory
) -> Dict[str, Any]:
    """Peer or coach search for an existing user, paginated."""
    user_id = _require(inp, "user_id")
    criteria = parse_criteria(inp.get("criteria"), mode)
    page, limit = _page_params(inp)

    searcher = load_searcher(user_id, directory).with_location(
        inp.get("latitude"), inp.get("longitude")
    )
    matches = find_matches(
        searcher,
        criteria,
        directory=directory,
        strategy=get_scoring_strategy(mode),
    )

    start = (page - 1) * limit
    return {
        "matches": _serialize_matches(matches[start:start + limit]),
        "total": len(matches),
        "page": page,
        "limit": limit,
        "search_radius_km": criteria.radius_km,
    }


def _run_saved_search(
    inp: Dict[str, Any],
    directory: AbstractUserDirectory,
    store: AbstractSavedSearchStore,
    dispatcher: AbstractNotificationDispatcher,
) -> Dict[str, Any]:
    """Save a standing search, run it once and notify the top matches."""
    mode = inp.get("mode", "player")
    try:
        request = SavedSearch(
            searcher_id=_require(inp, "user_id"),
            mode=mode,
            criteria=parse_criteria(inp.get("criteria"), mode),
            search_latitude=inp.get("search_latitude"),
            search_longitude=inp.get("search_longitude"),
            auto_notify=inp.get("auto_notify", True),
        )
    except ValidationError as e:
        raise InvalidInputError(f"Invalid saved search: {e}") from e

    result = save_and_match(
        request, directory=directory, store=store, dispatcher=dispatcher
    )
    return {
        "saved_search": result.saved_search.model_dump(mode="json"),
        "matches": _serialize_matches(result.matches),
        "total": len(result.matches),
        "notified_matches": result.notified_matches,
        "notifications": [n.model_dump(mode="json") for n in result.notifications],
    }


# ============================================================
# MIDDLEWARE
# ============================================================
@app.middleware("http")
async def add_process_time_header(request: Request, call_next):
    """
    Middleware to track request processing time.

    Adds X-Process-Time header to all responses showing how long request took.
    """
    start_time = time.time()
    response = await call_next(request)
    process_time = time.time() - start_time
    response.headers["X-Process-Time"] = str(process_time)
    return response


# ============================================================
# ROUTES
# ============================================================

@app.get("/health", tags=["System"])
async def health_check() -> Dict[str, str]:
    """
    Health check endpoint.

    Returns:
        dict: {"status": "healthy"}
    """
    return {"status": "healthy"}


@app.post(
    "/run-graph",
    response_model=GraphResponse,
    tags=["Graphs"],
    dependencies=[Depends(verify_token)],
)
def run_graph(
    request: GraphRequest,
    directory: AbstractUserDirectory = Depends(get_directory),
    store: AbstractSavedSearchStore = Depends(get_store),
    dispatcher: AbstractNotificationDispatcher = Depends(get_dispatcher),
) -> GraphResponse:
    """
    Execute a search graph and return results.

    Supported graphs:
      - player_search: Peers within radius, ranked by distance with score tiebreaks
      - coach_search: Coaches within radius above the coach score floor
      - saved_search: Persist a standing search, run it and notify top matches

    Domain errors propagate to the exception handlers, which map them to
    400/404/503 responses.
    """
    logger.info(f"Received request for graph: {request.graph}")
    logger.debug(f"Input keys: {list(request.input.keys())}")

    if request.graph not in GRAPH_NAMES:
        logger.error(f"Unknown graph: {request.graph}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown graph: {request.graph}. "
                   f"Valid options: {', '.join(GRAPH_NAMES)}",
        )

    start_time = time.time()
    success = False
    try:
        if request.graph == "player_search":
            data = _run_search("player", request.input, directory)
        elif request.graph == "coach_search":
            data = _run_search("coach", request.input, directory)
        else:
            data = _run_saved_search(request.input, directory, store, dispatcher)
        success = True
    finally:
        logger.info(
            "run-graph summary: graph=%s input_keys=%s success=%s time=%.2fs",
            request.graph,
            list(request.input.keys()),
            success,
            time.time() - start_time,
        )

    return GraphResponse(success=True, graph=request.graph, data=data, error=None)


@app.patch(
    "/users/{user_id}/visibility",
    tags=["Users"],
    dependencies=[Depends(verify_token)],
)
def set_user_visibility(
    user_id: str,
    body: VisibilityRequest,
    directory: AbstractUserDirectory = Depends(get_directory),
) -> Dict[str, Any]:
    """Set whether the user appears in other members' searches."""
    return update_visibility(user_id, body.can_be_found, directory)


@app.get(
    "/users/{user_id}/finder-preferences",
    tags=["Users"],
    dependencies=[Depends(verify_token)],
)
def read_finder_preferences(
    user_id: str,
    store: AbstractSavedSearchStore = Depends(get_store),
) -> Dict[str, Any]:
    """Stored finder preferences; data is null when none were saved."""
    preferences = get_finder_preferences(user_id, store)
    return {
        "success": True,
        "data": preferences.model_dump(mode="json") if preferences else None,
    }


@app.put(
    "/users/{user_id}/finder-preferences",
    tags=["Users"],
    dependencies=[Depends(verify_token)],
)
def write_finder_preferences(
    user_id: str,
    body: Dict[str, Any],
    directory: AbstractUserDirectory = Depends(get_directory),
    store: AbstractSavedSearchStore = Depends(get_store),
) -> Dict[str, Any]:
    """Create or update finder preferences; omitted fields keep their values."""
    preferences = update_finder_preferences(
        user_id, body, directory=directory, store=store
    )
    return {"success": True, "data": preferences.model_dump(mode="json")}


@app.get(
    "/users/{user_id}/nearby-players",
    tags=["Users"],
    dependencies=[Depends(verify_token)],
)
def nearby_players(
    user_id: str,
    limit: int = NEARBY_PLAYERS_LIMIT,
    directory: AbstractUserDirectory = Depends(get_directory),
    store: AbstractSavedSearchStore = Depends(get_store),
) -> Dict[str, Any]:
    """Closest players to the user, nearest first."""
    if not 1 <= limit <= MAX_PAGE_SIZE:
        raise InvalidInputError(f"limit must be between 1 and {MAX_PAGE_SIZE}")
    players = find_nearby_players(
        user_id, directory=directory, store=store, limit=limit
    )
    return {"success": True, "players": _serialize_matches(players), "total": len(players)}


@app.post(
    "/users/{user_id}/match-requests/{target_user_id}",
    tags=["Users"],
    dependencies=[Depends(verify_token)],
)
def create_match_request(
    user_id: str,
    target_user_id: str,
    body: Optional[Dict[str, Any]] = None,
    directory: AbstractUserDirectory = Depends(get_directory),
    dispatcher: AbstractNotificationDispatcher = Depends(get_dispatcher),
) -> Dict[str, Any]:
    """Send a match invitation to another player."""
    try:
        request = MatchRequest.model_validate(body or {})
    except ValidationError as e:
        raise InvalidInputError(f"Invalid match request: {e}") from e

    data = send_match_request(
        user_id, target_user_id, request, directory=directory, dispatcher=dispatcher
    )
    return {"success": True, "message": "Match request sent successfully", "data": data}


@app.get(
    "/searches/{searcher_id}/stats",
    tags=["Saved Searches"],
    dependencies=[Depends(verify_token)],
)
def search_stats(
    searcher_id: str,
    store: AbstractSavedSearchStore = Depends(get_store),
) -> Dict[str, Any]:
    """Aggregate counters over a user's saved searches."""
    stats = get_search_stats(searcher_id, store)
    return {"success": True, "stats": stats.model_dump(mode="json")}


@app.patch(
    "/saved-searches/{search_id}/toggle",
    tags=["Saved Searches"],
    dependencies=[Depends(verify_token)],
)
def toggle_search(
    search_id: str,
    store: AbstractSavedSearchStore = Depends(get_store),
) -> Dict[str, Any]:
    """Activate or deactivate a saved search."""
    saved = toggle_saved_search(search_id, store)
    return {"success": True, "is_active": saved.is_active}


@app.post(
    "/saved-searches/{search_id}/rerun",
    tags=["Saved Searches"],
    dependencies=[Depends(verify_token)],
)
def rerun_search(
    search_id: str,
    directory: AbstractUserDirectory = Depends(get_directory),
    store: AbstractSavedSearchStore = Depends(get_store),
) -> Dict[str, Any]:
    """Re-run an active saved search and refresh its counters."""
    result = rerun_saved_search(search_id, directory=directory, store=store)
    return {
        "success": True,
        "saved_search": result.saved_search.model_dump(mode="json"),
        "matches": _serialize_matches(result.matches),
        "total": len(result.matches),
    }


@app.post(
    "/saved-searches/{search_id}/contacts",
    tags=["Saved Searches"],
    dependencies=[Depends(verify_token)],
)
def add_contact(
    search_id: str,
    body: Optional[ContactRequest] = None,
    store: AbstractSavedSearchStore = Depends(get_store),
) -> Dict[str, Any]:
    """Record that the searcher contacted a match, optionally a successful one."""
    successful = body.successful if body else False
    saved = record_contact(search_id, store, successful=successful)
    return {
        "success": True,
        "matches_contacted": saved.matches_contacted,
        "successful_matches": saved.successful_matches,
    }


@app.get("/", tags=["System"])
async def root() -> Dict[str, str]:
    """
    Root endpoint.

    Returns information about the API and how to access documentation.
    """
    return {
        "service": "Player Finder Service",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
    }


# ============================================================
# ERROR HANDLERS
# ============================================================

def _error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "error": message,
            "status_code": status_code,
        },
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """
    Handle HTTP exceptions with consistent error response format.
    """
    logger.error(f"HTTP Exception: {exc.status_code} - {exc.detail}")
    return _error_response(exc.status_code, exc.detail)


async def domain_exception_handler(request: Request, exc: Exception):
    """
    Map domain errors onto their HTTP status.

    Validation and not-found errors echo their message; service errors
    are logged and reported generically.
    """
    status_code = next(
        code for error_type, code in ERROR_STATUS.items() if isinstance(exc, error_type)
    )
    if status_code >= 500:
        logger.error(f"{type(exc).__name__}: {exc}")
        return _error_response(status_code, "Service temporarily unavailable")
    logger.warning(f"{type(exc).__name__}: {exc}")
    return _error_response(status_code, str(exc))


for _error_type in ERROR_STATUS:
    app.add_exception_handler(_error_type, domain_exception_handler)


@app.exception_handler(TimeoutError)
async def timeout_exception_handler(request: Request, exc: TimeoutError):
    """
    Handle graphs that ran past GRAPH_TIMEOUT.
    """
    logger.error(f"Graph timed out on {request.url.path}: {exc}")
    return _error_response(
        status.HTTP_504_GATEWAY_TIMEOUT,
        f"Graph execution timed out after {config.GRAPH_TIMEOUT}s",
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """
    Handle unexpected exceptions.

    Catches any exception not caught by other handlers and returns 500 error.
    Never returns the exception message to the client; use logging instead.
    """
    logger.error(f"Unhandled exception: {str(exc)}")
    logger.exception("Full traceback:")
    return _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")


# ============================================================
# STARTUP EVENTS
# ============================================================

@app.on_event("startup")
async def startup_event():
    """
    Run when the application starts.

    Configuration is already validated above (in module-level code),
    but we log it again here for visibility.
    """
    logger.info("=" * 60)
    logger.info("Player Finder Service Starting Up")
    logger.info("=" * 60)

    logger.info(f"Firebase Project: {config.FIREBASE_PROJECT_ID}")
    logger.info(f"Debug Mode: {config.DEBUG}")
    logger.info(f"Graph Timeout: {config.GRAPH_TIMEOUT}s")
    logger.info(f"Radius: {config.MIN_RADIUS_KM}-{config.MAX_RADIUS_KM} km")
    logger.info(f"Max Candidates: {config.MAX_CANDIDATES}")
    logger.info(f"Notify Top N: {config.NOTIFY_TOP_N}")

    logger.info("=" * 60)
    logger.info("Service ready to handle requests")
    logger.info("=" * 60)


@app.on_event("shutdown")
async def shutdown_event():
    """
    Run when the application shuts down.
    """
    logger.info("Player Finder Service Shutting Down")


# ============================================================
# ENTRY POINT
# ============================================================

if __name__ == "__main__":
    """
    Run with: python -m uvicorn player_finder.server:app --reload
    """
    import uvicorn
    uvicorn.run(
        app,
        host=config.HOST,
        port=config.PORT,
        log_level="info" if not config.DEBUG else "debug"
    )
