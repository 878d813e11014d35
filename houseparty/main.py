import asyncio
import logging
import traceback
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from houseparty.config import settings
from houseparty.database import AsyncSessionLocal
from houseparty.errors import ServiceError
from houseparty.realtime.presence import PresenceCoordinator
from houseparty.routers import auth, friends, parties, realtime, users, video
from houseparty.services.friend_service import FriendGraph
from houseparty.services.notification_service import Notifier
from houseparty.services.party_service import PartyRegistry
from houseparty.services.push_service import PushDispatcher
from houseparty.services.token_service import TokenService
from houseparty.services.video_service import VideoTokenIssuer
from houseparty.tasks.cleanup import run_sweeper

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
logging.getLogger("httpx").setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    sweeper = asyncio.create_task(
        run_sweeper(app.state.session_factory, settings.expired_record_sweep_seconds)
    )
    logger.info("%s started (%s)", settings.app_name, settings.environment)
    try:
        yield
    finally:
        sweeper.cancel()
        try:
            await sweeper
        except asyncio.CancelledError:
            pass
        logger.info("%s stopped", settings.app_name)


app = FastAPI(
    title="House Party API",
    description="Backend for a social video-chat app: accounts, friends, parties and live presence",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def configure_services(app: FastAPI) -> None:
    """Build the process-wide services and hang them on ``app.state``."""
    video = VideoTokenIssuer.from_settings(settings)
    presence = PresenceCoordinator()
    notifier = Notifier(PushDispatcher(settings))

    app.state.session_factory = AsyncSessionLocal
    app.state.tokens = TokenService(settings)
    app.state.video = video
    app.state.presence = presence
    app.state.notifier = notifier
    app.state.friends = FriendGraph(notifier)
    app.state.parties = PartyRegistry(video, notifier, presence)


configure_services(app)


def _error(status_code: int, message: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message, **extra})


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    return _error(exc.status_code, exc.message)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return _error(exc.status_code, str(exc.detail))


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = errors[0]["msg"] if errors else "Invalid request"
    # pydantic prefixes custom validator messages
    message = message.removeprefix("Value error, ")
    return _error(400, message)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    if settings.is_production:
        return _error(500, "Internal server error")
    stack = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return _error(500, str(exc) or "Internal server error", stack=stack)


app.include_router(auth.router)
app.include_router(users.router)
app.include_router(friends.router)
app.include_router(parties.router)
app.include_router(video.router)
app.include_router(realtime.router)


@app.get("/health")
async def health_check():
    return {"success": True, "status": "ok"}
