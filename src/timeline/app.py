from contextlib import asynccontextmanager
from typing import Annotated
import logging
import re

import anyio.to_thread
from fastapi import APIRouter, Depends, FastAPI, Query, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from timeline.config import Settings
from timeline.errors import AuthError, ValidationError, register_exception_handlers
from timeline.messages import (
    AuthCheckResponse,
    CreatedPost,
    CreatePostRequest,
    CreatePostResponse,
    HealthResponse,
    LoginRequest,
    LoginResponse,
    SuccessResponse,
    TimelineResponse,
    UserSummary,
)
from timeline.persistence.database import (
    PersistentDatabase,
    add_post,
    get_latest_posts,
    get_new_posts_since,
    get_or_create_user,
    get_post_count,
)
from timeline.security.identity import (
    clear_identity_cookie,
    read_identity,
    set_identity_cookie,
)

logger = logging.getLogger(__name__)

_LEADING_INT = re.compile(r"\s*([+-]?\d+)")

# SQLite INTEGER range
MAX_ROW_ID = 2**63 - 1
MIN_ROW_ID = -(2**63)


def parse_last_id(raw: str | None) -> int:
    """
    Leading integer of the lastId query value, 0 when there is none. Clamped to
    the range SQLite can bind, so an oversized cursor simply matches nothing.
    """
    if raw is None:
        return 0
    match = _LEADING_INT.match(raw)
    if match is None:
        return 0
    return max(MIN_ROW_ID, min(int(match.group(1)), MAX_ROW_ID))


def get_db(request: Request) -> PersistentDatabase:
    return request.app.state.db


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


Database = Annotated[PersistentDatabase, Depends(get_db)]
AppSettings = Annotated[Settings, Depends(get_settings)]

router = APIRouter()


@router.get("/health")
async def health_check(db: Database) -> HealthResponse:
    post_count = await anyio.to_thread.run_sync(get_post_count, db)
    return HealthResponse(post_count=post_count)


@router.post("/api/login")
async def login(
    response: Response,
    db: Database,
    settings: AppSettings,
    body: LoginRequest | None = None,
) -> LoginResponse:
    """
    Logs in as the given username, creating the user on first sight.
    """
    username = body.username if body is not None else None
    if not isinstance(username, str) or username.strip() == "":
        raise ValidationError("Username is required")

    user = await anyio.to_thread.run_sync(get_or_create_user, db, username.strip())

    set_identity_cookie(response, user.username, settings.identity_cookie_max_age)
    return LoginResponse(user=UserSummary.from_result(user))


@router.get("/api/auth/check", response_model_exclude_none=True)
async def auth_check(request: Request) -> AuthCheckResponse:
    """
    Reports who the identity cookie claims to be. The store is not consulted.
    """
    username = read_identity(request)
    if username is None:
        return AuthCheckResponse(authenticated=False)
    return AuthCheckResponse(authenticated=True, username=username)


@router.get("/api/timeline")
async def timeline(db: Database, settings: AppSettings) -> TimelineResponse:
    posts = await anyio.to_thread.run_sync(
        get_latest_posts, db, settings.timeline_limit
    )
    return TimelineResponse.from_results(posts)


@router.get("/api/timeline/new")
async def timeline_new(
    db: Database, last_id: Annotated[str | None, Query(alias="lastId")] = None
) -> TimelineResponse:
    """
    Polling endpoint: posts with an id above lastId.
    """
    posts = await anyio.to_thread.run_sync(
        get_new_posts_since, db, parse_last_id(last_id)
    )
    return TimelineResponse.from_results(posts)


@router.post("/api/posts")
async def create_post(
    request: Request,
    db: Database,
    settings: AppSettings,
    body: CreatePostRequest | None = None,
) -> CreatePostResponse:
    # Identity is checked before anything about the body
    username = read_identity(request)
    if username is None:
        raise AuthError()

    content = body.content if body is not None else None
    if not isinstance(content, str) or content.strip() == "":
        raise ValidationError("Post content is required")

    # Limit applies to the content as submitted, before trimming
    if len(content) > settings.max_post_length:
        raise ValidationError(
            f"Posts must be {settings.max_post_length} characters or fewer"
        )

    post = await anyio.to_thread.run_sync(add_post, db, username, content.strip())
    return CreatePostResponse(post=CreatedPost.from_result(post))


@router.post("/api/logout")
async def logout(response: Response) -> SuccessResponse:
    clear_identity_cookie(response)
    return SuccessResponse()


def create_app(settings: Settings, db: PersistentDatabase | None = None) -> FastAPI:
    """
    Builds the API. The schema is brought up to date before the first request is
    served; if that fails the server does not start.
    """
    if db is None:
        db = PersistentDatabase.from_url(settings.database_url)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await anyio.to_thread.run_sync(db.ensure_schema)
        yield
        db.engine.dispose()

    app = FastAPI(
        title="Timeline Server",
        description="Username-only posting and polling timeline",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.db = db
    app.state.settings = settings

    if settings.cors_allow_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_allow_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    register_exception_handlers(app)
    app.include_router(router)

    return app
