"""FastAPI app exposing the user catalog: lookups, search, and data loading.

Startup creates the schema and, unless disabled, loads users from the
external source. A failed startup load is logged and the service keeps
running with an empty catalog; ``POST /api/data/load`` retries it later.
"""
from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import Depends, FastAPI, Query, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from sqlalchemy.ext.asyncio import AsyncSession

from .config import settings
from .db import AsyncSessionMaker, create_schema, get_session
from .errors import CatalogError, IngestionError, RecordValidationError, UserNotFoundError, describe_chain
from .logging_config import setup_logging
from .pipelines.ingest import IngestionPipeline, LoadResult, RetryPolicy, count_users
from .pipelines.search import get_user, get_user_by_email, list_users, search_users
from .source import UserSource

logger = logging.getLogger(__name__)

# One load at a time per process; the pipeline itself does not serialize.
_load_lock = asyncio.Lock()


# Pydantic response models
class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    version: str


class UserDTO(CamelModel):
    """User as returned by the API."""
    id: int
    first_name: str
    last_name: str
    ssn: str
    email: str
    age: int
    role: str
    phone: str | None = None
    username: str | None = None
    birth_date: str | None = None
    gender: str | None = None


class LoadResponse(CamelModel):
    """Data load response."""
    success: bool
    message: str
    previous_count: int
    current_count: int
    loaded_count: int


class DataStatusResponse(CamelModel):
    """Data load status."""
    total_users: int
    data_loaded: bool


class ErrorResponse(BaseModel):
    """Error response."""
    error: str
    detail: str | None = None


async def get_pipeline() -> AsyncIterator[IngestionPipeline]:
    """Ingestion pipeline dependency; owns the source HTTP client for the request."""
    async with UserSource(settings.source) as source:
        yield IngestionPipeline(
            AsyncSessionMaker,
            source,
            retry_policy=RetryPolicy.from_settings(settings.retry),
        )


async def run_load(pipeline: IngestionPipeline) -> LoadResult:
    """Run a load, never two at once."""
    async with _load_lock:
        return await pipeline.load()


async def load_on_startup() -> None:
    logger.info("Starting application data initialization")
    try:
        async with UserSource(settings.source) as source:
            pipeline = IngestionPipeline(
                AsyncSessionMaker,
                source,
                retry_policy=RetryPolicy.from_settings(settings.retry),
            )
            await run_load(pipeline)
    except CatalogError as e:
        logger.warning(
            f"Failed to load initial data automatically ({describe_chain(e)}). "
            "Data can be loaded via /api/data/load endpoint"
        )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup/shutdown logic."""
    # Startup
    setup_logging()
    logger.info("Application starting up")
    await create_schema()
    if settings.ingestion.load_on_startup:
        await load_on_startup()

    yield

    # Shutdown
    logger.info("Application shutting down")


app = FastAPI(
    title="User Catalog",
    version=settings.version,
    description="Searchable catalog of users loaded from an external source",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Exception handlers
@app.exception_handler(UserNotFoundError)
async def not_found_handler(request, exc: UserNotFoundError):
    """Handle lookup misses."""
    logger.info(f"Not found: {exc}")
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content=ErrorResponse(
            error="not_found",
            detail=str(exc),
        ).model_dump(),
    )


@app.exception_handler(IngestionError)
async def ingestion_error_handler(request, exc: IngestionError):
    """Handle data load failures after retries are exhausted."""
    logger.error(f"Ingestion error: {describe_chain(exc)}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=ErrorResponse(
            error="ingestion_failed",
            detail=describe_chain(exc),
        ).model_dump(),
    )


@app.exception_handler(RecordValidationError)
async def validation_error_handler(request, exc: RecordValidationError):
    """Handle malformed source records."""
    logger.error(f"Source record validation error: {exc}")
    return JSONResponse(
        status_code=status.HTTP_502_BAD_GATEWAY,
        content=ErrorResponse(
            error="invalid_source_record",
            detail=str(exc),
        ).model_dump(),
    )


@app.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(
        status="ok",
        version=settings.version,
    )


@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "app": settings.app_name,
        "version": settings.version,
        "endpoints": {
            "health": "/health",
            "list_users": "/api/users",
            "get_user": "/api/users/{id}",
            "get_user_by_email": "/api/users/email/{email}",
            "search_users": "/api/users/search?q=",
            "load_data": "/api/data/load",
            "data_status": "/api/data/status",
            "docs": "/docs",
        },
    }


@app.get("/api/users", response_model=list[UserDTO])
async def get_all_users(session: AsyncSession = Depends(get_session)) -> list[UserDTO]:
    """List every user ordered by id."""
    users = await list_users(session)
    logger.info(f"Returning {len(users)} users")
    return [UserDTO.model_validate(u) for u in users]


@app.get("/api/users/search", response_model=list[UserDTO])
async def search(
    q: str | None = Query(default=None, description="ID, email, name, or SSN"),
    session: AsyncSession = Depends(get_session),
) -> list[UserDTO]:
    """Search users.

    Numeric terms match an exact id first and terms containing ``@`` an exact
    email; otherwise names, email, and SSN (dashes ignored) are matched by
    substring. Terms shorter than 3 characters only search names and SSN.
    A missing or blank term lists every user.
    """
    users = await search_users(session, q)
    return [UserDTO.model_validate(u) for u in users]


@app.get("/api/users/email/{email}", response_model=UserDTO)
async def get_by_email(email: str, session: AsyncSession = Depends(get_session)) -> UserDTO:
    """Fetch one user by email (case-insensitive)."""
    return UserDTO.model_validate(await get_user_by_email(session, email))


@app.get("/api/users/{user_id}", response_model=UserDTO)
async def get_by_id(user_id: int, session: AsyncSession = Depends(get_session)) -> UserDTO:
    """Fetch one user by id."""
    return UserDTO.model_validate(await get_user(session, user_id))


@app.post("/api/data/load", response_model=LoadResponse)
async def load_data(pipeline: IngestionPipeline = Depends(get_pipeline)) -> LoadResponse:
    """Load all users from the external source.

    No-op when the catalog already holds users. Failures surface as
    ``ingestion_failed`` once every retry attempt is spent.
    """
    logger.info("Request received to load users from external source")
    result = await run_load(pipeline)

    message = "Users already loaded" if result.skipped else "Users data loaded successfully"
    logger.info(
        f"Load finished. Previous count: {result.previous_count}, "
        f"Current count: {result.current_count}"
    )
    return LoadResponse(
        success=True,
        message=message,
        previous_count=result.previous_count,
        current_count=result.current_count,
        loaded_count=result.loaded_count,
    )


@app.get("/api/data/status", response_model=DataStatusResponse)
async def data_status(session: AsyncSession = Depends(get_session)) -> DataStatusResponse:
    """Current size of the catalog."""
    total = await count_users(session)
    return DataStatusResponse(total_users=total, data_loaded=total > 0)
