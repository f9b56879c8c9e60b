"""Ingestion pipeline: external user source → users table.

Implements the bulk load flow:
1. Skip entirely when the catalog already holds users (no network calls).
2. Page through the source (``limit``/``skip``) until the declared total.
3. Map every record and insert them all in a single transaction.
4. Invoke the search indexing hook once, outside the retried unit.

Steps 1-3 run under an explicit ``RetryPolicy``. A failed attempt
writes nothing, so the catalog is either untouched or fully loaded.

Concurrent ``load()`` calls are not safe: the emptiness check and the commit
are not atomic together. Callers must serialize them (see ``catalog.api``).
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Protocol

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from tenacity import AsyncRetrying, before_sleep_log, retry_if_exception_type, stop_after_attempt, wait_fixed

from catalog import models
from catalog.config import RetrySettings, settings
from catalog.errors import IngestionError, RecordValidationError
from catalog.pipelines.mapping import to_users
from catalog.source import UserSource

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    """How often and how patiently a failed load is retried.

    ``max_attempts`` counts the first try. Only exceptions listed in
    ``retry_on`` are retried; anything else propagates immediately.
    """
    max_attempts: int = 3
    delay_seconds: float = 1.0
    retry_on: tuple[type[BaseException], ...] = (IngestionError,)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.delay_seconds < 0:
            raise ValueError("delay_seconds must be >= 0")

    @classmethod
    def from_settings(cls, config: RetrySettings | None = None) -> RetryPolicy:
        config = config or settings.retry
        return cls(max_attempts=config.max_attempts, delay_seconds=config.delay)

    def retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_fixed(self.delay_seconds),
            retry=retry_if_exception_type(self.retry_on),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )


class SearchIndexer(Protocol):
    """Optional post-commit hook for an external search index."""

    async def index_all(self, session: AsyncSession) -> None:
        ...


class NoOpIndexer:
    """Default indexer. Search runs live predicates, so there is nothing to build."""

    async def index_all(self, session: AsyncSession) -> None:
        logger.debug("Search indexing skipped (no indexer configured)")


@dataclass
class LoadResult:
    """Outcome of one ``IngestionPipeline.load()`` call."""
    previous_count: int
    current_count: int
    attempts: int = 1
    skipped: bool = False
    fetched_pages: list[int] = field(default_factory=list)

    @property
    def loaded_count(self) -> int:
        return self.current_count - self.previous_count


async def count_users(session: AsyncSession) -> int:
    result = await session.execute(select(func.count()).select_from(models.User))
    return int(result.scalar_one())


class IngestionPipeline:
    """Loads the complete user dataset from the source, once."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        source: UserSource,
        *,
        page_size: int | None = None,
        retry_policy: RetryPolicy | None = None,
        indexer: SearchIndexer | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.source = source
        self.page_size = page_size or source.config.page_size
        self.retry_policy = retry_policy or RetryPolicy.from_settings()
        self.indexer = indexer or NoOpIndexer()

        if self.page_size < 1:
            raise ValueError("page_size must be >= 1")

    async def load(self) -> LoadResult:
        """Run the load under the retry policy, then the indexing hook once.

        Returns:
            LoadResult; ``skipped`` is True when users already existed.

        Raises:
            IngestionError: When every attempt failed (the catalog is
                unchanged), or when indexing failed after a successful commit.
            RecordValidationError: When a source record is malformed (not retried).
        """
        logger.info("Starting to load users from external source")
        async for attempt in self.retry_policy.retrying():
            with attempt:
                number = attempt.retry_state.attempt_number
                if number > 1:
                    logger.info(f"Retrying user load (attempt {number}/{self.retry_policy.max_attempts})")
                result = await self._load_once()
                result.attempts = number

        if not result.skipped:
            await self._index(result)
        return result

    async def _load_once(self) -> LoadResult:
        try:
            async with self.session_factory() as session:
                existing = await count_users(session)
                if existing > 0:
                    logger.info(f"Users already exist in database ({existing}). Skipping data load.")
                    return LoadResult(previous_count=existing, current_count=existing, skipped=True)

                try:
                    users, pages = await self._collect()
                    session.add_all(users)
                    await session.commit()
                except Exception:
                    await session.rollback()
                    raise

        except (IngestionError, RecordValidationError):
            raise
        except Exception as e:
            logger.error(f"User load attempt failed: {e}")
            raise IngestionError(f"Failed to load users from external source: {e}") from e

        logger.info(f"Successfully loaded {len(users)} users from external source")
        return LoadResult(previous_count=0, current_count=len(users), fetched_pages=pages)

    async def _index(self, result: LoadResult) -> None:
        """Invoke the indexing hook after a committed load. Not retried."""
        try:
            async with self.session_factory() as session:
                await self.indexer.index_all(session)
        except Exception as e:
            logger.error(f"Search indexing failed after loading {result.loaded_count} users: {e}")
            raise IngestionError(
                f"Loaded {result.loaded_count} users but search indexing failed: {e}"
            ) from e

    async def _collect(self) -> tuple[list[models.User], list[int]]:
        """Fetch every page into memory. Nothing is written here."""
        buffer: list[models.User] = []
        offsets: list[int] = []
        skip = 0
        total: int | None = None

        while total is None or skip < total:
            page = await self.source.fetch_page(limit=self.page_size, skip=skip)
            offsets.append(skip)
            if total is None:
                total = page.total
                logger.info(f"User source declares {total} users")

            buffer.extend(to_users(page.users))
            logger.debug(f"Loaded {len(page.users)} users, total so far: {len(buffer)}")
            skip += self.page_size

        return buffer, offsets
