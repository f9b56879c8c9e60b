"""Read-only catalog queries: listing, lookups, and free-form search.

Nothing in this module adds, flushes, or commits; every function is safe to
call concurrently on separate sessions.
"""
from __future__ import annotations

import logging
from typing import Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from catalog import models
from catalog.errors import UserNotFoundError
from catalog.predicates import Equals, Predicate, UserField, compile_predicate
from catalog.query import MAX_USER_ID, plan_search

logger = logging.getLogger(__name__)


async def run_predicate(session: AsyncSession, predicate: Predicate) -> list[models.User]:
    """Execute one predicate; rows ordered by identifier ascending."""
    query = (
        select(models.User)
        .where(compile_predicate(predicate))
        .order_by(models.User.id)
    )
    result = await session.execute(query)
    return list(result.scalars().all())


async def execute_stages(session: AsyncSession, stages: Sequence[Predicate]) -> list[models.User]:
    """Run stages in order; return the first non-empty result.

    The final stage's result is returned as-is, so an empty list is a valid
    outcome.
    """
    if not stages:
        raise ValueError("At least one predicate stage is required")

    for index, stage in enumerate(stages):
        rows = await run_predicate(session, stage)
        if rows or index == len(stages) - 1:
            return rows
    return []


async def search_users(session: AsyncSession, term: str | None) -> list[models.User]:
    """Free-form search. An empty or missing term lists every user."""
    plan, stages = plan_search(term)
    users = await execute_stages(session, stages)
    logger.info(f"Search '{plan.term}' ({plan.strategy.value}) returned {len(users)} users")
    return users


async def list_users(session: AsyncSession) -> list[models.User]:
    result = await session.execute(select(models.User).order_by(models.User.id))
    return list(result.scalars().all())


async def get_user(session: AsyncSession, user_id: int) -> models.User:
    """Fetch one user by identifier.

    Raises:
        UserNotFoundError: If no user has this identifier.
    """
    user = await session.get(models.User, user_id) if abs(user_id) <= MAX_USER_ID else None
    if user is None:
        raise UserNotFoundError(f"User not found with id: {user_id}")
    return user


async def get_user_by_email(session: AsyncSession, email: str) -> models.User:
    """Fetch one user by email, ignoring case.

    Raises:
        UserNotFoundError: If no user has this email.
    """
    matches = await run_predicate(session, Equals(UserField.EMAIL, email.strip(), ignore_case=True))
    if not matches:
        raise UserNotFoundError(f"User not found with email: {email}")
    return matches[0]
