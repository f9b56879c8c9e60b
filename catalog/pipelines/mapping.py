"""Source record → ``models.User`` mapping.

Field-for-field copy; no business rules live here.
"""
from __future__ import annotations

from typing import Any, Mapping

from pydantic import ValidationError

from catalog import models
from catalog.errors import RecordValidationError
from catalog.source import SourceUser


def to_user(record: Mapping[str, Any]) -> models.User:
    """Convert one raw source record into a user row.

    Raises:
        RecordValidationError: If the record lacks required fields or has
            values of the wrong type.
    """
    try:
        parsed = SourceUser.model_validate(record)
    except ValidationError as e:
        raise RecordValidationError(f"Malformed source record id={record.get('id')!r}: {e}") from e

    return models.User(
        id=parsed.id,
        first_name=parsed.first_name,
        last_name=parsed.last_name,
        ssn=parsed.ssn,
        email=parsed.email,
        age=parsed.age,
        role=parsed.role,
        phone=parsed.phone,
        username=parsed.username,
        birth_date=parsed.birth_date,
        gender=parsed.gender,
    )


def to_users(records: list[Mapping[str, Any]]) -> list[models.User]:
    return [to_user(r) for r in records]
