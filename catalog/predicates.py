"""Structured search predicates and their SQLAlchemy compilation.

Predicates are plain immutable values. ``compile_predicate`` turns a tree
into a SQLAlchemy boolean clause; every user-supplied value becomes a bound
parameter and LIKE wildcards in it are escaped, so search text can never
change the shape of the query.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Union

from sqlalchemy import String, and_, false, func, literal, or_, true
from sqlalchemy.sql.elements import ColumnElement

from catalog import models

SSN_SEPARATOR = "-"


class UserField(str, Enum):
    """Searchable user fields."""
    ID = "id"
    FIRST_NAME = "first_name"
    LAST_NAME = "last_name"
    EMAIL = "email"
    SSN = "ssn"
    # Derived: "first last" and "last first"
    FULL_NAME = "full_name"
    REVERSED_FULL_NAME = "reversed_full_name"


@dataclass(frozen=True)
class MatchAll:
    """Matches every record."""


@dataclass(frozen=True)
class Equals:
    field: UserField
    value: int | str
    ignore_case: bool = False


@dataclass(frozen=True)
class ContainsCI:
    """Case-insensitive substring match."""
    field: UserField
    pattern: str


@dataclass(frozen=True)
class ContainsNormalized:
    """Substring match after removing ``separator`` from both sides."""
    field: UserField
    pattern: str
    separator: str = SSN_SEPARATOR

    @property
    def normalized_pattern(self) -> str:
        return self.pattern.replace(self.separator, "")


@dataclass(frozen=True, init=False)
class And:
    parts: tuple[Predicate, ...]

    def __init__(self, *parts: Predicate) -> None:
        object.__setattr__(self, "parts", tuple(parts))


@dataclass(frozen=True, init=False)
class Or:
    parts: tuple[Predicate, ...]

    def __init__(self, *parts: Predicate) -> None:
        object.__setattr__(self, "parts", tuple(parts))


Predicate = Union[MatchAll, Equals, ContainsCI, ContainsNormalized, And, Or]


def field_expression(field: UserField) -> ColumnElement:
    """Column (or derived expression) a field refers to."""
    user = models.User
    if field is UserField.FULL_NAME:
        return user.first_name + literal(" ") + user.last_name
    if field is UserField.REVERSED_FULL_NAME:
        return user.last_name + literal(" ") + user.first_name
    return getattr(user, field.value)


def compile_predicate(predicate: Predicate) -> ColumnElement[bool]:
    """Translate a predicate tree into a SQLAlchemy WHERE clause."""
    if isinstance(predicate, MatchAll):
        return true()

    if isinstance(predicate, Equals):
        column = field_expression(predicate.field)
        if predicate.ignore_case:
            return func.lower(column, type_=String) == str(predicate.value).lower()
        return column == predicate.value

    if isinstance(predicate, ContainsCI):
        column = func.lower(field_expression(predicate.field), type_=String)
        return column.contains(predicate.pattern.lower(), autoescape=True)

    if isinstance(predicate, ContainsNormalized):
        column = func.replace(field_expression(predicate.field), predicate.separator, "", type_=String)
        return column.contains(predicate.normalized_pattern, autoescape=True)

    if isinstance(predicate, And):
        if not predicate.parts:
            return true()
        return and_(*(compile_predicate(p) for p in predicate.parts))

    if isinstance(predicate, Or):
        if not predicate.parts:
            return false()
        return or_(*(compile_predicate(p) for p in predicate.parts))

    raise TypeError(f"Unsupported predicate: {predicate!r}")
