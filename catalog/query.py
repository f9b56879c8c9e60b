"""Search query classification and predicate building.

A raw search string is first classified into a ``QueryPlan`` (which strategy
applies and how the text splits into tokens). ``build_stages`` then turns the
plan into an ordered tuple of predicates. The executor tries the stages in
order and stops at the first one that returns rows, which is how the exact
identifier and email shortcuts take priority over the broad substring scan.

Strategies:
- MATCH_ALL: empty or whitespace-only input, every record.
- BASIC: fewer than ``MIN_FULL_SEARCH_LENGTH`` characters. One pattern over
  first/last name and separator-free ssn. No exact-match shortcuts.
- FULL: everything else, tokenized on whitespace.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum

from catalog.predicates import (
    And,
    ContainsCI,
    ContainsNormalized,
    Equals,
    MatchAll,
    Or,
    Predicate,
    UserField,
)

logger = logging.getLogger(__name__)

MIN_FULL_SEARCH_LENGTH = 3
# Largest value an identifier column can hold
MAX_USER_ID = 2**63 - 1

_ALL_DIGITS = re.compile(r"[0-9]+")
_HAS_DIGIT = re.compile(r"[0-9]")


class Strategy(str, Enum):
    """Search strategy selected for a query."""
    MATCH_ALL = "match_all"
    BASIC = "basic"
    FULL = "full"


@dataclass(frozen=True)
class QueryPlan:
    """Classified search query."""
    strategy: Strategy
    term: str
    tokens: tuple[str, ...] = ()
    name_tokens: tuple[str, ...] = ()
    ssn_tokens: tuple[str, ...] = ()

    @property
    def is_single_token(self) -> bool:
        return len(self.tokens) == 1


def classify(raw: str | None) -> QueryPlan:
    """Classify a raw search string."""
    term = (raw or "").strip()
    if not term:
        return QueryPlan(strategy=Strategy.MATCH_ALL, term="")

    if len(term) < MIN_FULL_SEARCH_LENGTH:
        return QueryPlan(strategy=Strategy.BASIC, term=term, tokens=(term,))

    tokens = tuple(term.split())
    if len(tokens) == 1:
        return QueryPlan(strategy=Strategy.FULL, term=term, tokens=tokens)

    ssn_tokens = tuple(t for t in tokens if _HAS_DIGIT.search(t))
    name_tokens = tuple(t for t in tokens if not _HAS_DIGIT.search(t))
    return QueryPlan(
        strategy=Strategy.FULL,
        term=term,
        tokens=tokens,
        name_tokens=name_tokens,
        ssn_tokens=ssn_tokens,
    )


def build_stages(plan: QueryPlan) -> tuple[Predicate, ...]:
    """Translate a plan into ordered predicate stages.

    The last stage is the fallback and is always returned even when empty.
    """
    if plan.strategy is Strategy.MATCH_ALL:
        return (MatchAll(),)

    if plan.strategy is Strategy.BASIC:
        return (basic_predicate(plan.term),)

    if plan.is_single_token:
        return single_token_stages(plan.tokens[0])

    return (multi_token_predicate(plan.name_tokens, plan.ssn_tokens),)


def basic_predicate(term: str) -> Predicate:
    return Or(
        ContainsCI(UserField.FIRST_NAME, term),
        ContainsCI(UserField.LAST_NAME, term),
        ContainsNormalized(UserField.SSN, term),
    )


def single_token_stages(token: str) -> tuple[Predicate, ...]:
    """Identifier shortcut, then email shortcut, then substring fallback."""
    stages: list[Predicate] = []

    if _ALL_DIGITS.fullmatch(token):
        user_id = int(token)
        if user_id <= MAX_USER_ID:
            stages.append(Equals(UserField.ID, user_id))

    if "@" in token:
        stages.append(Equals(UserField.EMAIL, token, ignore_case=True))

    stages.append(
        Or(
            ContainsCI(UserField.FIRST_NAME, token),
            ContainsCI(UserField.LAST_NAME, token),
            ContainsCI(UserField.EMAIL, token),
            ContainsNormalized(UserField.SSN, token),
        )
    )
    return tuple(stages)


def name_token_predicate(token: str) -> Predicate:
    return Or(
        ContainsCI(UserField.FIRST_NAME, token),
        ContainsCI(UserField.LAST_NAME, token),
    )


def full_name_predicate(name_tokens: tuple[str, ...]) -> Predicate:
    """Whole phrase inside "first last" or "last first".

    The phrase is the tokens joined by single spaces and stays a bound value.
    With more than two tokens the phrase still has to appear as one
    contiguous run.
    """
    phrase = " ".join(name_tokens)
    return Or(
        ContainsCI(UserField.FULL_NAME, phrase),
        ContainsCI(UserField.REVERSED_FULL_NAME, phrase),
    )


def multi_token_predicate(name_tokens: tuple[str, ...], ssn_tokens: tuple[str, ...]) -> Predicate:
    every_name = And(*(name_token_predicate(t) for t in name_tokens))
    any_ssn = Or(*(ContainsNormalized(UserField.SSN, t) for t in ssn_tokens))

    if name_tokens and ssn_tokens:
        return And(every_name, any_ssn)
    if name_tokens:
        return Or(every_name, full_name_predicate(name_tokens))
    return any_ssn


def plan_search(raw: str | None) -> tuple[QueryPlan, tuple[Predicate, ...]]:
    """Classify and build in one call."""
    plan = classify(raw)
    stages = build_stages(plan)
    logger.debug(
        f"Search plan: strategy={plan.strategy.value} tokens={len(plan.tokens)} stages={len(stages)}"
    )
    return plan, stages
