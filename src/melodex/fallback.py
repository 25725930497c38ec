"""Ordered candidate lookups where the first acceptable result wins."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterable
from typing import TypeVar

C = TypeVar("C")
R = TypeVar("R")

log = logging.getLogger(__name__)


async def first_success(
    candidates: Iterable[C],
    attempt: Callable[[C], Awaitable[R | None]],
    accept: Callable[[R], bool] | None = None,
    errors: tuple[type[Exception], ...] = (Exception,),
    keep_rejected: bool = False,
) -> tuple[C, R] | None:
    """
    Try candidates in order and return the first acceptable result.

    A candidate fails when ``attempt`` raises one of ``errors``, returns
    None, or returns something ``accept`` rejects. Candidates are tried
    sequentially; nothing is retried.

    Args:
        candidates: Candidate keys, most preferred first
        attempt: Coroutine function fetching one candidate
        accept: Optional predicate a result must satisfy
        errors: Exception types treated as a failed candidate
        keep_rejected: Return the first rejected result when nothing is
            accepted, instead of None

    Returns:
        (candidate, result) of the first success, or None if all failed
    """
    first_rejected: tuple[C, R] | None = None
    for candidate in candidates:
        try:
            result = await attempt(candidate)
        except errors as e:
            log.warning(f"Candidate {candidate} failed: {e}")
            continue
        if result is None:
            continue
        if accept is not None and not accept(result):
            log.debug(f"Candidate {candidate} rejected, trying next")
            if first_rejected is None:
                first_rejected = (candidate, result)
            continue
        return candidate, result
    return first_rejected if keep_rejected else None
