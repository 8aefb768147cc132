# samartha/core/errors.py
from __future__ import annotations

import asyncio
from typing import Awaitable, TypeVar

from pymongo.errors import PyMongoError

T = TypeVar("T")


class CoreError(Exception):
    """Base for every error the engine raises on purpose.

    `code` is a stable tag and `status_code` the HTTP status the adapter
    answers with.
    """
    code = "core_error"
    status_code = 500

    def __init__(self, detail: str = ""):
        super().__init__(detail or self.code)
        self.detail = detail or self.code


class ValidationError(CoreError):
    code = "validation_error"
    status_code = 400


class Unauthorized(CoreError):
    code = "unauthorized"
    status_code = 403


class InvalidState(CoreError):
    code = "invalid_state"
    status_code = 409


class AlreadyApproved(InvalidState):
    code = "already_approved"


class DuplicatePending(CoreError):
    code = "duplicate_pending"
    status_code = 409


class NotFound(CoreError):
    code = "not_found"
    status_code = 404


class DependencyUnavailable(CoreError):
    """Store or geo backend timed out or is down. Safe to retry."""
    code = "dependency_unavailable"
    status_code = 503
    retryable = True


class ConcurrentUpdate(DependencyUnavailable):
    """Writers kept winning the race for the same listing. Safe to retry."""
    code = "concurrent_update"


class GeoIndexUnavailable(Exception):
    """Raised by a repo when no spatial index can serve a nearest query."""


async def bounded(aw: Awaitable[T], timeout: float, what: str = "store") -> T:
    try:
        return await asyncio.wait_for(aw, timeout=timeout)
    except asyncio.TimeoutError:
        raise DependencyUnavailable(f"{what} timed out after {timeout:g}s")
    except PyMongoError as ex:
        raise DependencyUnavailable(f"{what} unavailable: {ex}")
