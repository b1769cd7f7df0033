"""Idempotent ensure steps for cloud resources.

Each step inspects the current state of one resource and either returns it
(terminal), kicks off the missing work, or reports that the caller should
come back later by raising RetryableError. Steps never sleep; the caller
drives them in a loop (see provider.poller).
"""

import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from scanplane.errors import FatalError, ResourceNotFoundError, RetryableError, ScanPlaneError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _fatal(err: Exception, action: str) -> Exception:
    """Pass scanplane errors through; anything else is an unexpected failure."""
    if isinstance(err, ScanPlaneError):
        return err
    return FatalError(f"unexpected error while {action}: {err}")


async def ensure_exists(
    resource_type: str,
    get: Callable[[], Awaitable[T]],
    create: Callable[[], Awaitable[Any]],
    is_ready: Callable[[T], bool],
    estimate: float,
    state: Callable[[T], Any] | None = None,
) -> T:
    """Ensure a resource exists and has finished provisioning.

    Args:
        resource_type: Human-readable resource kind for messages
        get: Fetches the resource; raises ResourceNotFoundError when absent
        create: Issues the create request
        is_ready: Whether a fetched resource reached its terminal state
        estimate: Seconds the caller should wait before calling again
        state: Extracts the provisioning state for messages

    Returns:
        The ready resource

    Raises:
        RetryableError: Resource is provisioning, or create was just issued
        ProviderError: Any other failure, classified by the request layer
    """
    try:
        resource = await get()
    except ResourceNotFoundError:
        resource = None
    except Exception as e:
        raise _fatal(e, f"getting {resource_type}") from e

    if resource is not None:
        if is_ready(resource):
            logger.debug(f"{resource_type} is ready")
            return resource
        current = state(resource) if state else None
        raise RetryableError(
            f"{resource_type} is not ready yet, provisioning state: {current}",
            after=estimate,
        )

    logger.info(f"Creating {resource_type}")
    try:
        await create()
    except Exception as e:
        raise _fatal(e, f"creating {resource_type}") from e
    raise RetryableError(f"{resource_type} created", after=estimate)


async def ensure_deleted(
    resource_type: str,
    get: Callable[[], Awaitable[Any]],
    delete: Callable[[], Awaitable[Any]],
    estimate: float,
) -> None:
    """Ensure a resource no longer exists.

    Not found means the delete completed; otherwise a delete is issued and
    the caller is asked to come back later.

    Raises:
        RetryableError: Delete was issued and is still in progress
        ProviderError: Any other failure
    """
    try:
        await get()
    except ResourceNotFoundError:
        logger.debug(f"{resource_type} is deleted")
        return
    except Exception as e:
        raise _fatal(e, f"getting {resource_type}") from e

    logger.info(f"Deleting {resource_type}")
    try:
        await delete()
    except Exception as e:
        raise _fatal(e, f"deleting {resource_type}") from e
    raise RetryableError(f"{resource_type} delete issued", after=estimate)
