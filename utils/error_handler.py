"""
Error Handler Utility

Maps engine exceptions to short advisory texts for non-blocking
notifications. Failures never become modal dead-ends: every message tells the
user what still works.

Usage:
    from utils.error_handler import describe_failure

    try:
        await api_client.test_connection()
    except PosSyncException as e:
        title, description = describe_failure(e)
        notifications.warning(title, description)
"""

import logging

from exceptions import (
    PosSyncException,
    StorageUnavailableException,
    ExpiredStateException,
    MalformedImportException,
    NetworkFailureException,
    RateLimitExceededException,
    ReplayFailedException,
    QueueExhaustedException,
)

logger = logging.getLogger(__name__)

ERROR_MESSAGES: dict[type[PosSyncException], tuple[str, str]] = {
    StorageUnavailableException: ("Storage Unavailable", "Cart changes will not survive a restart."),
    ExpiredStateException: ("Cart Expired", "The saved cart was older than {expiry_days} days and was removed."),
    MalformedImportException: ("Import Failed", "The file is not a valid cart export: {reason}."),
    NetworkFailureException: ("Offline Mode", "Server unreachable, showing cached data."),
    RateLimitExceededException: ("Slow Down", "Too many requests, try again in a moment."),
    ReplayFailedException: ("Sync Failed", "An offline change was rejected and will be retried."),
    QueueExhaustedException: ("Sync Dropped", "An offline {action} could not be synced after {retry_count} attempts."),
}


def describe_failure(exception: Exception) -> tuple[str, str]:
    """
    Convert an exception to a notification title and description.

    Args:
        exception: Any exception raised inside the engine

    Returns:
        (title, description) tuple
    """
    for exception_type in type(exception).__mro__:
        if exception_type in ERROR_MESSAGES:
            title, template = ERROR_MESSAGES[exception_type]
            try:
                return title, template.format(**vars(exception))
            except (KeyError, IndexError) as e:
                logger.error(f"Missing format parameter in error message: {e}")
                return title, template

    if isinstance(exception, PosSyncException):
        logger.warning(f"Unmapped exception type: {type(exception).__name__}")
        return "Something Went Wrong", exception.message

    logger.error(f"Unexpected error: {type(exception).__name__} - {str(exception)}", exc_info=exception)
    return "Something Went Wrong", "An unexpected error occurred."
