"""
Idempotent create-or-fetch for provisioned resources
Re-running a migration never double-creates and never fails on "already exists"
"""
import re
from collections import namedtuple

from migration_core.logging.logger import get_logger

logger = get_logger("ensure")

EnsureResult = namedtuple("EnsureResult", ["created", "resource"])


class ProvisioningError(Exception):
    """A resource could not be provisioned (failed async operation, missing parent)."""


# Conflict signatures returned by GitLab and Azure DevOps on duplicate creation
DUPLICATE_PATTERNS = [
    re.compile(r'already exists', re.IGNORECASE),
    re.compile(r'has already been taken', re.IGNORECASE),
    re.compile(r'already in use', re.IGNORECASE),
    re.compile(r'duplicate', re.IGNORECASE),
    re.compile(r'\bconflict\b', re.IGNORECASE),
    re.compile(r'ProjectAlreadyExistsException|ClassificationNodeDuplicateNameException'),
]


def is_duplicate_conflict(error, patterns=None):
    """
    Check whether a create failure means the resource already exists.

    A 409 status counts as a conflict regardless of message.

    Args:
        error: Exception raised by a create call
        patterns: Compiled regexes to match against the message

    Returns:
        bool
    """
    if getattr(error, 'status_code', None) == 409:
        return True
    message = getattr(error, 'message', None) or str(error)
    return any(p.search(message) for p in (patterns or DUPLICATE_PATTERNS))


def ensure(lookup, create, identity, tracker=None, resource_type="resource", patterns=None):
    """
    Look a resource up, creating it only when it does not exist.

    1. lookup(identity) finds it -> EnsureResult(False, found); create is not called
    2. otherwise create(identity) -> EnsureResult(True, created)
    3. create fails with a duplicate/conflict signature (someone created it in
       between) -> lookup(identity) again -> EnsureResult(False, found)
    4. any other create failure propagates unchanged

    Args:
        lookup: Callable(identity) -> resource or None
        create: Callable(identity) -> resource
        identity: Value identifying the resource (name, path, tuple...)
        tracker: Optional ProvisioningTracker counting created/skipped
        resource_type: Label used for logs and counters
        patterns: Duplicate signatures (defaults to DUPLICATE_PATTERNS)

    Returns:
        EnsureResult
    """
    existing = lookup(identity)
    if existing is not None:
        logger.debug(f"{resource_type} '{identity}' already exists, skipping")
        if tracker is not None:
            tracker.record_skipped(resource_type)
        return EnsureResult(False, existing)

    try:
        created = create(identity)
    except Exception as e:
        if not is_duplicate_conflict(e, patterns):
            raise

        logger.info(f"{resource_type} '{identity}' was created concurrently, reusing it")
        existing = lookup(identity)
        if existing is None:
            # Conflict reported but still not visible: nothing safe to return
            raise
        if tracker is not None:
            tracker.record_skipped(resource_type)
        return EnsureResult(False, existing)

    logger.info(f"[NEW] Created {resource_type} '{identity}'")
    if tracker is not None:
        tracker.record_created(resource_type)
    return EnsureResult(True, created)
