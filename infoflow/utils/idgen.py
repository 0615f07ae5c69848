"""ID Generation Utilities"""
import uuid
from datetime import datetime, timezone
from typing import Optional


DRY_RUN_PREFIX = "DRYRUN"


def generate_id(prefix: Optional[str] = None) -> str:
    """
    Generate a unique ID with optional prefix

    Args:
        prefix: Optional prefix for the ID (e.g., 'REQ', 'SUB')

    Returns:
        Unique ID string

    Examples:
        >>> generate_id('REQ')
        'REQ-a1b2c3d4e5f6'
        >>> generate_id()
        'a1b2c3d4e5f6'
    """
    unique_part = uuid.uuid4().hex[:12]

    if prefix:
        return f"{prefix}-{unique_part}"
    return unique_part


def generate_request_id() -> str:
    """Generate information request ID"""
    return generate_id("REQ")


def generate_submission_id() -> str:
    """Generate child submission ID"""
    return generate_id("SUB")


def generate_notification_id() -> str:
    """Generate notification ID"""
    return generate_id("NTF")


def mark_dry_run(identifier: str) -> str:
    """Prefix an ID so it can never be mistaken for a persisted one"""
    if identifier.startswith(f"{DRY_RUN_PREFIX}-"):
        return identifier
    return f"{DRY_RUN_PREFIX}-{identifier}"


def is_dry_run_id(identifier: str) -> bool:
    """Check whether an ID was issued by the dry-run repository"""
    return identifier.startswith(f"{DRY_RUN_PREFIX}-")


def generate_correlation_id() -> str:
    """
    Generate a correlation ID for request tracing

    Returns:
        Correlation ID string with timestamp prefix
    """
    timestamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")
    unique_part = uuid.uuid4().hex[:8]
    return f"COR-{timestamp}-{unique_part}"
