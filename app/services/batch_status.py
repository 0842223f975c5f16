"""
services/batch_status.py
Derives the batch-level status from per-record outcome counts.
"""
from app.models.batch_model import BatchStatus


def aggregate_batch_status(attempted: int, succeeded: int) -> BatchStatus:
    """COMPLETED only when something was attempted and all of it succeeded."""
    if attempted > 0 and succeeded == attempted:
        return BatchStatus.COMPLETED
    return BatchStatus.PARTIAL


def summarize_failures(attempted: int, succeeded: int) -> str | None:
    failed = attempted - succeeded
    if failed <= 0:
        return None
    return f"{failed} of {attempted} certificates failed"
