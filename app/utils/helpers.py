"""
utils/helpers.py
Shared utility functions used across services.
"""
import uuid
import logging
from datetime import datetime, timezone

# Configure module logger
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)


def get_logger(name: str) -> logging.Logger:
    """Return a named logger."""
    return logging.getLogger(name)


def generate_id() -> str:
    """Generate a unique record ID."""
    return str(uuid.uuid4())


def certificate_object_key(certificate_id: str) -> str:
    """Storage key for a rendered certificate; stable per certificate."""
    return f"certificate_{certificate_id}.html"


def batch_archive_key(batch_id: str) -> str:
    return f"batch_{batch_id}.zip"


def safe_filename(name: str) -> str:
    """Make a recipient name usable as an archive entry name."""
    cleaned = "".join(c if c.isalnum() or c in "-_" else "_" for c in name.strip())
    return cleaned or "certificate"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
