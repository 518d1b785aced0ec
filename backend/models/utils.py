"""Shared utilities for ORM models."""

import uuid
from datetime import datetime, timezone


def generate_uuid() -> str:
    """Generate a UUID string."""
    return str(uuid.uuid4())


def utc_now() -> datetime:
    """Timezone-aware current time for created_at/updated_at defaults."""
    return datetime.now(timezone.utc)
