"""UserPreference model - key/value store for preferences and system flags."""

from sqlalchemy import Column, DateTime, String, Text

from database import Base
from models.utils import generate_uuid, utc_now


class UserPreference(Base):
    """A single JSON-serialized value, e.g. the one-shot migration flag
    ``system.snapshot_migration_completed``."""

    __tablename__ = "user_preferences"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    key = Column(String, unique=True, index=True, nullable=False)
    value = Column(Text, nullable=False)
    created_at = Column(DateTime, default=utc_now)
    updated_at = Column(
        DateTime,
        default=utc_now,
        onupdate=utc_now,
    )
