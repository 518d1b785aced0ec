"""Preference service - JSON key/value storage for app preferences and system flags."""

import json
import logging
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from models.user_preference import UserPreference

logger = logging.getLogger(__name__)


class PreferenceService:
    """Reads and writes UserPreference rows. Every write commits."""

    @staticmethod
    def _record(db: Session, key: str) -> UserPreference | None:
        return db.query(UserPreference).filter(UserPreference.key == key).first()

    @staticmethod
    def get(db: Session, key: str, default: Any = None) -> Any:
        """Decoded value for ``key``, or ``default`` when unset."""
        pref = PreferenceService._record(db, key)
        if pref is None:
            return default
        return json.loads(pref.value)

    @staticmethod
    def set(db: Session, key: str, value: Any) -> UserPreference:
        """Upsert ``key``.

        Two writers racing on a new key both succeed: the loser of the
        insert rolls back and updates the winner's row instead.
        """
        serialized = json.dumps(value)
        pref = PreferenceService._record(db, key)
        if pref is not None:
            pref.value = serialized
            db.commit()
            logger.info("Updated preference: %s", key)
            return pref

        pref = UserPreference(key=key, value=serialized)
        db.add(pref)
        try:
            db.commit()
            logger.info("Created preference: %s", key)
        except IntegrityError:
            db.rollback()
            pref = PreferenceService._record(db, key)
            pref.value = serialized
            db.commit()
            logger.info("Updated preference after concurrent insert: %s", key)
        return pref

    @staticmethod
    def delete(db: Session, key: str) -> bool:
        """Remove ``key``; False when it was not set."""
        pref = PreferenceService._record(db, key)
        if pref is None:
            return False
        db.delete(pref)
        db.commit()
        logger.info("Deleted preference: %s", key)
        return True
