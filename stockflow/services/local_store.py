"""Durable key/value store backing the offline cache and the action queue.

Persistence is best-effort: every failure (unserialisable value, locked or
missing database file, corrupt JSON) is logged and converted into a ``False``
return from :meth:`LocalStore.save` or the *default* from
:meth:`LocalStore.load`.  Losing the cache is degraded but survivable, so no
storage exception ever reaches the caller.
"""

from __future__ import annotations

import json
import logging
from typing import Any
from typing import List
from typing import Optional

from sqlalchemy import Engine
from sqlalchemy import delete
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from stockflow.database import db_session
from stockflow.database import initialize_database
from stockflow.database import make_engine
from stockflow.database import make_sessionmaker
from stockflow.models.models import StoredValue
from stockflow.utils.time import utc_now

logger = logging.getLogger(__name__)


class LocalStore:
    """SQLite-backed JSON documents keyed by string."""

    def __init__(self, database_url: str, engine: Optional[Engine] = None):
        self.database_url = database_url
        self._engine = engine or make_engine(database_url)
        try:
            initialize_database(self._engine)
        except SQLAlchemyError as exc:
            # Every later call fails the same way and degrades to "no data"
            logger.error(f"Failed to initialise local store at {database_url}: {exc}")
        self._session_factory: sessionmaker = make_sessionmaker(self._engine)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def save(self, key: str, value: Any) -> bool:
        """Serialise *value* and upsert it under *key* (last write wins)."""
        try:
            payload = json.dumps(value)
        except (TypeError, ValueError) as exc:
            logger.error(f"Failed to serialise value for key '{key}': {exc}")
            return False

        try:
            with db_session(self._session_factory) as db:
                row = db.get(StoredValue, key)
                if row is None:
                    db.add(StoredValue(key=key, value=payload, updated_at=utc_now()))
                else:
                    row.value = payload
                    row.updated_at = utc_now()
        except SQLAlchemyError as exc:
            logger.error(f"Failed to persist key '{key}': {exc}")
            return False
        return True

    def load(self, key: str, default: Any = None) -> Any:
        """Return the stored value, or *default* when absent or unreadable."""
        try:
            with db_session(self._session_factory) as db:
                row = db.get(StoredValue, key)
                raw = row.value if row is not None else None
        except SQLAlchemyError as exc:
            logger.error(f"Failed to read key '{key}': {exc}")
            return default

        if raw is None:
            return default

        try:
            return json.loads(raw)
        except ValueError:
            logger.warning(f"Discarding corrupt stored value for key '{key}'")
            return default

    def has(self, key: str) -> bool:
        try:
            with db_session(self._session_factory) as db:
                return db.get(StoredValue, key) is not None
        except SQLAlchemyError as exc:
            logger.error(f"Failed to check key '{key}': {exc}")
            return False

    def clear(self, key: str) -> None:
        try:
            with db_session(self._session_factory) as db:
                db.execute(delete(StoredValue).where(StoredValue.key == key))
        except SQLAlchemyError as exc:
            logger.error(f"Failed to clear key '{key}': {exc}")

    def keys(self, prefix: str = "") -> List[str]:
        try:
            with db_session(self._session_factory) as db:
                stmt = select(StoredValue.key).order_by(StoredValue.key)
                if prefix:
                    stmt = stmt.where(StoredValue.key.startswith(prefix, autoescape=True))
                return list(db.scalars(stmt))
        except SQLAlchemyError as exc:
            logger.error(f"Failed to list keys with prefix '{prefix}': {exc}")
            return []

    def close(self) -> None:
        self._engine.dispose()
