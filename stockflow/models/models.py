# SQLAlchemy core imports
from sqlalchemy import Column
from sqlalchemy import DateTime
from sqlalchemy import String
from sqlalchemy import Text
from sqlalchemy.sql import func

# Local helpers
from stockflow.database import Base

# ---------------------------------------------------------------------------
# One row per cache collection, plus one for the action queue
# ---------------------------------------------------------------------------


class StoredValue(Base):
    """JSON document persisted under a string key.

    Keys follow the logical layout of the offline cache (``stock_items``,
    ``locations``, ``sales``, ``inventory_<locationId>``, ``action_queue``).
    The value column holds the serialised JSON text; decoding happens in
    :class:`stockflow.services.local_store.LocalStore` so a corrupt row can be
    treated as absent.
    """

    __tablename__ = "stored_values"

    key = Column(String, primary_key=True)
    value = Column(Text, nullable=False)

    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
