"""Shared constants: durable-store keys, endpoint paths and timer bounds."""

# ---------------------------------------------------------------------------
# Durable store keys
# ---------------------------------------------------------------------------

LOCATIONS_KEY = "locations"
STOCK_ITEMS_KEY = "stock_items"
SALES_KEY = "sales"
ACTION_QUEUE_KEY = "action_queue"
INVENTORY_KEY_PREFIX = "inventory_"


def inventory_key(location_id: str) -> str:
    """Store key of the per-location inventory snapshot."""
    return f"{INVENTORY_KEY_PREFIX}{location_id}"


# ---------------------------------------------------------------------------
# Remote API paths (relative to ``Settings.api_base_url``)
# ---------------------------------------------------------------------------

STOCK_PATH = "/stock"
STOCK_LOW_STOCK_PATH = "/stock/low-stock"
STOCK_MOVEMENT_PATH = "/stock/movement"
SALES_PATH = "/sales"
LOCATIONS_PATH = "/locations"
TRANSFERS_PATH = "/transfers"
HEALTH_PATH = "/health"

# ---------------------------------------------------------------------------
# Timers
# ---------------------------------------------------------------------------

MIN_SYNC_INTERVAL_SECONDS = 5.0

# ---------------------------------------------------------------------------
# Provisional identifiers
# ---------------------------------------------------------------------------

PROVISIONAL_ID_PREFIX = "offline-"
PROVISIONAL_REFERENCE_PREFIX = "OFFLINE-"
PENDING_LOCATION_NAME = "Pending Sync"
